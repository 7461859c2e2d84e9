from .telegram import TelegramNotifier, parse_code_command

__all__ = ["TelegramNotifier", "parse_code_command"]
