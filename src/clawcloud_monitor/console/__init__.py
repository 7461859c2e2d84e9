from .balance import BALANCE_UNAVAILABLE, BalanceReader, parse_balance

__all__ = ["BALANCE_UNAVAILABLE", "BalanceReader", "parse_balance"]
