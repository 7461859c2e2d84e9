"""
ClawCloud console monitor: GitHub sign-in with Telegram-relayed 2FA, credit balance, GH_SESSION rotation.
"""

__version__ = "0.1.0"
