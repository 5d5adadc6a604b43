"""
Common utilities for dhlottery-bot.

Modules:
- session: cookie-replaying HTTP session (no redirects followed)
- rsa: PKCS#1 v1.5 credential encryption
- envelope: PBKDF2 + AES-CBC envelope codec for the EL site
- errors: domain error taxonomy
- dates: KST calendar helpers
- telegram / notifier / alerts: outbound notifications
"""

__all__ = [
    "alerts",
    "dates",
    "envelope",
    "errors",
    "notifier",
    "rsa",
    "session",
    "telegram",
]
