"""
DH Lottery protocol client.

Modules:
- auth: RSA login handshake and response classification
- pension: Pension 720+ next-week reservation over the encrypted EL envelope
- account / deposit: balance and round lookup, top-up gate
- buy: Lotto 6/45 purchase
- check: previous-week winning check
"""

__all__ = [
    "account",
    "auth",
    "buy",
    "check",
    "deposit",
    "pension",
]
