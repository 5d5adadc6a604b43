from __future__ import annotations

from enum import Enum
from typing import Callable, Optional


class AuthErrorKind(str, Enum):
    SESSION_INIT = "AUTH_SESSION_INIT_ERROR"
    KEY_FETCH = "AUTH_RSA_KEY_ERROR"
    INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    UNEXPECTED_RESPONSE = "AUTH_UNEXPECTED_RESPONSE"
    NETWORK = "AUTH_NETWORK_ERROR"


class CryptoErrorKind(str, Enum):
    SESSION_MISSING = "PENSION_INVALID_SESSION"
    DECRYPT_FAILED = "PENSION_DECRYPT_FAILED"
    ENCODING = "RSA_ENCODING_ERROR"


class ReserveErrorKind(str, Enum):
    BOOTSTRAP_FAILED = "PENSION_BOOTSTRAP_FAILED"
    ROUND_FETCH_FAILED = "PENSION_ROUND_FETCH_FAILED"
    API_FAILED = "PENSION_API_FAILED"
    INVALID_RESPONSE = "PENSION_API_INVALID_RESPONSE"
    INSUFFICIENT_DEPOSIT = "PENSION_INSUFFICIENT_DEPOSIT"
    UNEXPECTED_ERROR = "PENSION_UNEXPECTED_ERROR"
    AUTH_MISSING = "PENSION_AUTH_MISSING"
    INVALID_ROUND = "PENSION_INVALID_ROUND"
    INVALID_DEPOSIT = "PENSION_INVALID_DEPOSIT"
    # Server answered with a non-success resultCode; the code travels separately.
    API_RESULT = "PENSION_API_RESULT"


class AccountErrorKind(str, Enum):
    FETCH_FAILED = "ACCOUNT_FETCH_FAILED"
    PARSE_BALANCE_FAILED = "ACCOUNT_PARSE_BALANCE_FAILED"
    PARSE_ROUND_FAILED = "ACCOUNT_PARSE_ROUND_FAILED"
    INVALID_DATA = "ACCOUNT_INVALID_DATA"


class PurchaseErrorKind(str, Enum):
    READY_FAILED = "PURCHASE_READY_FAILED"
    EXECUTION_FAILED = "PURCHASE_EXECUTION_FAILED"
    INVALID_RESPONSE = "PURCHASE_INVALID_RESPONSE"


class WinningErrorKind(str, Enum):
    INVALID_DATE_RANGE = "WINNING_INVALID_DATE_RANGE"


class OrchestrationErrorKind(str, Enum):
    ORCHESTRATION = "ORCHESTRATION_ERROR"


class LotteryError(RuntimeError):
    """
    Base error for every DH Lottery domain.

    Each subclass pairs with a closed `kind` enum; callers switch on `kind`
    instead of on the exception type. `cause` keeps the foreign exception that
    was wrapped (also chained as `__cause__`).
    """

    def __init__(
        self,
        kind: Enum,
        message: str,
        *,
        cause: Optional[BaseException] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self._code = code
        if cause is not None:
            self.__cause__ = cause

    @property
    def code(self) -> str:
        """Server-reported code when one exists, else the kind's value."""
        return self._code or str(self.kind.value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.name}, message={self.message!r})"


class AuthError(LotteryError):
    kind: AuthErrorKind


class CryptoError(LotteryError):
    kind: CryptoErrorKind


class ReserveError(LotteryError):
    kind: ReserveErrorKind


class AccountError(LotteryError):
    kind: AccountErrorKind


class PurchaseError(LotteryError):
    kind: PurchaseErrorKind


class WinningError(LotteryError):
    kind: WinningErrorKind


class OrchestrationError(LotteryError):
    kind: OrchestrationErrorKind


def describe(exc: BaseException) -> str:
    if isinstance(exc, LotteryError):
        return exc.message
    return str(exc) or type(exc).__name__


def wrap_error(
    exc: BaseException,
    factory: Callable[[str, BaseException], LotteryError],
) -> LotteryError:
    """
    Wrap a foreign exception exactly once.

    Domain errors pass through untouched so a classified failure is never
    reclassified by an outer layer.
    """
    if isinstance(exc, LotteryError):
        return exc
    return factory(describe(exc), exc)


__all__ = [
    "AccountError",
    "AccountErrorKind",
    "AuthError",
    "AuthErrorKind",
    "CryptoError",
    "CryptoErrorKind",
    "LotteryError",
    "OrchestrationError",
    "OrchestrationErrorKind",
    "PurchaseError",
    "PurchaseErrorKind",
    "ReserveError",
    "ReserveErrorKind",
    "WinningError",
    "WinningErrorKind",
    "describe",
    "wrap_error",
]
