from __future__ import annotations

import argparse
import logging
import os
from contextlib import ExitStack
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from botocore.exceptions import ClientError
from pydantic import BaseModel, ConfigDict, SecretStr

from common.alerts import NotificationPayload
from common.errors import OrchestrationError, OrchestrationErrorKind, wrap_error
from common.notifier import NotificationSink, Notifier
from common.session import CookieSession
from common.telegram import TelegramClient
from dhlottery.auth import login
from dhlottery.buy import purchase_lottery
from dhlottery.check import check_winning
from dhlottery.deposit import check_deposit
from dhlottery.models import Credentials
from dhlottery.pension import reserve_pension_next_week


logger = logging.getLogger(__name__)

# Environment variable names expected (same names the GitHub Actions secrets use)
ENV_USER_ID = "USER_ID"
ENV_PASSWORD = "PASSWORD"
ENV_TELEGRAM_BOT_TOKEN = "TELEGRAM_BOT_TOKEN"
ENV_TELEGRAM_CHAT_ID = "TELEGRAM_CHAT_ID"
# Optional: read values absent from the environment from SSM under this prefix
ENV_PARAM_PREFIX = "PARAM_PREFIX"
ENV_LOG_LEVEL = "LOG_LEVEL"

# env name -> SSM parameter name
REQUIRED_KEYS: Dict[str, str] = {
    ENV_USER_ID: "user_id",
    ENV_PASSWORD: "password",
    ENV_TELEGRAM_BOT_TOKEN: "telegram_bot_token",
    ENV_TELEGRAM_CHAT_ID: "telegram_chat_id",
}


class MissingConfigError(RuntimeError):
    """Required configuration is absent; raised before any network call."""

    def __init__(self, missing: List[str]) -> None:
        super().__init__(f"Missing required configuration: {', '.join(missing)}")
        self.missing = missing


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: SecretStr
    password: SecretStr
    telegram_bot_token: SecretStr
    telegram_chat_id: str

    @property
    def credentials(self) -> Credentials:
        return Credentials(user_id=self.user_id, password=self.password)

    @property
    def chat_id(self) -> Union[int, str]:
        # Chat id can be int or str (@channel)
        try:
            return int(self.telegram_chat_id)
        except ValueError:
            return self.telegram_chat_id


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    import boto3

    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def load_settings() -> Settings:
    """
    Resolve the four required values from the environment, then SSM.

    Every missing key is named in one MissingConfigError.
    """
    values: Dict[str, Optional[str]] = {env: _getenv(env) for env in REQUIRED_KEYS}
    absent = [env for env, val in values.items() if not val]

    prefix = _getenv(ENV_PARAM_PREFIX)
    if absent and prefix:
        params = _load_ssm_params(prefix, [REQUIRED_KEYS[env] for env in absent])
        for env in absent:
            values[env] = params.get(REQUIRED_KEYS[env])

    missing = [env for env, val in values.items() if not val]
    if missing:
        raise MissingConfigError(missing)

    return Settings(
        user_id=values[ENV_USER_ID],
        password=values[ENV_PASSWORD],
        telegram_bot_token=values[ENV_TELEGRAM_BOT_TOKEN],
        telegram_chat_id=values[ENV_TELEGRAM_CHAT_ID],
    )


def _notify_orchestration_error(notifier: NotificationSink, exc: BaseException) -> None:
    err = wrap_error(
        exc,
        lambda message, cause: OrchestrationError(
            OrchestrationErrorKind.ORCHESTRATION, message, cause=cause
        ),
    )
    logger.error("Workflow stopped: %s (code=%s)", err.message, err.code)
    try:
        notifier.notify(
            NotificationPayload(
                type="error",
                title="Orchestration Error",
                message=f"워크플로우 실행 중 오류가 발생했습니다: {err.message}",
                details={"오류코드": err.code},
            )
        )
    except Exception:
        logger.exception("Failed to report orchestration error")


def run_workflow(
    settings: Settings,
    now: Optional[datetime] = None,
    *,
    session: Optional[CookieSession] = None,
    notifier: Optional[NotificationSink] = None,
) -> Dict[str, Any]:
    """
    Run login -> deposit gate -> reservation + purchase -> winning check once.

    Never raises and never retries: a repeated purchase would charge the
    account twice, so every failure ends the run with one notification.
    """
    summary: Dict[str, Any] = {
        "ok": False,
        "stage": "login",
        "reserve": None,
        "purchase": None,
        "jackpots": 0,
    }

    with ExitStack() as stack:
        if session is None:
            session = stack.enter_context(CookieSession())
        if notifier is None:
            tg = stack.enter_context(TelegramClient(settings.telegram_bot_token.get_secret_value()))
            notifier = Notifier(tg, settings.chat_id)

        try:
            login(session, settings.credentials)

            summary["stage"] = "deposit"
            try:
                can_purchase = check_deposit(session, notifier)
            except Exception as exc:
                _notify_orchestration_error(notifier, exc)
                return summary

            if can_purchase:
                summary["stage"] = "reserve"
                reserve = reserve_pension_next_week(session, notifier)
                summary["reserve"] = reserve.status

                # Reservation and purchase are separate charges; one failing
                # does not hold back the other.
                summary["stage"] = "purchase"
                try:
                    purchase = purchase_lottery(session, notifier, now)
                except Exception as exc:
                    _notify_orchestration_error(notifier, exc)
                    return summary
                summary["purchase"] = "success" if purchase.success else "failure"

            summary["stage"] = "winning"
            summary["jackpots"] = len(check_winning(session, notifier, now))
            summary["stage"] = "done"
            summary["ok"] = True
        except Exception as exc:
            _notify_orchestration_error(notifier, exc)

    return summary


def run_once(now: Optional[datetime] = None) -> Dict[str, Any]:
    settings = load_settings()
    return run_workflow(settings, now)


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    raw_now = (event or {}).get("now")
    now = datetime.fromisoformat(raw_now) if raw_now else None
    return run_once(now)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the DH Lottery workflow once.")
    parser.add_argument(
        "--now",
        type=datetime.fromisoformat,
        default=None,
        help="ISO timestamp override for date-dependent steps",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=(_getenv(ENV_LOG_LEVEL, "INFO") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings()
    except MissingConfigError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("Starting lottery workflow")
    summary = run_workflow(settings, args.now)
    logger.info("Lottery workflow finished: %s", summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
