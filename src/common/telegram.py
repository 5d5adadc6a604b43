from __future__ import annotations

from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel, ValidationError


DEFAULT_API_BASE = "https://api.telegram.org"
# sendMessage rejects longer texts outright
MAX_MESSAGE_LENGTH = 4096
_TRUNCATION_SUFFIX = "\n…"


class TelegramError(RuntimeError):
    """Transport-level failure talking to the Bot API."""


class TelegramApiError(TelegramError):
    """Bot API answered, but not with a usable success envelope."""


class _BotApiEnvelope(BaseModel):
    ok: bool
    result: Optional[Dict[str, Any]] = None
    description: Optional[str] = None
    error_code: Optional[int] = None


def truncate_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(_TRUNCATION_SUFFIX)] + _TRUNCATION_SUFFIX


class TelegramClient:
    """
    Bot API client for outbound notifications.

    One POST per message and no retries: a lost notification is logged by the
    caller, never re-sent.
    """

    def __init__(
        self,
        token: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 15.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not token:
            raise ValueError("token is required")
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=f"{api_base.rstrip('/')}/bot{token}", timeout=timeout
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "TelegramClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send_message(
        self,
        chat_id: Union[int, str],
        text: str,
        *,
        parse_mode: Optional[str] = None,
        disable_web_page_preview: Optional[bool] = None,
        disable_notification: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Send `text` to `chat_id`; returns the Message object as a dict."""
        body: Dict[str, Any] = {"chat_id": chat_id, "text": truncate_message(text)}
        options = {
            "parse_mode": parse_mode,
            "disable_web_page_preview": disable_web_page_preview,
            "disable_notification": disable_notification,
        }
        body.update({k: v for k, v in options.items() if v is not None})

        envelope = self._call("sendMessage", body)
        if not envelope.ok or envelope.result is None:
            raise TelegramApiError(
                f"{envelope.description or 'Telegram API error'} (code={envelope.error_code})"
            )
        return envelope.result

    def _call(self, method: str, body: Dict[str, Any]) -> _BotApiEnvelope:
        try:
            resp = self._client.post(f"/{method}", json=body)
        except httpx.HTTPError as exc:
            raise TelegramError(f"Telegram {method} failed: {exc}") from exc

        if resp.status_code != 200:
            # The bot token is part of the URL; only the body is reported
            raise TelegramApiError(f"HTTP {resp.status_code} from Telegram: {resp.text[:200]}")
        try:
            return _BotApiEnvelope.model_validate_json(resp.content)
        except ValidationError as exc:
            raise TelegramApiError(f"Malformed {method} response from Telegram") from exc


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "TelegramApiError",
    "TelegramClient",
    "TelegramError",
    "truncate_message",
]
