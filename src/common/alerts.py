from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Literal, Optional, Union


NotificationType = Literal["success", "warning", "error"]
DetailValue = Optional[Union[str, int, float, bool]]

_TYPE_EMOJI: Dict[str, str] = {
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
}


@dataclass(frozen=True)
class NotificationPayload:
    """Structured notification handed to the outbound channel.

    Attributes
    - type: severity marker (success, warning, error)
    - title: short headline
    - message: body text
    - details: key/value lines; `None` values are omitted when formatting
    """

    type: NotificationType
    title: str
    message: str
    details: Dict[str, DetailValue] = field(default_factory=dict)


def _format_key(key: str) -> str:
    # camelCase -> "Camel Case"; non-Latin keys pass through unchanged
    spaced = re.sub(r"([A-Z])", r" \1", key).strip()
    return spaced[:1].upper() + spaced[1:]


def format_notification(payload: NotificationPayload) -> str:
    """Return the Markdown text sent to Telegram for `payload`."""
    lines = [f"{_TYPE_EMOJI[payload.type]} **{payload.title}**", "", payload.message]

    details = [(k, v) for k, v in payload.details.items() if v is not None]
    if details:
        lines.append("")
        for key, value in details:
            lines.append(f"- {_format_key(key)}: {value}")

    return "\n".join(lines)


def format_krw(amount: int) -> str:
    return f"{amount:,}원"
