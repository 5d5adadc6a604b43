from __future__ import annotations

import logging
from typing import Protocol, Union

import httpx

from .alerts import NotificationPayload, format_notification
from .telegram import TelegramClient, TelegramError


logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, payload: NotificationPayload) -> None: ...


class Notifier:
    """
    Fire-and-forget Telegram sink.

    `notify` never raises: a failed send is logged and dropped so that a broken
    notification channel cannot change the outcome of a purchase or reservation.
    """

    def __init__(self, client: TelegramClient, chat_id: Union[int, str]) -> None:
        self._client = client
        self._chat_id = chat_id

    def notify(self, payload: NotificationPayload) -> None:
        text = format_notification(payload)
        try:
            self._client.send_message(chat_id=self._chat_id, text=text, parse_mode="Markdown")
        except (TelegramError, httpx.HTTPError) as exc:
            logger.error("Failed to send Telegram notification %r: %s", payload.title, exc)
            return
        logger.info("Notification sent: [%s] %s", payload.type, payload.title)


__all__ = ["NotificationSink", "Notifier"]
