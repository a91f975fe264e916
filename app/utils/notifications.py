import enum
import logging
from typing import Optional, Protocol

import httpx

from app.utils.http_client import call_external_api

logger = logging.getLogger("[CRON]")


class NotificationKind(str, enum.Enum):
    CREDIT_CHECK_SKIPPED = "credit_check_skipped"


class NotificationDispatcher(Protocol):
    async def notify(self, account_id: str, kind: NotificationKind, payload: dict) -> None: ...


class HttpNotificationDispatcher:
    """Відправка нотифікацій у зовнішній сервіс. Без URL - лише попередження в лог."""

    def __init__(
        self,
        url: Optional[str],
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.token = token
        self.transport = transport

    async def notify(self, account_id: str, kind: NotificationKind, payload: dict) -> None:
        if not self.url:
            logger.warning(f"Notifications disabled, dropping {kind.value} for {account_id}")
            return

        headers = {"X-Service-Token": self.token} if self.token else None
        await call_external_api(
            self.url,
            {"account_id": account_id, "kind": kind.value, "payload": payload},
            headers=headers,
            transport=self.transport,
        )
        logger.info(f"Notification {kind.value} sent to {account_id}")
