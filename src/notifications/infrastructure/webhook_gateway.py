"""
Webhook notification adapter.

POSTs one JSON document per recipient to a relay that owns the actual
push/email transport. No retries here: a failed POST is reported as a
failed outcome and the caller records it.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from httpx import AsyncClient, HTTPError, HTTPStatusError

from src.notifications.domain.gateway import (
    DeliveryOutcome,
    NotificationGateway,
    NotificationPayload,
    Recipient,
)
from src.shared.logging import get_logger

logger = get_logger(__name__)


class WebhookNotificationGateway(NotificationGateway):

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        client: Optional[AsyncClient] = None,
    ) -> None:
        """
        Args:
            url: Relay endpoint receiving one POST per recipient
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests pass one with a mock transport)
        """
        self.url = url
        self._owns_client = client is None
        self.client = client or AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=50),
        )

    @staticmethod
    def _build_body(recipient: Recipient, payload: NotificationPayload) -> Dict[str, Any]:
        return {
            "channel": recipient.address,
            "recipient": {
                "type": recipient.actor.kind.value,
                "id": recipient.actor.id,
                "name": recipient.name,
                "email": recipient.email,
                "phone": recipient.phone,
            },
            "event": payload.event,
            "title": payload.title,
            "body": payload.body,
            "data": payload.data,
        }

    async def notify(self, recipients: List[Recipient], payload: NotificationPayload) -> List[DeliveryOutcome]:
        outcomes: List[DeliveryOutcome] = []
        for r in recipients:
            try:
                resp = await self.client.post(self.url, json=self._build_body(r, payload))
                resp.raise_for_status()
            except HTTPStatusError as e:
                error = f"HTTP {e.response.status_code}"
                logger.warning("notification_webhook_rejected", channel=r.address, status_code=e.response.status_code)
                outcomes.append(DeliveryOutcome.failed(r.actor, error))
                continue
            except HTTPError as e:
                logger.warning("notification_webhook_unreachable", channel=r.address, error=str(e))
                outcomes.append(DeliveryOutcome.failed(r.actor, type(e).__name__))
                continue
            outcomes.append(DeliveryOutcome.ok(r.actor))
        return outcomes

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
