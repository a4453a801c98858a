from __future__ import annotations

from typing import List

from src.notifications.domain.gateway import (
    DeliveryOutcome,
    NotificationGateway,
    NotificationPayload,
    Recipient,
)
from src.shared.logging import get_logger

logger = get_logger(__name__)


class LoggingNotificationGateway(NotificationGateway):
    """Local/dev adapter: every recipient is 'delivered' to the log."""

    async def notify(self, recipients: List[Recipient], payload: NotificationPayload) -> List[DeliveryOutcome]:
        outcomes = []
        for r in recipients:
            logger.info(
                "notification_delivered",
                channel=r.address,
                notification_event=payload.event,
                title=payload.title,
                email=r.email,
            )
            outcomes.append(DeliveryOutcome.ok(r.actor))
        return outcomes
