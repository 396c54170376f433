"""Port definition for push gateway clients."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from src.domain.models import PushDeliveryReport
from src.domain.notification_jobs import NotificationPayload


@runtime_checkable
class PushGatewayPort(Protocol):
    """Interface for sending one payload to a set of device tokens."""

    def send(
        self,
        tokens: list[str],
        payload: NotificationPayload,
        *,
        aggregation_key: str,
        channel_id: str,
    ) -> PushDeliveryReport:
        """Send ``payload`` to every token in gateway-sized batches.

        Raises:
            PushGatewayError: On transport failure.
        """


__all__ = ["PushGatewayPort"]
