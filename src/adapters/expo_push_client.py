"""Expo push gateway client.

The gateway accepts a JSON array of up to 100 messages per request and answers
with ``{"data": [ticket, ...]}``, one ticket per message in request order.
"""

from __future__ import annotations

import time
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from src.config.logging_config import get_logger
from src.domain.exceptions import PushGatewayError
from src.domain.models import (
    PushBatchResult,
    PushDeliveryReport,
    PushMessage,
    PushTicket,
)
from src.domain.notification_constants import (
    EXPO_PUSH_URL,
    PUSH_BATCH_SIZE,
    PUSH_TIMEOUT_SECONDS,
)
from src.domain.notification_jobs import NotificationPayload
from src.observability.metrics import PUSH_BATCH_DURATION_SECONDS

logger = get_logger(__name__)


def build_messages(
    tokens: list[str],
    payload: NotificationPayload,
    *,
    aggregation_key: str,
    channel_id: str,
) -> list[PushMessage]:
    """One message per token; the aggregation key collapses repeats on device."""

    return [
        PushMessage(
            to=token,
            title=payload.title,
            body=payload.body,
            data=payload.data,
            collapse_id=aggregation_key,
            thread_id=aggregation_key,
            channel_id=channel_id,
            android={
                "channelId": channel_id,
                "priority": "high",
                "sound": "default",
                "vibrate": True,
            },
            ios={"sound": "default", "badge": 1},
        )
        for token in tokens
    ]


def _parse_tickets(response: httpx.Response) -> list[PushTicket]:
    try:
        body = response.json()
    except ValueError:
        return []
    raw_tickets = body.get("data") if isinstance(body, dict) else None
    if isinstance(raw_tickets, dict):
        raw_tickets = [raw_tickets]
    if not isinstance(raw_tickets, list):
        return []
    tickets: list[PushTicket] = []
    for raw in raw_tickets:
        try:
            tickets.append(PushTicket.model_validate(raw))
        except PydanticValidationError:
            tickets.append(PushTicket(status="error", message="unparseable ticket"))
    return tickets


class ExpoPushClient:
    """``PushGatewayPort`` implementation using a synchronous ``httpx`` client."""

    def __init__(
        self,
        *,
        url: str = EXPO_PUSH_URL,
        access_token: str | None = None,
        batch_size: int = PUSH_BATCH_SIZE,
        timeout_seconds: float = PUSH_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        if batch_size <= 0 or batch_size > PUSH_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {PUSH_BATCH_SIZE}")
        self._url = url
        self._batch_size = batch_size
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._headers = headers
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._timeout = timeout_seconds

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ExpoPushClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def send(
        self,
        tokens: list[str],
        payload: NotificationPayload,
        *,
        aggregation_key: str,
        channel_id: str,
    ) -> PushDeliveryReport:
        messages = build_messages(
            tokens, payload, aggregation_key=aggregation_key, channel_id=channel_id
        )
        report = PushDeliveryReport()
        for start in range(0, len(messages), self._batch_size):
            chunk = messages[start : start + self._batch_size]
            result = self._post_batch(chunk)
            report.batches.append(result)
            report.sent += sum(1 for ticket in result.tickets if ticket.ok)

        logger.info(
            "push_send_completed",
            recipients=len(messages),
            batches=len(report.batches),
            sent=report.sent,
            all_ok=report.all_ok,
        )
        return report

    def _post_batch(self, chunk: list[PushMessage]) -> PushBatchResult:
        body: list[dict[str, Any]] = [message.to_wire() for message in chunk]
        start_time = time.perf_counter()
        try:
            response = self._client.post(
                self._url, json=body, headers=self._headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "push_batch_transport_failed",
                recipients=len(chunk),
                error=str(exc),
            )
            raise PushGatewayError(f"Push gateway request failed: {exc}") from exc
        finally:
            PUSH_BATCH_DURATION_SECONDS.observe(time.perf_counter() - start_time)

        tickets = _parse_tickets(response)
        result = PushBatchResult(
            status_code=response.status_code,
            tickets=tickets,
            recipients=len(chunk),
        )
        if not result.ok:
            logger.warning(
                "push_batch_rejected",
                status_code=response.status_code,
                recipients=len(chunk),
                tickets=len(tickets),
                errors=[ticket.message for ticket in tickets if not ticket.ok],
            )
        return result


__all__ = ["ExpoPushClient", "build_messages"]
