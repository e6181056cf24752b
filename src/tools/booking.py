"""
Booking gateway for the external scheduler webhook.

A booking is attempted exactly once per confirmation and is never
retried automatically. The response is reduced to a strict boolean.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from src.config import settings
from src.schemas.booking_schema import BookingRequest
from src.tools.availability import is_true

logger = logging.getLogger(__name__)

SUCCESS_FIELDS = ("exito", "success")

_NO_BODY = object()


def interpret_booking_response(status_code: int, payload: Any = _NO_BODY) -> bool:
    """Reduce a scheduler booking response to a boolean.

    The record is either the payload itself or the first item of a list,
    and success is read from ``exito`` or ``success``. A bare JSON scalar
    such as ``true`` or ``"false"`` is read directly. Only when there is no
    structured body at all (nothing, ``{}`` or ``[]``) is a 2xx status
    accepted as success; the gateway passes non-JSON text as no body. Any
    other body without a recognizable success signal is a failure.
    """
    if payload is _NO_BODY or payload is None or payload in ({}, []):
        return 200 <= status_code < 300

    record = payload
    if isinstance(payload, list):
        record = payload[0]
    if not isinstance(record, dict):
        return is_true(record)

    for name in SUCCESS_FIELDS:
        if name in record and record[name] is not None:
            return is_true(record[name])
    return False


class BookingGateway:
    """Submits bookings; never raises past its boundary."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url or settings.webhooks.booking_url
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.webhooks.request_timeout_sec,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def submit(self, request: BookingRequest) -> bool:
        """Create the appointment. Returns True only on a definitive success."""
        logger.info(
            "Creating booking for %s: %s on %s at %s",
            request.customer_name, request.service_name, request.date, request.time,
        )
        try:
            response = await self._client.post(self.url, json=request.to_payload())
        except httpx.HTTPError as exc:
            logger.error("Booking request failed: %s", exc)
            return False

        try:
            payload: Any = response.json() if response.content else _NO_BODY
        except ValueError:
            payload = _NO_BODY

        success = interpret_booking_response(response.status_code, payload)
        if success:
            logger.info("Booking accepted by scheduler (status %d)", response.status_code)
        else:
            logger.error(
                "Booking not confirmed by scheduler (status %d): %r",
                response.status_code, response.text[:200],
            )
        return success
