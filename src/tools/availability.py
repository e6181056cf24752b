"""
Availability gateway for the external scheduler webhook.

The scheduler answers with loosely-typed payloads; this module reduces
them to a strict boolean. Every failure resolves to "unavailable" so the
customer stays in time selection and can try again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from src.config import settings
from src.schemas.booking_schema import AvailabilityQuery

logger = logging.getLogger(__name__)

AVAILABLE_FIELDS = ("disponible", "available")
RETRY_BACKOFF_SECONDS = 0.5


def is_true(value: Any) -> bool:
    """Accept only ``True`` or the string ``"true"`` (any case)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _record_is_free(record: Any) -> bool:
    if not isinstance(record, dict):
        return False
    for name in AVAILABLE_FIELDS:
        if name in record:
            return is_true(record[name])
    return False


def interpret_availability(payload: Any) -> bool:
    """Reduce a scheduler availability payload to a boolean.

    A non-empty list is available only if every record says so. A single
    object is treated as a one-record list. Anything else, including an
    empty list or no payload, is unavailable.
    """
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not payload:
        return False
    return all(_record_is_free(record) for record in payload)


class AvailabilityGateway:
    """Checks slot availability; never raises past its boundary."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        attempts: Optional[int] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url or settings.webhooks.availability_url
        self.attempts = attempts or settings.webhooks.availability_attempts
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.webhooks.request_timeout_sec,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def is_available(self, date: str, time: str, duration_minutes: int = 60) -> bool:
        """Return True only when the scheduler clearly reports the slot free."""
        query = AvailabilityQuery(date=date, time=time, duration_minutes=duration_minutes)
        logger.info("Checking availability for %s at %s", date, time)

        for attempt in range(1, self.attempts + 1):
            try:
                response = await self._client.post(self.url, json=query.to_payload())
                response.raise_for_status()
                payload = response.json()
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                logger.warning(
                    "Availability attempt %d/%d failed (%s)",
                    attempt, self.attempts, type(exc).__name__,
                )
                if attempt < self.attempts:
                    await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
                continue
            except httpx.HTTPStatusError as exc:
                logger.error("Availability check rejected: %s", exc)
                return False
            except ValueError:
                logger.error("Availability response is not JSON: %r", response.text[:200])
                return False
            except httpx.HTTPError as exc:
                logger.error("Availability check failed (%s): %s", type(exc).__name__, exc)
                return False

            available = interpret_availability(payload)
            if not available:
                logger.info("Availability payload for %s %s reads busy: %s", date, time, payload)
            return available

        logger.error("Availability check for %s %s failed after %d attempts",
                     date, time, self.attempts)
        return False
