"""
Service and time-slot catalogs.

Static defaults cover a single salon. In dynamic mode both catalogs are
fetched as free text from the Q&A backend, which is expected to embed a
JSON payload somewhere in its reply:

    services:  {"1": {"nombre": "Corte de cabello", "duracion": 30}, ...}
    slots:     ["10:00", "11:00", ...]

A catalog is adopted whole or not at all.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from src.prompts.system_prompts import SERVICE_CATALOG_PROMPT, build_slot_catalog_prompt
from src.schemas.catalog_schema import Service, ServiceCatalog, SlotCatalog
from src.tools.qa import QABackendError, QAClient

logger = logging.getLogger(__name__)

DEFAULT_SERVICES: dict[str, Service] = {
    "1": Service(name="Corte de cabello", duration_minutes=30),
    "2": Service(name="Tinte", duration_minutes=120),
    "3": Service(name="Peinado", duration_minutes=45),
    "4": Service(name="Tratamiento capilar", duration_minutes=60),
    "5": Service(name="Manicura", duration_minutes=45),
}

DEFAULT_SLOTS: tuple[str, ...] = (
    "10:00", "11:00", "12:00", "13:00", "15:00", "16:00", "17:00", "18:00",
)

DEFAULT_SERVICE_CATALOG = ServiceCatalog.from_mapping(DEFAULT_SERVICES)
DEFAULT_SLOT_CATALOG = SlotCatalog(times=DEFAULT_SLOTS)

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_NAME_FIELDS = ("name", "nombre")
_DURATION_FIELDS = ("duration", "duracion", "duration_minutes")


class CatalogError(Exception):
    """Base class for catalog loading failures."""


class CatalogUnavailableError(CatalogError):
    """The knowledge source could not be reached."""


class CatalogUnparsableError(CatalogError):
    """The knowledge source replied without a usable catalog payload."""


def _bracket_span_end(text: str, start: int) -> Optional[int]:
    """Index just past the bracket that closes ``text[start]``, or None if it never closes."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char in "{[":
            depth += 1
        elif char in "}]":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def extract_payload(text: str, opener: str) -> Any:
    """Return the first top-level JSON value starting with *opener* in *text*.

    Prose before and after the payload is ignored. A bracketed span that
    closes but does not decode (``[ver abajo]``) is skipped as a whole;
    nothing nested inside a candidate is ever tried on its own, so a
    malformed catalog is never partially adopted.

    Raises:
        CatalogUnparsableError: If a candidate never closes or none decodes.
    """
    start = text.find(opener)
    while start != -1:
        end = _bracket_span_end(text, start)
        if end is None:
            raise CatalogUnparsableError(f"Payload starting with {opener!r} is truncated")
        try:
            return json.loads(text[start:end])
        except json.JSONDecodeError:
            start = text.find(opener, end)
    raise CatalogUnparsableError(f"No JSON payload starting with {opener!r} found")


def _first_field(record: dict, names: tuple[str, ...]) -> Any:
    for name in names:
        if name in record:
            return record[name]
    return None


def normalize_time(value: str) -> Optional[str]:
    """Zero-pad ``H:MM`` to ``HH:MM``; ``None`` if not a valid time of day."""
    match = _TIME_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def parse_service_catalog(text: str) -> ServiceCatalog:
    """Parse a service catalog embedded in free text.

    Raises:
        CatalogUnparsableError: On a missing, malformed or empty payload.
    """
    payload = extract_payload(text, "{")
    if not isinstance(payload, dict) or not payload:
        raise CatalogUnparsableError("Service catalog payload is empty")

    services: dict[str, Service] = {}
    for key in sorted(payload, key=lambda k: int(k) if str(k).isdigit() else -1):
        if not str(key).isdigit():
            raise CatalogUnparsableError(f"Service key {key!r} is not numeric")
        record = payload[key]
        if not isinstance(record, dict):
            raise CatalogUnparsableError(f"Service {key!r} is not an object")
        try:
            services[str(key)] = Service(
                name=_first_field(record, _NAME_FIELDS),
                duration_minutes=_first_field(record, _DURATION_FIELDS),
            )
        except ValidationError as exc:
            raise CatalogUnparsableError(f"Service {key!r} is invalid: {exc}") from exc
    return ServiceCatalog.from_mapping(services)


def parse_slot_catalog(text: str) -> SlotCatalog:
    """Parse a slot catalog embedded in free text.

    Raises:
        CatalogUnparsableError: On a missing, malformed or empty payload.
    """
    payload = extract_payload(text, "[")
    if not isinstance(payload, list) or not payload:
        raise CatalogUnparsableError("Slot catalog payload is empty")

    times: list[str] = []
    for item in payload:
        normalized = normalize_time(item) if isinstance(item, str) else None
        if normalized is None:
            raise CatalogUnparsableError(f"Invalid slot time {item!r}")
        if normalized not in times:
            times.append(normalized)
    return SlotCatalog(times=tuple(times))


class CatalogProvider(Protocol):
    """Supplies catalog snapshots to the dialogue engine."""

    async def load_services(self) -> ServiceCatalog: ...

    async def load_slots(self, date: str) -> SlotCatalog: ...


class StaticCatalogProvider:
    """Fixed catalogs from configuration; never fails."""

    def __init__(
        self,
        services: ServiceCatalog = DEFAULT_SERVICE_CATALOG,
        slots: SlotCatalog = DEFAULT_SLOT_CATALOG,
    ) -> None:
        self._services = services
        self._slots = slots

    async def load_services(self) -> ServiceCatalog:
        return self._services

    async def load_slots(self, date: str) -> SlotCatalog:
        return self._slots


class DynamicCatalogProvider:
    """Fetches catalogs from the Q&A knowledge source on every load."""

    def __init__(self, qa_client: QAClient) -> None:
        self._qa = qa_client

    async def load_services(self) -> ServiceCatalog:
        text = await self._fetch(SERVICE_CATALOG_PROMPT)
        catalog = parse_service_catalog(text)
        logger.info("Loaded %d services from knowledge source", len(catalog))
        return catalog

    async def load_slots(self, date: str) -> SlotCatalog:
        text = await self._fetch(build_slot_catalog_prompt(date))
        catalog = parse_slot_catalog(text)
        logger.info("Loaded %d slots for %s from knowledge source", len(catalog), date)
        return catalog

    async def _fetch(self, prompt: str) -> str:
        try:
            return await self._qa.answer(prompt)
        except QABackendError as exc:
            raise CatalogUnavailableError(str(exc)) from exc
