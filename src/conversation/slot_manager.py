"""
Slot-filling manager for the booking fields.

Each field has its own validation and normalisation rule. A failed
validation leaves every stored field untouched, so a conversation that
re-prompts never loses what it already collected.

Usage:
    manager = SlotManager(services=catalog)
    ok, reason = manager.set_slot("service_id", "2")
    if manager.all_required_filled():
        request = manager.build_request()
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date as date_cls
from enum import Enum
from typing import Any, Optional

from src.schemas.booking_schema import BookingRequest
from src.schemas.catalog_schema import Service, ServiceCatalog, SlotCatalog
from src.tools.catalog import normalize_time

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


class SlotStatus(str, Enum):
    """Lifecycle status of a slot value."""

    EMPTY = "empty"
    VALIDATED = "validated"


def normalize_date(value: str, today: date_cls) -> tuple[Optional[str], str]:
    """Turn ``D/M/YYYY`` into ``YYYY-MM-DD``.

    Returns:
        (iso_date, reason): iso_date is None when rejected, with reason
        one of ``"format"``, ``"invalid"`` or ``"past"``.
    """
    match = _DATE_RE.match(value.strip())
    if not match:
        return None, "format"
    day, month, year = (int(part) for part in match.groups())
    try:
        parsed = date_cls(year, month, day)
    except ValueError:
        return None, "invalid"
    if parsed < today:
        return None, "past"
    return parsed.isoformat(), ""


@dataclass(frozen=True)
class SlotDefinition:
    """Schema for a single booking field."""

    name: str
    display_name: str
    required: bool = True


@dataclass
class SlotValue:
    """Current state and history of a collected field."""

    raw_value: Optional[str] = None
    normalized_value: Optional[str] = None
    status: SlotStatus = SlotStatus.EMPTY
    attempts: int = 0
    rejected_values: list[str] = field(default_factory=list)


class SlotManager:
    """
    Collects and validates booking fields against frozen catalog snapshots.

    The service and slot catalogs are attached when the conversation
    enters service and time selection and are not replaced afterwards
    except by an explicit ``attach_*`` call at those same points.
    """

    SLOT_DEFINITIONS: list[SlotDefinition] = [
        SlotDefinition(name="customer_name", display_name="nombre"),
        SlotDefinition(name="customer_contact", display_name="teléfono"),
        SlotDefinition(name="service_id", display_name="servicio"),
        SlotDefinition(name="date", display_name="fecha"),
        SlotDefinition(name="time", display_name="hora"),
    ]

    def __init__(
        self,
        services: Optional[ServiceCatalog] = None,
        slots: Optional[SlotCatalog] = None,
    ) -> None:
        self.slots: dict[str, SlotValue] = {
            defn.name: SlotValue() for defn in self.SLOT_DEFINITIONS
        }
        self.service_catalog = services
        self.slot_catalog = slots

    def attach_services(self, catalog: ServiceCatalog) -> None:
        self.service_catalog = catalog

    def attach_slots(self, catalog: SlotCatalog) -> None:
        self.slot_catalog = catalog

    def _get_definition(self, name: str) -> SlotDefinition:
        for defn in self.SLOT_DEFINITIONS:
            if defn.name == name:
                return defn
        raise ValueError(f"Unknown slot: {name}")

    def _normalize(self, name: str, value: str, today: Optional[date_cls]) -> tuple[Optional[str], str]:
        """Apply field-specific rules. Returns (normalized, error_reason)."""
        value = value.strip()
        if name in ("customer_name", "customer_contact"):
            return (value, "") if value else (None, "empty")
        if name == "service_id":
            if self.service_catalog is None or value not in self.service_catalog:
                return None, "unknown_service"
            return value, ""
        if name == "date":
            return normalize_date(value, today or date_cls.today())
        if name == "time":
            normalized = normalize_time(value)
            if normalized is None:
                return None, "format"
            if self.slot_catalog is None or normalized not in self.slot_catalog:
                return None, "not_offered"
            return normalized, ""
        return value, ""

    def set_slot(self, name: str, raw_value: str, today: Optional[date_cls] = None) -> tuple[bool, str]:
        """
        Set a field value with validation.

        Returns:
            (success, reason): reason is empty on success, otherwise a
            short code such as ``"format"``, ``"past"`` or ``"unknown_service"``.
        """
        self._get_definition(name)
        slot = self.slots[name]
        slot.attempts += 1

        normalized, reason = self._normalize(name, raw_value, today)
        if normalized is None:
            slot.rejected_values.append(raw_value)
            logger.debug("Slot '%s' validation failed (%s): %r", name, reason, raw_value)
            return False, reason

        slot.raw_value = raw_value
        slot.normalized_value = normalized
        slot.status = SlotStatus.VALIDATED
        logger.debug("Slot '%s' set to %r", name, normalized)
        return True, ""

    def clear_slot(self, name: str) -> None:
        """Forget a field value, e.g. a time that proved unavailable."""
        slot = self.slots[name]
        slot.raw_value = None
        slot.normalized_value = None
        slot.status = SlotStatus.EMPTY

    def get_slot_value(self, name: str) -> Optional[str]:
        """Get the normalized value of a field."""
        return self.slots[name].normalized_value

    def all_required_filled(self) -> bool:
        return all(
            self.slots[d.name].status == SlotStatus.VALIDATED
            for d in self.SLOT_DEFINITIONS
            if d.required
        )

    def get_missing_slots(self) -> list[SlotDefinition]:
        return [
            d for d in self.SLOT_DEFINITIONS
            if d.required and self.slots[d.name].status != SlotStatus.VALIDATED
        ]

    def selected_service(self) -> Optional[Service]:
        service_id = self.get_slot_value("service_id")
        if service_id is None or self.service_catalog is None:
            return None
        return self.service_catalog.get(service_id)

    def to_dict(self) -> dict[str, Any]:
        """Export collected values, plus the service display name when known."""
        data: dict[str, Any] = {
            d.name: self.slots[d.name].normalized_value
            for d in self.SLOT_DEFINITIONS
            if self.slots[d.name].normalized_value is not None
        }
        service = self.selected_service()
        if service is not None:
            data["service_name"] = service.name
            data["duration_minutes"] = service.duration_minutes
        return data

    def build_request(self) -> BookingRequest:
        """Assemble the booking request. Raises ValueError if fields are missing."""
        missing = self.get_missing_slots()
        if missing:
            raise ValueError(f"Missing booking fields: {[d.name for d in missing]}")
        data = self.to_dict()
        return BookingRequest(
            customer_name=data["customer_name"],
            customer_contact=data["customer_contact"],
            service_id=data["service_id"],
            service_name=data["service_name"],
            duration_minutes=data["duration_minutes"],
            date=data["date"],
            time=data["time"],
        )

    def get_stats(self) -> dict[str, Any]:
        """Collection statistics for operator logs."""
        return {
            "total_attempts": sum(s.attempts for s in self.slots.values()),
            "total_rejections": sum(len(s.rejected_values) for s in self.slots.values()),
            "slots_filled": sum(
                1 for s in self.slots.values() if s.status == SlotStatus.VALIDATED
            ),
        }
