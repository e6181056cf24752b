"""Service and time-slot catalog models.

Catalogs are immutable snapshots: a conversation keeps the snapshot that
was valid when it entered service or time selection, even if the provider
later reloads a different one.
"""

from dataclasses import dataclass
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field


class Service(BaseModel):
    """A bookable service."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    duration_minutes: int = Field(gt=0)


@dataclass(frozen=True)
class ServiceCatalog:
    """Ordered mapping of short service identifiers to services."""

    entries: tuple[tuple[str, Service], ...]

    @classmethod
    def from_mapping(cls, services: dict[str, Service]) -> "ServiceCatalog":
        return cls(entries=tuple(services.items()))

    def get(self, service_id: str) -> Optional[Service]:
        for key, service in self.entries:
            if key == service_id:
                return service
        return None

    def __contains__(self, service_id: object) -> bool:
        return any(key == service_id for key, _ in self.entries)

    def __iter__(self) -> Iterator[tuple[str, Service]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def keys(self) -> list[str]:
        return [key for key, _ in self.entries]


@dataclass(frozen=True)
class SlotCatalog:
    """Ordered offerable times of day (``HH:MM``), independent of date."""

    times: tuple[str, ...]

    def __contains__(self, time: object) -> bool:
        return time in self.times

    def __iter__(self) -> Iterator[str]:
        return iter(self.times)

    def __len__(self) -> int:
        return len(self.times)
