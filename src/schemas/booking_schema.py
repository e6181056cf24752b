"""Booking and availability request models."""

from datetime import datetime, timedelta

from pydantic import BaseModel, Field


class AvailabilityQuery(BaseModel):
    """A (date, time) pair checked against the scheduler. Side-effect free."""
    date: str
    time: str
    duration_minutes: int = Field(default=60, gt=0)

    def end_time(self) -> str:
        """End of the requested window as ``HH:MM``."""
        start = datetime.strptime(self.time, "%H:%M")
        return (start + timedelta(minutes=self.duration_minutes)).strftime("%H:%M")

    def to_payload(self) -> dict:
        return {
            "fecha": self.date,
            "hora": self.time,
            "duracion": self.duration_minutes,
            "hora_fin": self.end_time(),
        }


class BookingRequest(BaseModel):
    """Finalized booking fields, submitted once per confirmed conversation."""
    customer_name: str
    customer_contact: str
    service_id: str
    service_name: str
    duration_minutes: int = Field(gt=0)
    date: str
    time: str

    def to_payload(self) -> dict:
        return {
            "nombre": self.customer_name,
            "telefono": self.customer_contact,
            "servicio": self.service_name,
            "duracion": self.duration_minutes,
            "fecha": self.date,
            "hora": self.time,
        }
