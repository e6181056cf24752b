"""Conversation transcript schemas."""

from enum import Enum

from pydantic import BaseModel


class Speaker(str, Enum):
    ASSISTANT = "assistant"
    CUSTOMER = "customer"


class ConversationOutcome(str, Enum):
    BOOKED = "booked"
    BOOKING_FAILED = "booking_failed"
    CANCELLED = "cancelled"
    CATALOG_FAILED = "catalog_failed"
    CLASSIFIER_FAILED = "classifier_failed"
    IDLE_TIMEOUT = "idle_timeout"


class TranscriptTurn(BaseModel):
    """A single turn in a conversation transcript."""

    speaker: Speaker
    text: str
    timestamp: float

    def to_history(self) -> dict[str, str]:
        """Role/content form sent to the Q&A backend."""
        role = "user" if self.speaker == Speaker.CUSTOMER else "assistant"
        return {"role": role, "content": self.text}
