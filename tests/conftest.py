"""Shared test fixtures and helpers."""

from datetime import date
from typing import Optional

import httpx
import pytest

from src.conversation.engine import DialogueEngine
from src.conversation.intent import IntentKind, IntentResult
from src.conversation.slot_manager import SlotManager
from src.conversation.state_machine import ConversationStateMachine
from src.conversation.store import ConversationStore
from src.schemas.booking_schema import BookingRequest
from src.tools.catalog import DEFAULT_SERVICE_CATALOG, DEFAULT_SLOT_CATALOG, StaticCatalogProvider

CUSTOMER = "5491122334455@c.us"
TODAY = date(2025, 3, 1)


@pytest.fixture
def state_machine():
    return ConversationStateMachine()


@pytest.fixture
def slot_manager():
    return SlotManager(services=DEFAULT_SERVICE_CATALOG, slots=DEFAULT_SLOT_CATALOG)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAvailability:
    """Availability gateway double; slots in ``busy`` read unavailable."""

    def __init__(self, busy: frozenset = frozenset(), error: Optional[Exception] = None) -> None:
        self.busy = busy
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    async def is_available(self, date: str, time: str, duration_minutes: int = 60) -> bool:
        self.calls.append((date, time, duration_minutes))
        if self.error is not None:
            raise self.error
        return time not in self.busy


class FakeBooking:
    """Booking gateway double recording every submission."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.requests: list[BookingRequest] = []

    async def submit(self, request: BookingRequest) -> bool:
        self.requests.append(request)
        return self.result


class FakeClassifier:
    """Classifier double returning queued results, then field-supplied results."""

    def __init__(self, *results: IntentResult) -> None:
        self.results = list(results)
        self.seen: list[str] = []
        self.histories: list[list] = []

    def queue(self, kind: IntentKind, text: str = "") -> None:
        self.results.append(IntentResult(kind=kind, text=text))

    async def classify(self, message, transcript=()):
        self.seen.append(message)
        self.histories.append(list(transcript))
        if self.results:
            return self.results.pop(0)
        return IntentResult(kind=IntentKind.FIELD_SUPPLIED, text="")


class FailingCatalogs(StaticCatalogProvider):
    """Catalog provider whose service or slot load raises."""

    def __init__(self, services_error=None, slots_error=None) -> None:
        super().__init__()
        self.services_error = services_error
        self.slots_error = slots_error

    async def load_services(self):
        if self.services_error is not None:
            raise self.services_error
        return await super().load_services()

    async def load_slots(self, date):
        if self.slots_error is not None:
            raise self.slots_error
        return await super().load_slots(date)


class Outbox:
    """Transport double capturing outbound messages in send order."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, identity: str, text: str) -> None:
        self.sent.append((identity, text))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return ConversationStore(idle_timeout_sec=3600, sweep_interval_sec=3600, clock=clock)


@pytest.fixture
def availability():
    return FakeAvailability()


@pytest.fixture
def booking():
    return FakeBooking()


@pytest.fixture
def outbox():
    return Outbox()


def make_engine(
    store: ConversationStore,
    availability=None,
    booking=None,
    outbox: Optional[Outbox] = None,
    classifier=None,
    catalogs=None,
    contact_from_sender: bool = True,
) -> DialogueEngine:
    """Build an engine over fakes with a fixed 'today'."""
    return DialogueEngine(
        store,
        catalogs or StaticCatalogProvider(),
        availability or FakeAvailability(),
        booking or FakeBooking(),
        send=outbox.send if outbox else None,
        classifier=classifier,
        contact_from_sender=contact_from_sender,
        max_classifier_errors=3,
        today=lambda: TODAY,
    )


@pytest.fixture
def engine(store, availability, booking, outbox):
    return make_engine(store, availability, booking, outbox)


def json_transport(payload=None, status_code: int = 200, text: Optional[str] = None,
                   error: Optional[Exception] = None) -> httpx.MockTransport:
    """httpx transport answering every request with one canned response."""

    def handler(request: httpx.Request) -> httpx.Response:
        if error is not None:
            raise error
        if text is not None:
            return httpx.Response(status_code, text=text)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(handler)
