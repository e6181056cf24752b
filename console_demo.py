"""
Offline console demo: runs full booking conversations without any webhooks.

Uses the real dialogue engine, state machine, slot manager and
conversation store with an in-process mock scheduler. No network calls.
Designed for live demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario busy
    python console_demo.py --scenario cancel
"""

import argparse
import asyncio
from datetime import date, timedelta

from src.config import settings
from src.conversation.engine import DialogueEngine
from src.conversation.store import ConversationStore
from src.schemas.booking_schema import BookingRequest
from src.tools.catalog import StaticCatalogProvider

BLUE = "\033[94m"
GREEN = "\033[92m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_IDENTITY = "5491122334455@c.us"


class MockScheduler:
    """In-process scheduler: every slot is free except the ``busy`` ones."""

    def __init__(self, busy: frozenset = frozenset()) -> None:
        self.busy = busy
        self.bookings: list[BookingRequest] = []

    async def is_available(self, date: str, time: str, duration_minutes: int = 60) -> bool:
        print(f"{DIM}  >> availability {date} {time} ({duration_minutes} min){RESET}")
        return time not in self.busy

    async def submit(self, request: BookingRequest) -> bool:
        print(f"{DIM}  >> booking {request.to_payload()}{RESET}")
        self.bookings.append(request)
        return True


def _demo_date() -> str:
    return (date.today() + timedelta(days=7)).strftime("%d/%m/%Y")


# Pre-scripted scenarios for --scenario flag
SCENARIOS: dict[str, list[str]] = {
    "booking": ["Hola", "Juana Pérez", "2", _demo_date(), "15:00", "CONFIRMAR"],
    "busy": ["Hola", "Juana Pérez", "7", "1", _demo_date(), "15:00", "16:00", "confirmar"],
    "cancel": ["Hola", "Juana Pérez", "3", "31/13/2025", _demo_date(), "10:00", "cancelar"],
}


async def run_scenario(name: str) -> None:
    steps = SCENARIOS[name]
    scheduler = MockScheduler(busy=frozenset({"15:00"}) if name == "busy" else frozenset())
    store = ConversationStore()

    async def send(identity: str, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.business.name}]{RESET} {GREEN}{text}{RESET}\n")

    engine = DialogueEngine(
        store, StaticCatalogProvider(), scheduler, scheduler, send=send,
        contact_from_sender=True,
    )

    print()
    print(f"{BOLD}{'=' * 60}{RESET}")
    print(f"{BOLD}  BOOKING ASSISTANT - Scenario: {name}{RESET}")
    print(f"{BOLD}{'=' * 60}{RESET}")
    print()

    for text in steps:
        print(f"{BLUE}[Cliente] {RESET}{text}")
        await engine.handle_message(DEMO_IDENTITY, text)
        conversation = store.get(DEMO_IDENTITY)
        step = conversation.step.value if conversation else "finished"
        print(f"{DIM}  >> step: {step}{RESET}\n")

    print(f"{BOLD}{'=' * 60}{RESET}")
    print(f"{BOLD}  Scenario '{name}' complete. Bookings: {len(scheduler.bookings)}{RESET}")
    print(f"{BOLD}{'=' * 60}{RESET}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking assistant demo")
    parser.add_argument("--scenario", choices=sorted(SCENARIOS), default="booking")
    args = parser.parse_args()
    asyncio.run(run_scenario(args.scenario))


if __name__ == "__main__":
    main()
