"""
Booking assistant entry point.

Wires the scheduler gateways, catalog provider, optional intent
classifier and conversation store into a dialogue engine, then serves
messages from the console transport. Each inbound message is handled in
its own task; the store serializes messages from the same customer.

Usage:
    Console mode:  python main.py console
    Offline demo:  python console_demo.py
"""

import asyncio
import logging
import sys

from src.config import settings
from src.transport.base import ChatTransport

logger = logging.getLogger(__name__)


def build_engine(transport: ChatTransport):
    """Build a DialogueEngine replying through *transport*. Returns (engine, store, closers)."""
    from src.conversation.engine import DialogueEngine
    from src.conversation.intent import IntentClassifier
    from src.conversation.store import ConversationStore
    from src.tools.availability import AvailabilityGateway
    from src.tools.booking import BookingGateway
    from src.tools.catalog import DynamicCatalogProvider, StaticCatalogProvider
    from src.tools.qa import QAClient

    qa = QAClient()
    availability = AvailabilityGateway()
    booking = BookingGateway()

    if settings.conversation.catalog_source == "dynamic":
        catalogs = DynamicCatalogProvider(qa)
    else:
        catalogs = StaticCatalogProvider()

    classifier = None
    if settings.conversation.intent_fusion:
        classifier = IntentClassifier(qa, window=settings.conversation.transcript_window)

    store = ConversationStore()
    engine = DialogueEngine(
        store, catalogs, availability, booking, send=transport.send, classifier=classifier,
    )
    return engine, store, [qa.close, availability.close, booking.close]


async def _run_console_mode() -> None:
    """Serve customers typed into the terminal as ``identity: text`` lines."""
    from src.transport.console import ConsoleTransport

    transport: ChatTransport = ConsoleTransport()
    engine, store, closers = build_engine(transport)
    store.start()
    logger.info("Booking assistant ready for '%s'", settings.business.name)

    pending: set[asyncio.Task] = set()
    try:
        async for message in transport.messages():
            task = asyncio.create_task(engine.handle_message(message.identity, message.text))
            pending.add(task)
            task.add_done_callback(pending.discard)
        if pending:
            await asyncio.gather(*pending)
    finally:
        await store.stop()
        for close in closers:
            await close()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        asyncio.run(_run_console_mode())
    else:
        print(__doc__)
