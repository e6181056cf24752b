"""Chat transport boundary consumed by the dialogue engine.

The real transport (session connection, device pairing) lives outside
this package; it only has to deliver ``InboundMessage`` objects and
implement ``send``.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Protocol


@dataclass(frozen=True)
class InboundMessage:
    """One message from a customer, as delivered by the transport."""
    identity: str
    text: str


class ChatTransport(Protocol):
    """Delivers inbound messages and sends replies (fire-and-forget)."""

    def messages(self) -> AsyncIterator[InboundMessage]: ...

    async def send(self, identity: str, text: str) -> None: ...
