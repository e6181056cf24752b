"""Terminal transport for local runs.

Each input line is ``identity: text``; a line without a colon is sent
from ``default_identity``. Replies are printed with the recipient.
"""

import asyncio
import sys
from typing import AsyncIterator, TextIO

from src.transport.base import InboundMessage

GREEN = "\033[92m"
DIM = "\033[2m"
RESET = "\033[0m"


def parse_line(line: str, default_identity: str) -> InboundMessage:
    identity, sep, text = line.partition(":")
    if sep and identity.strip() and "@" in identity:
        return InboundMessage(identity=identity.strip(), text=text.strip())
    return InboundMessage(identity=default_identity, text=line.strip())


class ConsoleTransport:
    """Reads customer messages from stdin and prints replies."""

    def __init__(
        self,
        default_identity: str = "5491100000000@c.us",
        stream: TextIO = sys.stdin,
    ) -> None:
        self.default_identity = default_identity
        self._stream = stream

    async def messages(self) -> AsyncIterator[InboundMessage]:
        while True:
            line = await asyncio.to_thread(self._stream.readline)
            if not line:
                return
            if not line.strip():
                continue
            if line.strip().lower() in ("quit", "exit", "q"):
                return
            yield parse_line(line, self.default_identity)

    async def send(self, identity: str, text: str) -> None:
        print(f"{DIM}[{identity}]{RESET} {GREEN}{text}{RESET}\n")
