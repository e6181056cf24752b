"""Per-customer conversation state held by the conversation store."""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from src.config import settings
from src.conversation.slot_manager import SlotManager
from src.conversation.state_machine import ConversationStateMachine, ConversationStep
from src.schemas.conversation_schema import Speaker, TranscriptTurn


@dataclass
class Conversation:
    """
    One booking conversation, keyed by the customer's chat address.

    Mutated only by the dialogue engine while it holds the store's lock
    for ``identity``.
    """
    identity: str
    transcript_limit: int = settings.conversation.transcript_window
    machine: ConversationStateMachine = field(default_factory=ConversationStateMachine)
    slots: SlotManager = field(default_factory=SlotManager)
    transcript: deque = field(init=False, default_factory=deque)
    last_activity: float = field(default_factory=time.monotonic)
    classifier_errors: int = 0

    def __post_init__(self) -> None:
        self.transcript = deque(maxlen=self.transcript_limit)

    @property
    def step(self) -> ConversationStep:
        return self.machine.current_step

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.monotonic() if now is None else now

    def is_idle(self, now: float, threshold_sec: float) -> bool:
        return now - self.last_activity > threshold_sec

    def record(self, speaker: Speaker, text: str) -> None:
        """Append a turn; the oldest turn is dropped once the window is full."""
        self.transcript.append(TranscriptTurn(speaker=speaker, text=text, timestamp=time.time()))
