from src.conversation.engine import DialogueEngine
from src.conversation.intent import IntentClassifier, IntentKind, IntentResult
from src.conversation.slot_manager import SlotManager, SlotStatus
from src.conversation.state_machine import (
    ConversationStateMachine,
    ConversationStep,
    TransitionTrigger,
)
from src.conversation.store import ConversationStore

__all__ = [
    "DialogueEngine",
    "ConversationStore",
    "ConversationStateMachine",
    "ConversationStep",
    "TransitionTrigger",
    "IntentClassifier",
    "IntentKind",
    "IntentResult",
    "SlotManager",
    "SlotStatus",
]
