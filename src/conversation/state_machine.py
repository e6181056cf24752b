"""
Finite state machine for deterministic booking dialogue control.

Defines the booking steps and the explicit transitions between them.
Every conversation follows a path through the step graph, so the
probabilistic classifier can only move a conversation along edges that
exist here.

Usage:
    sm = ConversationStateMachine()
    sm.transition(TransitionTrigger.BOOKING_STARTED)
    assert sm.current_step == ConversationStep.COLLECT_NAME
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ConversationStep(str, Enum):
    """All possible steps in a booking conversation."""
    START = "start"
    COLLECT_NAME = "collect_name"
    COLLECT_CONTACT = "collect_contact"
    COLLECT_SERVICE = "collect_service"
    COLLECT_DATE = "collect_date"
    COLLECT_TIME = "collect_time"
    CONFIRM = "confirm"
    BOOKED = "booked"
    CANCELLED = "cancelled"
    ABANDONED = "abandoned"


TERMINAL_STEPS = frozenset({
    ConversationStep.BOOKED,
    ConversationStep.CANCELLED,
    ConversationStep.ABANDONED,
})

COLLECT_STEPS = frozenset({
    ConversationStep.COLLECT_NAME,
    ConversationStep.COLLECT_CONTACT,
    ConversationStep.COLLECT_SERVICE,
    ConversationStep.COLLECT_DATE,
    ConversationStep.COLLECT_TIME,
})


class TransitionTrigger(str, Enum):
    """Events that cause step transitions."""
    BOOKING_STARTED = "booking_started"
    NAME_RECEIVED = "name_received"
    CONTACT_DERIVED = "contact_derived"
    CONTACT_RECEIVED = "contact_received"
    SERVICE_SELECTED = "service_selected"
    DATE_ACCEPTED = "date_accepted"
    SLOT_AVAILABLE = "slot_available"
    SLOT_UNAVAILABLE = "slot_unavailable"
    BOOKING_SUCCEEDED = "booking_succeeded"
    BOOKING_FAILED = "booking_failed"
    CUSTOMER_CANCELLED = "customer_cancelled"
    CATALOG_FAILED = "catalog_failed"
    CLASSIFIER_FAILED = "classifier_failed"
    IDLE_TIMEOUT = "idle_timeout"


@dataclass
class Transition:
    """A single valid step transition."""
    from_step: ConversationStep
    to_step: ConversationStep
    trigger: TransitionTrigger


@dataclass
class StepEntry:
    """Recorded history entry for a step visit."""
    step: ConversationStep
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current step."""


def _exits(trigger: TransitionTrigger, to_step: ConversationStep,
           from_steps: frozenset) -> list[Transition]:
    return [Transition(step, to_step, trigger) for step in sorted(from_steps)]


_OPEN_STEPS = COLLECT_STEPS | {ConversationStep.START, ConversationStep.CONFIRM}


class ConversationStateMachine:
    """
    Deterministic step machine controlling one booking conversation.

    Validation failures do not transition at all: the step stays put and
    the engine re-prompts. Only the edges below are legal.
    """

    TRANSITIONS: list[Transition] = [
        # --- Opening ---
        Transition(ConversationStep.START, ConversationStep.COLLECT_NAME,
                   TransitionTrigger.BOOKING_STARTED),

        # --- Slot filling ---
        Transition(ConversationStep.COLLECT_NAME, ConversationStep.COLLECT_CONTACT,
                   TransitionTrigger.NAME_RECEIVED),
        Transition(ConversationStep.COLLECT_CONTACT, ConversationStep.COLLECT_SERVICE,
                   TransitionTrigger.CONTACT_RECEIVED),
        Transition(ConversationStep.COLLECT_NAME, ConversationStep.COLLECT_SERVICE,
                   TransitionTrigger.CONTACT_DERIVED),
        Transition(ConversationStep.COLLECT_SERVICE, ConversationStep.COLLECT_DATE,
                   TransitionTrigger.SERVICE_SELECTED),
        Transition(ConversationStep.COLLECT_DATE, ConversationStep.COLLECT_TIME,
                   TransitionTrigger.DATE_ACCEPTED),

        # --- Availability ---
        Transition(ConversationStep.COLLECT_TIME, ConversationStep.CONFIRM,
                   TransitionTrigger.SLOT_AVAILABLE),
        Transition(ConversationStep.COLLECT_TIME, ConversationStep.COLLECT_TIME,
                   TransitionTrigger.SLOT_UNAVAILABLE),
        Transition(ConversationStep.CONFIRM, ConversationStep.COLLECT_TIME,
                   TransitionTrigger.SLOT_UNAVAILABLE),

        # --- Booking result ---
        Transition(ConversationStep.CONFIRM, ConversationStep.BOOKED,
                   TransitionTrigger.BOOKING_SUCCEEDED),
        Transition(ConversationStep.CONFIRM, ConversationStep.ABANDONED,
                   TransitionTrigger.BOOKING_FAILED),

        # --- Early exits ---
        *_exits(TransitionTrigger.CUSTOMER_CANCELLED, ConversationStep.CANCELLED,
                COLLECT_STEPS | {ConversationStep.CONFIRM}),
        *_exits(TransitionTrigger.CATALOG_FAILED, ConversationStep.ABANDONED,
                frozenset({ConversationStep.COLLECT_NAME, ConversationStep.COLLECT_CONTACT,
                           ConversationStep.COLLECT_DATE})),
        *_exits(TransitionTrigger.CLASSIFIER_FAILED, ConversationStep.ABANDONED, _OPEN_STEPS),
        *_exits(TransitionTrigger.IDLE_TIMEOUT, ConversationStep.ABANDONED, _OPEN_STEPS),
    ]

    def __init__(self) -> None:
        self._current_step = ConversationStep.START
        self._history: list[StepEntry] = [
            StepEntry(step=ConversationStep.START, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_step(self) -> ConversationStep:
        return self._current_step

    def transition(self, trigger: TransitionTrigger) -> ConversationStep:
        """
        Execute a step transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new conversation step.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_step == self._current_step and t.trigger == trigger:
                old_step = self._current_step
                self._current_step = t.to_step
                self._history.append(StepEntry(
                    step=self._current_step,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "Step transition: %s -> %s (trigger: %s)",
                    old_step.value, self._current_step.value, trigger.value,
                )
                return self._current_step

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_step.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def can_transition(self, trigger: TransitionTrigger) -> bool:
        return trigger in self.get_valid_triggers()

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current step."""
        return [t.trigger for t in self.TRANSITIONS if t.from_step == self._current_step]

    def get_history(self) -> list[StepEntry]:
        """Return the full step transition history."""
        return list(self._history)

    def get_step_trace(self) -> list[str]:
        """Return ordered list of step names visited."""
        return [entry.step.value for entry in self._history]

    def is_terminal(self) -> bool:
        """Check if the conversation has reached a terminal step."""
        return self._current_step in TERMINAL_STEPS
