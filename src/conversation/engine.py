"""
Dialogue engine: drives one booking conversation per customer.

Consumes one inbound message at a time per customer, advances the step
machine, consults the intent classifier and the scheduler gateways, and
sends the replies before releasing the customer's lock. Messages from
different customers run concurrently; one customer's failure never
touches another's conversation.

Usage:
    engine = DialogueEngine(store, StaticCatalogProvider(), availability, booking,
                            send=transport.send)
    replies = await engine.handle_message("5491122334455@c.us", "Hola")
"""

from __future__ import annotations

from datetime import date
from typing import Awaitable, Callable, Optional

from src.config import settings
from src.conversation.intent import IntentClassifier, IntentKind, IntentResult
from src.conversation.session import Conversation
from src.conversation.state_machine import (
    COLLECT_STEPS,
    ConversationStep,
    TransitionTrigger,
)
from src.conversation.store import ConversationStore
from src.logging_context import get_conversation_logger, set_conversation_id
from src.prompts import prompt_templates as messages
from src.schemas.conversation_schema import ConversationOutcome, Speaker
from src.tools.availability import AvailabilityGateway
from src.tools.booking import BookingGateway
from src.tools.catalog import CatalogError, CatalogProvider
from src.utils import contact_from_address

logger = get_conversation_logger(__name__)

Sender = Callable[[str, str], Awaitable[None]]
Handler = Callable[[Conversation, str, Optional[IntentResult]], Awaitable[list[str]]]

CONFIRM_LITERALS = frozenset({"confirmar", "confirm"})
CANCEL_LITERALS = frozenset({"cancelar", "cancel"})

OUTCOMES: dict[TransitionTrigger, ConversationOutcome] = {
    TransitionTrigger.BOOKING_SUCCEEDED: ConversationOutcome.BOOKED,
    TransitionTrigger.BOOKING_FAILED: ConversationOutcome.BOOKING_FAILED,
    TransitionTrigger.CUSTOMER_CANCELLED: ConversationOutcome.CANCELLED,
    TransitionTrigger.CATALOG_FAILED: ConversationOutcome.CATALOG_FAILED,
    TransitionTrigger.CLASSIFIER_FAILED: ConversationOutcome.CLASSIFIER_FAILED,
    TransitionTrigger.IDLE_TIMEOUT: ConversationOutcome.IDLE_TIMEOUT,
}


class DialogueEngine:
    """Per-conversation booking dialogue over a shared conversation store."""

    def __init__(
        self,
        store: ConversationStore,
        catalogs: CatalogProvider,
        availability: AvailabilityGateway,
        booking: BookingGateway,
        send: Optional[Sender] = None,
        classifier: Optional[IntentClassifier] = None,
        *,
        contact_from_sender: Optional[bool] = None,
        max_classifier_errors: Optional[int] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self._catalogs = catalogs
        self._availability = availability
        self._booking = booking
        self._send = send
        self._classifier = classifier
        self._contact_from_sender = (
            settings.conversation.contact_from_sender
            if contact_from_sender is None else contact_from_sender
        )
        self._max_classifier_errors = (
            max_classifier_errors or settings.conversation.max_classifier_errors
        )
        self._today = today
        self._handlers: dict[ConversationStep, Handler] = {
            ConversationStep.START: self._on_start,
            ConversationStep.COLLECT_NAME: self._on_name,
            ConversationStep.COLLECT_CONTACT: self._on_contact,
            ConversationStep.COLLECT_SERVICE: self._on_service,
            ConversationStep.COLLECT_DATE: self._on_date,
            ConversationStep.COLLECT_TIME: self._on_time,
            ConversationStep.CONFIRM: self._on_confirm,
        }

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    async def handle_message(self, identity: str, text: str) -> list[str]:
        """Process one inbound message and send every reply it produces.

        Returns the replies in the order they were sent.
        """
        set_conversation_id(identity)
        async with self._store.session(identity):
            try:
                replies = await self._dispatch(identity, text)
            except Exception:
                conversation = self._store.get(identity)
                step = conversation.step.value if conversation else "none"
                logger.exception("Unhandled error for %s in step %s", identity, step)
                replies = [messages.build_internal_error()]

            for reply in replies:
                await self._deliver(identity, reply)
        return replies

    async def _dispatch(self, identity: str, text: str) -> list[str]:
        text = text.strip()
        conversation, created = self._store.get_or_create(identity)
        history = list(conversation.transcript)
        conversation.record(Speaker.CUSTOMER, text)

        if created and self._classifier is None:
            conversation.machine.transition(TransitionTrigger.BOOKING_STARTED)
            replies = [messages.build_welcome()]
        else:
            replies = await self._advance(conversation, text, history)

        for reply in replies:
            conversation.record(Speaker.ASSISTANT, reply)

        if conversation.machine.is_terminal():
            self._finish(conversation)
        else:
            self._store.touch(identity)
        return replies

    async def _advance(self, conversation: Conversation, text: str, history: list) -> list[str]:
        intent: Optional[IntentResult] = None
        if self._classifier is not None:
            intent = await self._classifier.classify(text, history)
            if intent.kind == IntentKind.ERROR:
                return self._classifier_failed(conversation, intent)
            conversation.classifier_errors = 0
            if intent.kind == IntentKind.CANCEL and conversation.step in COLLECT_STEPS:
                return self._cancel(conversation)

        handler = self._handlers.get(conversation.step)
        if handler is None:
            logger.warning("No handler for step %s", conversation.step.value)
            return [intent.text if intent and intent.text else messages.build_fallback()]
        return await handler(conversation, text, intent)

    async def _deliver(self, identity: str, text: str) -> None:
        if self._send is None:
            return
        try:
            await self._send(identity, text)
        except Exception:
            logger.exception("Failed to send reply to %s", identity)

    def _finish(self, conversation: Conversation) -> None:
        trigger = conversation.machine.get_history()[-1].trigger
        outcome = OUTCOMES.get(trigger) if trigger else None
        logger.info(
            "Conversation %s finished in %s (%s); slots: %s",
            conversation.identity,
            conversation.step.value,
            outcome.value if outcome else "unknown",
            conversation.slots.get_stats(),
        )
        self._store.remove(conversation.identity)

    # ------------------------------------------------------------------ #
    # Step handlers
    # ------------------------------------------------------------------ #

    async def _on_start(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        if intent is not None and intent.kind != IntentKind.START_BOOKING:
            return [messages.build_qa_welcome(intent.text)]
        conversation.machine.transition(TransitionTrigger.BOOKING_STARTED)
        replies = [intent.text] if intent is not None and intent.text else []
        replies.append(messages.build_welcome())
        return replies

    async def _on_name(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        # Name and contact accept any text; an answered question is not a value.
        if _is_side_question(intent):
            return [_with_answer(intent, messages.build_name_prompt())]
        ok, _ = conversation.slots.set_slot("customer_name", text)
        if not ok:
            return [_with_answer(intent, messages.build_name_prompt())]
        name = conversation.slots.get_slot_value("customer_name")

        if self._contact_from_sender:
            conversation.slots.set_slot(
                "customer_contact", contact_from_address(conversation.identity)
            )
            return await self._enter_service_selection(
                conversation, TransitionTrigger.CONTACT_DERIVED, name
            )

        conversation.machine.transition(TransitionTrigger.NAME_RECEIVED)
        return [messages.build_contact_prompt(name)]

    async def _on_contact(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        name = conversation.slots.get_slot_value("customer_name") or ""
        if _is_side_question(intent):
            return [_with_answer(intent, messages.build_contact_prompt(name))]
        ok, _ = conversation.slots.set_slot("customer_contact", text)
        if not ok:
            return [_with_answer(intent, messages.build_contact_prompt(name))]
        return await self._enter_service_selection(
            conversation, TransitionTrigger.CONTACT_RECEIVED
        )

    async def _enter_service_selection(
        self, conversation: Conversation, trigger: TransitionTrigger, name: Optional[str] = None
    ) -> list[str]:
        try:
            catalog = await self._catalogs.load_services()
        except CatalogError as exc:
            logger.error(
                "Service catalog failed for %s in step %s: %s",
                conversation.identity, conversation.step.value, exc,
            )
            return self._abort_catalog(conversation)

        conversation.slots.attach_services(catalog)
        conversation.machine.transition(trigger)
        return [messages.build_service_menu(catalog, name)]

    async def _on_service(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        ok, _ = conversation.slots.set_slot("service_id", text)
        if not ok:
            catalog = conversation.slots.service_catalog
            return [_with_answer(intent, messages.build_invalid_service(catalog))]
        conversation.machine.transition(TransitionTrigger.SERVICE_SELECTED)
        return [messages.build_date_prompt()]

    async def _on_date(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        ok, reason = conversation.slots.set_slot("date", text, today=self._today())
        if not ok:
            return [_with_answer(intent, messages.build_invalid_date(reason))]

        chosen = conversation.slots.get_slot_value("date")
        try:
            catalog = await self._catalogs.load_slots(chosen)
        except CatalogError as exc:
            logger.error(
                "Slot catalog failed for %s on %s: %s", conversation.identity, chosen, exc,
            )
            return self._abort_catalog(conversation)

        conversation.slots.attach_slots(catalog)
        conversation.machine.transition(TransitionTrigger.DATE_ACCEPTED)
        return [messages.build_slot_menu(catalog)]

    async def _on_time(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        slots = conversation.slots
        ok, _ = slots.set_slot("time", text)
        if not ok:
            return [_with_answer(intent, messages.build_invalid_time())]

        chosen_date = slots.get_slot_value("date")
        chosen_time = slots.get_slot_value("time")
        service = slots.selected_service()
        duration = service.duration_minutes if service else 60
        try:
            available = await self._availability.is_available(chosen_date, chosen_time, duration)
        except Exception:
            logger.exception("Availability check raised for %s", conversation.identity)
            available = False

        if not available:
            slots.clear_slot("time")
            conversation.machine.transition(TransitionTrigger.SLOT_UNAVAILABLE)
            return [messages.build_unavailable_time()]

        conversation.machine.transition(TransitionTrigger.SLOT_AVAILABLE)
        return [messages.build_summary(slots.to_dict())]

    async def _on_confirm(
        self, conversation: Conversation, text: str, intent: Optional[IntentResult]
    ) -> list[str]:
        decision = _confirmation_decision(text, intent)
        if decision == IntentKind.CANCEL:
            return self._cancel(conversation)
        if decision != IntentKind.CONFIRM:
            return [_with_answer(intent, messages.build_confirm_reprompt())]

        request = conversation.slots.build_request()
        try:
            booked = await self._booking.submit(request)
        except Exception:
            logger.exception("Booking submission raised for %s", conversation.identity)
            booked = False

        if booked:
            conversation.machine.transition(TransitionTrigger.BOOKING_SUCCEEDED)
            return [messages.build_booking_success(request.service_name, request.date, request.time)]
        conversation.machine.transition(TransitionTrigger.BOOKING_FAILED)
        return [messages.build_booking_failure()]

    # ------------------------------------------------------------------ #
    # Exits
    # ------------------------------------------------------------------ #

    def _cancel(self, conversation: Conversation) -> list[str]:
        conversation.machine.transition(TransitionTrigger.CUSTOMER_CANCELLED)
        return [messages.build_cancelled()]

    def _abort_catalog(self, conversation: Conversation) -> list[str]:
        conversation.machine.transition(TransitionTrigger.CATALOG_FAILED)
        return [messages.build_catalog_failure()]

    def _classifier_failed(self, conversation: Conversation, intent: IntentResult) -> list[str]:
        conversation.classifier_errors += 1
        logger.warning(
            "Classifier error %d/%d for %s in step %s",
            conversation.classifier_errors, self._max_classifier_errors,
            conversation.identity, conversation.step.value,
        )
        if conversation.classifier_errors >= self._max_classifier_errors:
            conversation.machine.transition(TransitionTrigger.CLASSIFIER_FAILED)
            return [messages.build_classifier_abandoned()]
        return [intent.text]


def _confirmation_decision(text: str, intent: Optional[IntentResult]) -> Optional[IntentKind]:
    literal = text.strip().lower()
    if literal in CONFIRM_LITERALS:
        return IntentKind.CONFIRM
    if literal in CANCEL_LITERALS:
        return IntentKind.CANCEL
    if intent is not None and intent.kind in (IntentKind.CONFIRM, IntentKind.CANCEL):
        return intent.kind
    return None


def _is_side_question(intent: Optional[IntentResult]) -> bool:
    return intent is not None and intent.kind == IntentKind.GENERAL_QUESTION and bool(intent.text)


def _with_answer(intent: Optional[IntentResult], prompt: str) -> str:
    """Prefix a corrective prompt with the classifier's answer to a side question."""
    if _is_side_question(intent):
        return f"{intent.text}\n\n{prompt}"
    return prompt
