"""Integration tests: dialogue engine + store + slot manager + gateway doubles."""

import asyncio

import pytest

from src.conversation.intent import IntentKind, IntentResult
from src.conversation.session import Conversation
from src.conversation.state_machine import ConversationStep
from src.conversation.store import ConversationStore
from src.prompts import prompt_templates as messages
from src.tools.catalog import CatalogUnavailableError, CatalogUnparsableError
from tests.conftest import (
    CUSTOMER,
    FailingCatalogs,
    FakeAvailability,
    FakeBooking,
    FakeClassifier,
    Outbox,
    make_engine,
)


async def _drive(engine, *texts, identity=CUSTOMER):
    replies = []
    for text in texts:
        replies.append(await engine.handle_message(identity, text))
    return replies


class TestFullBookingFlow:
    """Simulate a complete booking from greeting to confirmation."""

    @pytest.mark.asyncio
    async def test_happy_path(self, engine, store, booking, availability, outbox):
        welcome, = await engine.handle_message(CUSTOMER, "Hola")
        assert welcome == messages.build_welcome()
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_NAME

        menu, = await engine.handle_message(CUSTOMER, "Juana Pérez")
        assert menu.startswith("¡Gracias Juana Pérez!")
        assert "2. Tinte (120 min)" in menu
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_SERVICE

        date_prompt, = await engine.handle_message(CUSTOMER, "2")
        assert date_prompt == messages.build_date_prompt()

        time_menu, = await engine.handle_message(CUSTOMER, "10/03/2025")
        assert "- 15:00" in time_menu
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_TIME

        summary, = await engine.handle_message(CUSTOMER, "15:00")
        assert "Nombre: Juana Pérez" in summary
        assert "Teléfono: 5491122334455" in summary
        assert "Servicio: Tinte" in summary
        assert "Fecha: 2025-03-10" in summary
        assert "Hora: 15:00" in summary
        assert availability.calls == [("2025-03-10", "15:00", 120)]

        success, = await engine.handle_message(CUSTOMER, "CONFIRMAR")
        assert success == messages.build_booking_success("Tinte", "2025-03-10", "15:00")
        assert CUSTOMER not in store
        assert booking.requests[0].to_payload() == {
            "nombre": "Juana Pérez",
            "telefono": "5491122334455",
            "servicio": "Tinte",
            "duracion": 120,
            "fecha": "2025-03-10",
            "hora": "15:00",
        }
        assert [text for _, text in outbox.sent] == [
            welcome, menu, date_prompt, time_menu, summary, success,
        ]

    @pytest.mark.asyncio
    async def test_asks_for_contact_when_not_derived(self, store):
        engine = make_engine(store, contact_from_sender=False)
        await _drive(engine, "Hola")
        prompt, = await engine.handle_message(CUSTOMER, "Juana Pérez")
        assert prompt == messages.build_contact_prompt("Juana Pérez")

        menu, = await engine.handle_message(CUSTOMER, "11 5555 0000")
        assert menu.startswith("¿Qué servicio deseas agendar?")
        conversation = store.get(CUSTOMER)
        assert conversation.slots.get_slot_value("customer_contact") == "11 5555 0000"

    @pytest.mark.asyncio
    async def test_new_conversation_after_completion(self, engine, store):
        await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025", "15:00", "CONFIRMAR")
        welcome, = await engine.handle_message(CUSTOMER, "Hola de nuevo")
        assert welcome == messages.build_welcome()
        assert store.get(CUSTOMER).slots.get_slot_value("customer_name") is None


class TestCorrections:
    @pytest.mark.asyncio
    async def test_invalid_service_keeps_fields(self, engine, store):
        await _drive(engine, "Hola", "Juana Pérez")
        reply, = await engine.handle_message(CUSTOMER, "7")
        assert reply.startswith("Por favor, selecciona una opción válida (1-5)")
        conversation = store.get(CUSTOMER)
        assert conversation.step == ConversationStep.COLLECT_SERVICE
        assert conversation.slots.get_slot_value("customer_name") == "Juana Pérez"
        assert conversation.slots.get_slot_value("customer_contact") == "5491122334455"

    @pytest.mark.asyncio
    async def test_past_date_reprompts(self, engine, store):
        await _drive(engine, "Hola", "Juana Pérez", "2")
        reply, = await engine.handle_message(CUSTOMER, "28/02/2025")
        assert reply == messages.build_invalid_date("past")
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_DATE

    @pytest.mark.asyncio
    async def test_time_not_in_menu(self, engine, store, availability):
        await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025")
        reply, = await engine.handle_message(CUSTOMER, "14:00")
        assert reply == messages.build_invalid_time()
        assert availability.calls == []

    @pytest.mark.asyncio
    async def test_unavailable_slot_stays_in_time_selection(self, store):
        availability = FakeAvailability(busy=frozenset({"15:00"}))
        engine = make_engine(store, availability=availability)
        await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025")

        reply, = await engine.handle_message(CUSTOMER, "15:00")
        assert reply == messages.build_unavailable_time()
        conversation = store.get(CUSTOMER)
        assert conversation.step == ConversationStep.COLLECT_TIME
        assert conversation.slots.get_slot_value("customer_name") == "Juana Pérez"
        assert conversation.slots.get_slot_value("service_id") == "2"
        assert conversation.slots.get_slot_value("date") == "2025-03-10"
        assert conversation.slots.get_slot_value("time") is None

        summary, = await engine.handle_message(CUSTOMER, "16:00")
        assert "Hora: 16:00" in summary

    @pytest.mark.asyncio
    async def test_availability_error_reads_unavailable(self, store):
        availability = FakeAvailability(error=RuntimeError("boom"))
        engine = make_engine(store, availability=availability)
        await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025")
        reply, = await engine.handle_message(CUSTOMER, "15:00")
        assert reply == messages.build_unavailable_time()
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_TIME

    @pytest.mark.asyncio
    async def test_confirmation_reprompts_on_other_text(self, engine, store, booking):
        await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025", "15:00")
        reply, = await engine.handle_message(CUSTOMER, "sí, dale")
        assert reply == messages.build_confirm_reprompt()
        assert store.get(CUSTOMER).step == ConversationStep.CONFIRM
        assert booking.requests == []


class TestTerminalOutcomes:
    @pytest.mark.asyncio
    async def test_cancel_at_confirmation(self, engine, store, booking):
        await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025", "15:00")
        reply, = await engine.handle_message(CUSTOMER, "cancelar")
        assert reply == messages.build_cancelled()
        assert CUSTOMER not in store
        assert booking.requests == []

    @pytest.mark.asyncio
    async def test_booking_failure_ends_conversation(self, store):
        booking = FakeBooking(result=False)
        engine = make_engine(store, booking=booking)
        replies = await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025", "15:00", "confirmar")
        assert replies[-1] == [messages.build_booking_failure()]
        assert len(booking.requests) == 1
        assert CUSTOMER not in store

    @pytest.mark.asyncio
    async def test_service_catalog_failure_aborts(self, store):
        engine = make_engine(store, catalogs=FailingCatalogs(
            services_error=CatalogUnavailableError("down"),
        ))
        await _drive(engine, "Hola")
        reply, = await engine.handle_message(CUSTOMER, "Juana Pérez")
        assert reply == messages.build_catalog_failure()
        assert CUSTOMER not in store

    @pytest.mark.asyncio
    async def test_slot_catalog_failure_aborts(self, store):
        engine = make_engine(store, catalogs=FailingCatalogs(
            slots_error=CatalogUnparsableError("no list"),
        ))
        await _drive(engine, "Hola", "Juana Pérez", "2")
        reply, = await engine.handle_message(CUSTOMER, "10/03/2025")
        assert reply == messages.build_catalog_failure()
        assert CUSTOMER not in store

    @pytest.mark.asyncio
    async def test_idle_conversation_restarts(self, engine, store, clock):
        await _drive(engine, "Hola", "Juana Pérez")
        clock.advance(3601)
        assert await store.sweep() == 1
        welcome, = await engine.handle_message(CUSTOMER, "2")
        assert welcome == messages.build_welcome()


class TestIsolation:
    @pytest.mark.asyncio
    async def test_customers_do_not_share_state(self, engine, store):
        other = "5491199998888@c.us"
        await _drive(engine, "Hola", "Juana Pérez")
        await _drive(engine, "Hola", "Pedro Gómez", identity=other)
        assert store.get(CUSTOMER).slots.get_slot_value("customer_name") == "Juana Pérez"
        assert store.get(other).slots.get_slot_value("customer_contact") == "5491199998888"

    @pytest.mark.asyncio
    async def test_concurrent_messages_for_one_customer_are_ordered(self, engine, store, outbox):
        await asyncio.gather(
            engine.handle_message(CUSTOMER, "Hola"),
            engine.handle_message(CUSTOMER, "Juana Pérez"),
        )
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_SERVICE
        assert outbox.sent[0][1] == messages.build_welcome()

    @pytest.mark.asyncio
    async def test_booking_exception_reads_as_failure(self, store):
        class ExplodingBooking:
            async def submit(self, request):
                raise RuntimeError("boom")

        outbox = Outbox()
        engine = make_engine(store, booking=ExplodingBooking(), outbox=outbox)
        replies = await _drive(engine, "Hola", "Juana Pérez", "2", "10/03/2025", "15:00", "CONFIRMAR")
        assert replies[-1] == [messages.build_booking_failure()]
        assert len(outbox.sent) == 6

    @pytest.mark.asyncio
    async def test_unhandled_error_sends_apology(self, store, outbox):
        engine = make_engine(store, outbox=outbox, catalogs=FailingCatalogs(
            services_error=RuntimeError("boom"),
        ))
        await engine.handle_message(CUSTOMER, "Hola")
        reply, = await engine.handle_message(CUSTOMER, "Juana Pérez")
        assert reply == messages.build_internal_error()
        assert outbox.sent[-1] == (CUSTOMER, messages.build_internal_error())
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_NAME

    @pytest.mark.asyncio
    async def test_send_failure_does_not_break_handling(self, store):
        class BrokenOutbox(Outbox):
            async def send(self, identity, text):
                raise ConnectionError("offline")

        engine = make_engine(store, outbox=BrokenOutbox())
        replies = await engine.handle_message(CUSTOMER, "Hola")
        assert replies == [messages.build_welcome()]
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_NAME


class TestIntentFusion:
    @pytest.mark.asyncio
    async def test_general_question_before_booking(self, store):
        classifier = FakeClassifier(
            IntentResult(kind=IntentKind.GENERAL_QUESTION, text="Abrimos de 9 a 18 hs."),
        )
        engine = make_engine(store, classifier=classifier)
        reply, = await engine.handle_message(CUSTOMER, "¿A qué hora abren?")
        assert reply == messages.build_qa_welcome("Abrimos de 9 a 18 hs.")
        assert store.get(CUSTOMER).step == ConversationStep.START

    @pytest.mark.asyncio
    async def test_start_booking_intent(self, store):
        classifier = FakeClassifier(
            IntentResult(kind=IntentKind.START_BOOKING, text="¡Claro!"),
        )
        engine = make_engine(store, classifier=classifier)
        replies = await engine.handle_message(CUSTOMER, "quiero una cita")
        assert replies == ["¡Claro!", messages.build_welcome()]
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_NAME

    @pytest.mark.asyncio
    async def test_classifier_error_keeps_state(self, store):
        classifier = FakeClassifier(
            IntentResult(kind=IntentKind.START_BOOKING, text=""),
            IntentResult(kind=IntentKind.ERROR, text=messages.build_classifier_failure()),
        )
        engine = make_engine(store, classifier=classifier)
        await engine.handle_message(CUSTOMER, "quiero una cita")
        reply, = await engine.handle_message(CUSTOMER, "Juana Pérez")
        assert reply == messages.build_classifier_failure()
        conversation = store.get(CUSTOMER)
        assert conversation.step == ConversationStep.COLLECT_NAME
        assert conversation.slots.get_slot_value("customer_name") is None

        menu, = await engine.handle_message(CUSTOMER, "Juana Pérez")
        assert menu.startswith("¡Gracias Juana Pérez!")
        assert conversation.classifier_errors == 0

    @pytest.mark.asyncio
    async def test_repeated_classifier_errors_abandon(self, store):
        error = IntentResult(kind=IntentKind.ERROR, text=messages.build_classifier_failure())
        engine = make_engine(store, classifier=FakeClassifier(error, error, error))
        replies = await _drive(engine, "hola", "hola", "hola")
        assert replies[-1] == [messages.build_classifier_abandoned()]
        assert CUSTOMER not in store

    @pytest.mark.asyncio
    async def test_cancel_intent_in_collect_step(self, store):
        classifier = FakeClassifier(
            IntentResult(kind=IntentKind.START_BOOKING, text=""),
            IntentResult(kind=IntentKind.CANCEL, text=""),
        )
        engine = make_engine(store, classifier=classifier)
        await engine.handle_message(CUSTOMER, "quiero una cita")
        reply, = await engine.handle_message(CUSTOMER, "mejor no")
        assert reply == messages.build_cancelled()
        assert CUSTOMER not in store

    @pytest.mark.asyncio
    async def test_side_question_prefixes_corrective_prompt(self, store):
        classifier = FakeClassifier(IntentResult(kind=IntentKind.START_BOOKING, text=""))
        engine = make_engine(store, classifier=classifier)
        await _drive(engine, "quiero una cita", "Juana Pérez")
        classifier.queue(IntentKind.GENERAL_QUESTION, "El tinte dura dos horas.")
        reply, = await engine.handle_message(CUSTOMER, "¿cuánto dura el tinte?")
        assert reply.startswith("El tinte dura dos horas.\n\n")
        assert store.get(CUSTOMER).step == ConversationStep.COLLECT_SERVICE

    @pytest.mark.asyncio
    async def test_confirm_intent_books(self, store):
        classifier = FakeClassifier(IntentResult(kind=IntentKind.START_BOOKING, text=""))
        booking = FakeBooking()
        engine = make_engine(store, booking=booking, classifier=classifier)
        await _drive(engine, "quiero una cita", "Juana Pérez", "2", "10/03/2025", "15:00")
        classifier.queue(IntentKind.CONFIRM, "")
        reply, = await engine.handle_message(CUSTOMER, "sí, perfecto")
        assert reply == messages.build_booking_success("Tinte", "2025-03-10", "15:00")
        assert len(booking.requests) == 1

    @pytest.mark.asyncio
    async def test_side_question_at_name_is_not_stored(self, store):
        classifier = FakeClassifier(
            IntentResult(kind=IntentKind.START_BOOKING, text=""),
            IntentResult(kind=IntentKind.GENERAL_QUESTION, text="El tinte cuesta $50."),
        )
        engine = make_engine(store, classifier=classifier)
        await engine.handle_message(CUSTOMER, "quiero una cita")
        reply, = await engine.handle_message(CUSTOMER, "¿cuánto cuesta el tinte?")
        assert reply == f"El tinte cuesta $50.\n\n{messages.build_name_prompt()}"
        conversation = store.get(CUSTOMER)
        assert conversation.step == ConversationStep.COLLECT_NAME
        assert conversation.slots.get_slot_value("customer_name") is None

    @pytest.mark.asyncio
    async def test_side_question_at_contact_is_not_stored(self, store):
        classifier = FakeClassifier(IntentResult(kind=IntentKind.START_BOOKING, text=""))
        engine = make_engine(store, classifier=classifier, contact_from_sender=False)
        await _drive(engine, "quiero una cita", "Juana Pérez")
        classifier.queue(IntentKind.GENERAL_QUESTION, "Abrimos de 9 a 18 hs.")
        reply, = await engine.handle_message(CUSTOMER, "¿a qué hora abren?")
        assert reply.startswith("Abrimos de 9 a 18 hs.\n\n")
        conversation = store.get(CUSTOMER)
        assert conversation.step == ConversationStep.COLLECT_CONTACT
        assert conversation.slots.get_slot_value("customer_contact") is None

    @pytest.mark.asyncio
    async def test_classifier_sees_only_prior_window(self, clock):
        store = ConversationStore(
            idle_timeout_sec=3600, sweep_interval_sec=3600, clock=clock,
            factory=lambda identity: Conversation(identity, transcript_limit=4),
        )
        classifier = FakeClassifier(IntentResult(kind=IntentKind.START_BOOKING, text=""))
        engine = make_engine(store, classifier=classifier)
        replies = await _drive(engine, "quiero una cita", "Juana Pérez", "2", "10/03/2025")

        history = [turn.text for turn in classifier.histories[-1]]
        assert history == ["Juana Pérez", replies[1][0], "2", replies[2][0]]
        assert classifier.histories[0] == []
        assert len(store.get(CUSTOMER).transcript) == 4
