"""
Intent classifier adapter over the document Q&A backend.

The backend replies with free text that may start with a tag such as
``[AGENDAR]`` or ``CONFIRMAR:``. Tags are stripped and mapped to an
``IntentKind`` here, so the dialogue engine never compares raw strings.

Usage:
    classifier = IntentClassifier(QAClient())
    result = await classifier.classify("quiero una cita", transcript)
    if result.kind == IntentKind.START_BOOKING:
        ...
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from src.prompts.prompt_templates import build_classifier_failure
from src.prompts.system_prompts import build_classifier_prompt
from src.schemas.conversation_schema import TranscriptTurn
from src.tools.qa import QABackendError, QAClient

logger = logging.getLogger(__name__)


class IntentKind(str, Enum):
    """Coarse intents the classifier can report."""
    GENERAL_QUESTION = "general_question"
    START_BOOKING = "start_booking"
    FIELD_SUPPLIED = "field_supplied"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    ERROR = "error"


INTENT_TAGS: dict[str, IntentKind] = {
    "AGENDAR": IntentKind.START_BOOKING,
    "RESERVAR": IntentKind.START_BOOKING,
    "NOMBRE_RECIBIDO": IntentKind.FIELD_SUPPLIED,
    "TELEFONO_RECIBIDO": IntentKind.FIELD_SUPPLIED,
    "SERVICIO_RECIBIDO": IntentKind.FIELD_SUPPLIED,
    "FECHA_RECIBIDA": IntentKind.FIELD_SUPPLIED,
    "HORA_RECIBIDA": IntentKind.FIELD_SUPPLIED,
    "CONFIRMAR": IntentKind.CONFIRM,
    "CANCELAR": IntentKind.CANCEL,
    "ERROR": IntentKind.ERROR,
}

_TAG_RE = re.compile(r"^\s*(?:\[([A-Za-z_]+)\]|([A-Za-z_]+)\s*:)\s*", re.UNICODE)


@dataclass(frozen=True)
class IntentResult:
    """Classifier verdict with the reply text left after tag stripping."""
    kind: IntentKind
    text: str
    tag: Optional[str] = None


def parse_tagged_reply(reply: str) -> IntentResult:
    """Strip a known leading tag and classify the reply.

    Unknown tags are left in the text and the reply counts as a general
    question.
    """
    match = _TAG_RE.match(reply)
    if match:
        tag = (match.group(1) or match.group(2)).upper()
        kind = INTENT_TAGS.get(tag)
        if kind is not None:
            return IntentResult(kind=kind, text=reply[match.end():].strip(), tag=tag)
    return IntentResult(kind=IntentKind.GENERAL_QUESTION, text=reply.strip())


class IntentClassifier:
    """Asks the Q&A backend to classify a message; never raises."""

    def __init__(self, qa_client: QAClient, window: int = 10) -> None:
        self._qa = qa_client
        self._window = window

    async def classify(
        self, message: str, transcript: Sequence[TranscriptTurn] = ()
    ) -> IntentResult:
        history = [turn.to_history() for turn in list(transcript)[-self._window:]]
        try:
            reply = await self._qa.answer(build_classifier_prompt(message), history)
        except QABackendError as exc:
            logger.warning("Intent classification failed: %s", exc)
            return IntentResult(kind=IntentKind.ERROR, text=build_classifier_failure())

        result = parse_tagged_reply(reply)
        if result.kind == IntentKind.ERROR and not result.text:
            result = IntentResult(kind=IntentKind.ERROR, text=build_classifier_failure(),
                                  tag=result.tag)
        logger.debug("Classified message as %s", result.kind.value)
        return result
