"""
Centralized instructions sent to the document Q&A backend.

The backend answers free-form questions from the salon's documents and,
when asked to classify, prefixes its reply with one of the tags below.
Business-specific values are injected from configuration, not hardcoded.
"""

from src.config import settings

_biz = settings.business

BUSINESS_CONTEXT = f"""
Eres el asistente virtual de {_biz.name} y atiendes por chat.
Responde solo con información de los documentos del negocio.
"""

CLASSIFIER_INSTRUCTIONS = f"""{BUSINESS_CONTEXT}

Antes de tu respuesta escribe UNA etiqueta entre corchetes según la intención
del último mensaje del cliente:
- [AGENDAR] el cliente quiere reservar una cita
- [NOMBRE_RECIBIDO] el cliente dio su nombre
- [TELEFONO_RECIBIDO] el cliente dio su teléfono
- [SERVICIO_RECIBIDO] el cliente eligió un servicio
- [FECHA_RECIBIDA] el cliente dio una fecha
- [HORA_RECIBIDA] el cliente dio una hora
- [CONFIRMAR] el cliente confirma la cita
- [CANCELAR] el cliente quiere cancelar
Si es una pregunta general, responde sin etiqueta. Máximo tres frases.
"""

SERVICE_CATALOG_PROMPT = (
    "Devuelve el catálogo de servicios como un objeto JSON cuyas claves son "
    'números consecutivos ("1", "2", ...) y cuyos valores tienen "nombre" y '
    '"duracion" en minutos. No agregues otros campos.'
)


def build_slot_catalog_prompt(date: str) -> str:
    """Ask the knowledge source for the offerable times on *date*."""
    return (
        f"Devuelve los horarios de atención ofrecidos para el {date} como una "
        'lista JSON de horas en formato "HH:MM", por ejemplo ["10:00", "11:00"].'
    )


def build_classifier_prompt(message: str) -> str:
    """Wrap a customer message with the classification instructions."""
    return f"{CLASSIFIER_INSTRUCTIONS}\nMensaje del cliente: {message}"
