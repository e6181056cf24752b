"""Customer-facing message texts for each step of the booking dialogue."""

from typing import Optional

from src.config import settings
from src.schemas.catalog_schema import ServiceCatalog, SlotCatalog

_biz = settings.business

CONFIRM_KEYWORD = "CONFIRMAR"
CANCEL_KEYWORD = "CANCELAR"


def build_welcome() -> str:
    return (
        f"👋 ¡Bienvenido/a a {_biz.name}! Soy tu asistente virtual para agendar citas.\n\n"
        "Para comenzar, por favor escribe tu nombre completo:"
    )


def build_qa_welcome(answer: str) -> str:
    """Reply to an opening question, inviting the customer to book."""
    return f"{answer}\n\nSi deseas agendar una cita, solo dímelo."


def build_name_prompt() -> str:
    return "Por favor, escribe tu nombre completo:"


def build_contact_prompt(name: str) -> str:
    return f"¡Gracias {name}! Por favor, comparte tu número de teléfono de contacto:"


def build_service_menu(catalog: ServiceCatalog, name: Optional[str] = None) -> str:
    lines = []
    if name:
        lines.append(f"¡Gracias {name}!")
    lines.append("¿Qué servicio deseas agendar? Responde con el número correspondiente:\n")
    for service_id, service in catalog:
        lines.append(f"{service_id}. {service.name} ({service.duration_minutes} min)")
    return "\n".join(lines)


def build_invalid_service(catalog: ServiceCatalog) -> str:
    keys = catalog.keys()
    return (
        f"Por favor, selecciona una opción válida ({keys[0]}-{keys[-1]}):\n\n"
        + build_service_menu(catalog)
    )


def build_date_prompt() -> str:
    return (
        "Perfecto. ¿Para qué fecha deseas agendar? Por favor, usa el formato "
        "DD/MM/YYYY (ejemplo: 10/03/2025):"
    )


def build_invalid_date(reason: str) -> str:
    """Corrective prompt for a rejected date; *reason* comes from the slot manager."""
    if reason == "past":
        return "Esa fecha ya pasó. Por favor, elige una fecha a partir de hoy (DD/MM/YYYY):"
    if reason == "invalid":
        return "Esa fecha no existe. Por favor, revisa el día y el mes (DD/MM/YYYY):"
    return "Por favor, ingresa la fecha en formato DD/MM/YYYY (ejemplo: 10/03/2025):"


def build_slot_menu(catalog: SlotCatalog) -> str:
    lines = ["Selecciona un horario disponible (responde con la hora exacta):\n"]
    lines.extend(f"- {time}" for time in catalog)
    return "\n".join(lines)


def build_invalid_time() -> str:
    return "Por favor, selecciona una hora válida de la lista proporcionada."


def build_unavailable_time() -> str:
    return "Lo sentimos, ese horario ya está ocupado. Por favor, selecciona otro horario:"


def build_summary(details: dict[str, str]) -> str:
    return (
        "📝 *Resumen de tu cita:*\n\n"
        f"Nombre: {details['customer_name']}\n"
        f"Teléfono: {details['customer_contact']}\n"
        f"Servicio: {details['service_name']}\n"
        f"Fecha: {details['date']}\n"
        f"Hora: {details['time']}\n\n"
        f"Para confirmar tu cita, escribe *{CONFIRM_KEYWORD}*. "
        f"Para cancelar, escribe *{CANCEL_KEYWORD}*."
    )


def build_confirm_reprompt() -> str:
    return (
        f"Por favor, escribe *{CONFIRM_KEYWORD}* para agendar tu cita "
        f"o *{CANCEL_KEYWORD}* para cancelar el proceso."
    )


def build_booking_success(service_name: str, date: str, time: str) -> str:
    return (
        "✅ *¡Cita confirmada!*\n\n"
        f"Tu cita para {service_name} ha sido agendada para el {date} a las {time}.\n\n"
        "Te recordaremos un día antes por este medio. Si necesitas cambiar o cancelar "
        "tu cita, por favor contáctanos con al menos 24 horas de anticipación.\n\n"
        f"¡Gracias por elegir {_biz.name}!"
    )


def build_booking_failure() -> str:
    return (
        "❌ Lo sentimos, hubo un problema al agendar tu cita. Por favor, intenta "
        f"nuevamente o contáctanos directamente al {_biz.fallback_phone}."
    )


def build_cancelled() -> str:
    return (
        "Entendido, hemos cancelado el proceso de reserva. Si deseas agendar en otro "
        'momento, solo escribe "Hola" para comenzar nuevamente.'
    )


def build_catalog_failure() -> str:
    return (
        "Lo sentimos, en este momento no podemos mostrar nuestros servicios y horarios. "
        "Por favor, intenta de nuevo más tarde."
    )


def build_classifier_failure() -> str:
    return "Lo sentimos, no pude procesar tu mensaje. ¿Podrías intentarlo de nuevo?"


def build_classifier_abandoned() -> str:
    return (
        "Lo sentimos, estamos teniendo problemas técnicos. Escribe \"Hola\" más "
        "tarde para comenzar de nuevo."
    )


def build_internal_error() -> str:
    return "Lo sentimos, ocurrió un error inesperado. Por favor, intenta nuevamente."


def build_fallback() -> str:
    return "Disculpa, no entendí tu mensaje. ¿Podrías repetirlo?"
