"""
Booking notifications sent by email through SendGrid.

In dev mode (no SENDGRID_API_KEY), messages are logged instead of sent.
Sending is fire-and-forget: notify() never raises.
"""
from typing import List, Optional, Tuple

from .config import APP_NAME, APP_BASE_URL, SENDGRID_API_KEY, SENDGRID_FROM_EMAIL
from .logging_config import get_logger, log_error, log_external_service

logger = get_logger("notifications")

BOOKING_CREATED_CUSTOMER = "booking_created_customer"
BOOKING_CREATED_TECHNICIAN = "booking_created_technician"
BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_COMPLETED = "booking_completed"
BOOKING_CANCELLED = "booking_cancelled"

CANCELLER_LABELS = {
    "customer": "el cliente",
    "technician": "el técnico",
    "admin": "el administrador",
}


def format_time(value: str) -> str:
    """'14:30' -> '2:30 PM'."""
    hours, minutes = value.split(":")
    hour = int(hours)
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minutes} {suffix}"


def _booking_details(booking: dict) -> str:
    return (
        f"Servicio: {booking['service_type']}\n"
        f"Fecha: {booking['scheduled_date']}\n"
        f"Hora: {format_time(booking['scheduled_time'])}\n"
        f"Dirección: {booking['address']}, {booking['city']}\n"
    )


def render_message(kind: str, payload: dict, base_url: str = APP_BASE_URL) -> Tuple[List[str], str, str]:
    """
    Build recipients, subject and plain-text body for a notification.

    Raises:
        ValueError: for an unknown notification kind
    """
    booking = payload["booking"]
    customer = booking["customer"]
    technician = booking["technician"]
    details = _booking_details(booking)
    link = f"{base_url}/bookings/{booking['id']}"

    if kind == BOOKING_CREATED_CUSTOMER:
        return (
            [customer["email"]],
            f"Reserva creada - {APP_NAME}",
            f"Hola {customer['name']},\n\nTu reserva con {technician['name']} ha sido creada.\n\n"
            f"{details}\nEstado: pendiente de confirmación.\n{link}\n",
        )
    if kind == BOOKING_CREATED_TECHNICIAN:
        return (
            [technician["email"]],
            f"Nueva reserva - {APP_NAME}",
            f"Hola {technician['name']},\n\n{customer['name']} ha solicitado un servicio.\n\n"
            f"{details}Teléfono: {booking['phone']}\n\nConfirma en menos de 1 hora para ganar puntos extra.\n{link}\n",
        )
    if kind == BOOKING_CONFIRMED:
        return (
            [customer["email"]],
            f"Reserva confirmada - {APP_NAME}",
            f"Hola {customer['name']},\n\n{technician['name']} confirmó tu reserva.\n\n{details}\n{link}\n",
        )
    if kind == BOOKING_COMPLETED:
        return (
            [customer["email"]],
            f"Servicio completado - {APP_NAME}",
            f"Hola {customer['name']},\n\nTu servicio con {technician['name']} fue completado.\n\n"
            f"{details}\nDeja una reseña y gana puntos.\n{link}\n",
        )
    if kind == BOOKING_CANCELLED:
        canceller = CANCELLER_LABELS.get(payload.get("cancelled_by"), "el sistema")
        reason = payload.get("reason")
        reason_text = f"Motivo: {reason}\n" if reason else ""
        return (
            [customer["email"], technician["email"]],
            f"Reserva cancelada - {APP_NAME}",
            f"La reserva #{booking['id']} fue cancelada por {canceller}.\n\n{details}{reason_text}",
        )
    raise ValueError(f"Unknown notification kind: {kind}")


class Notifier:
    """Sends booking notifications by email."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: str = SENDGRID_FROM_EMAIL,
        base_url: str = APP_BASE_URL,
    ):
        self.api_key = SENDGRID_API_KEY if api_key is None else api_key
        self.from_email = from_email
        self.base_url = base_url

    def notify(self, kind: str, payload: dict) -> bool:
        """Send a notification. Returns False on failure instead of raising."""
        booking_id = payload.get("booking", {}).get("id")
        try:
            recipients, subject, body = render_message(kind, payload, self.base_url)
            for email in recipients:
                self._send(email, subject, body)
            return True
        except Exception as e:
            log_error("Notification failed", e, booking_id=booking_id, event=kind)
            return False

    def _send(self, email: str, subject: str, body: str) -> None:
        if not self.api_key:
            logger.info(f"[DEV MODE] Email would be sent to: {email}")
            logger.info(f"Subject: {subject}")
            logger.debug(body)
            return

        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        message = Mail(
            from_email=self.from_email,
            to_emails=email,
            subject=subject,
            plain_text_content=body,
        )
        response = SendGridAPIClient(self.api_key).send(message)
        ok = response.status_code in [200, 201, 202]
        log_external_service("SendGrid", f"send to {email}", success=ok, status=response.status_code)
        if not ok:
            raise RuntimeError(f"SendGrid answered {response.status_code}")


class RecordingNotifier:
    """Keeps notifications in memory instead of sending them."""

    def __init__(self):
        self.sent = []

    def notify(self, kind: str, payload: dict) -> bool:
        self.sent.append((kind, payload))
        return True

    def kinds(self) -> List[str]:
        return [kind for kind, _ in self.sent]
