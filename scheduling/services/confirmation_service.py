"""
Booking confirmation messages.

Builds the text sent back to the patient after a booking is created,
rescheduled or cancelled. A text generator may rephrase it; the template
below is always the fallback, so a slow or broken generator only costs the
nicer wording.
"""

import logging
from typing import Optional

from scheduling.models import Booking, BookingStatus
from scheduling.ports import TextGenerator
from scheduling.utils.date_parser import format_appointment_time
from shared.text_generation import generate_with_fallback

logger = logging.getLogger(__name__)


def confirmation_template(booking: Booking) -> str:
    """Deterministic confirmation text for a booking."""
    when = format_appointment_time(booking.start)
    appointment = booking.appointment_type

    if booking.status == BookingStatus.CANCELLED:
        return (
            f"Your {appointment} appointment on {when} has been cancelled. "
            f"Confirmation code: {booking.confirmation_code}."
        )
    if booking.status == BookingStatus.RESCHEDULED:
        return (
            f"Your {appointment} appointment has been moved to {when} "
            f"({booking.duration_minutes} minutes). "
            f"Confirmation code: {booking.confirmation_code}."
        )
    return (
        f"Your {appointment} appointment is booked for {when} "
        f"({booking.duration_minutes} minutes). "
        f"Confirmation code: {booking.confirmation_code}."
    )


def confirmation_prompt(template: str) -> str:
    return (
        "Rewrite the following appointment confirmation as a short, friendly "
        "message for the patient. Keep the date, time and confirmation code "
        f"exactly as written.\n\n{template}"
    )


async def compose_confirmation(
    booking: Booking,
    generator: Optional[TextGenerator] = None,
    timeout: float = 5.0,
) -> str:
    """
    Confirmation message for a booking.

    Returns the generated text when the generator answers in time and keeps
    the confirmation code, the template otherwise.
    """
    template = confirmation_template(booking)
    message = await generate_with_fallback(
        generator,
        confirmation_prompt(template),
        fallback=template,
        timeout=timeout,
    )

    if booking.confirmation_code not in message:
        logger.warning(
            "Generated confirmation dropped the confirmation code | using template",
            extra={"confirmation_code": booking.confirmation_code},
        )
        return template
    return message
