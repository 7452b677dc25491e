"""
Appointment Type Catalog.

Maps appointment type names ("cleaning", "root canal", "Root-Canal") to their
default duration. Names are normalised (case, hyphens and underscores) so the
conversational layer can pass whatever the patient said.

Used by BookingTransactionManager.book() when the request carries no explicit
duration.
"""

import logging
import re
from typing import Mapping, Optional

from scheduling.errors import UnknownAppointmentTypeError

logger = logging.getLogger(__name__)

# Default durations in minutes
DEFAULT_APPOINTMENT_TYPES = {
    "cleaning": 60,
    "checkup": 30,
    "filling": 45,
    "root canal": 90,
    "crown": 60,
    "extraction": 45,
    "consultation": 30,
    "emergency": 45,
    "whitening": 60,
    "general": 30,
    "dental": 30,
}


def normalize_type_name(name: str) -> str:
    """'Root-Canal' / 'root_canal' / '  ROOT canal ' -> 'root canal'."""
    return re.sub(r"[\s_\-]+", " ", name).strip().lower()


class AppointmentTypeCatalog:
    """Appointment type name -> default duration minutes."""

    def __init__(self, durations: Optional[Mapping[str, int]] = None):
        source = DEFAULT_APPOINTMENT_TYPES if durations is None else durations
        self._durations: dict[str, int] = {}
        for name, minutes in source.items():
            if minutes <= 0:
                raise ValueError(f"Duration for '{name}' must be positive, got {minutes}")
            self._durations[normalize_type_name(name)] = minutes

    def __contains__(self, name: str) -> bool:
        return normalize_type_name(name) in self._durations

    @property
    def names(self) -> list[str]:
        return sorted(self._durations)

    def duration_for(self, name: str) -> int:
        """
        Default duration of an appointment type.

        Raises:
            UnknownAppointmentTypeError: If the type is not in the catalog
        """
        key = normalize_type_name(name)
        try:
            return self._durations[key]
        except KeyError:
            logger.warning(f"Unknown appointment type requested: '{name}'")
            raise UnknownAppointmentTypeError(
                f"Unknown appointment type '{name}'",
                {"appointment_type": name, "known_types": self.names},
            ) from None

    def resolve(self, name: str, explicit_minutes: Optional[int] = None) -> tuple[str, int]:
        """
        Return (normalised type name, duration).

        An explicit duration overrides the catalog default but the type must
        still be known.
        """
        duration = self.duration_for(name)
        return normalize_type_name(name), explicit_minutes or duration


async def load_appointment_catalog(session=None) -> AppointmentTypeCatalog:
    """
    Build the catalog from the active rows of the appointment_types table.

    Args:
        session: Optional existing AsyncSession; a new one is opened otherwise
    """
    from sqlalchemy import select

    from database.connection import get_async_session
    from database.models import AppointmentTypeRecord

    async def _fetch(sess) -> AppointmentTypeCatalog:
        result = await sess.execute(
            select(AppointmentTypeRecord).where(AppointmentTypeRecord.is_active.is_(True))
        )
        return AppointmentTypeCatalog(
            {row.name: row.duration_minutes for row in result.scalars().all()}
        )

    if session is not None:
        catalog = await _fetch(session)
    else:
        async with get_async_session() as sess:
            catalog = await _fetch(sess)

    logger.info(f"Appointment type catalog loaded: {len(catalog.names)} types")
    return catalog
