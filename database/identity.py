"""
Subject identity resolution (find-or-create by phone or email).

Phones are normalised to E.164 with `phonenumbers` so "+1 (201) 555-0123"
and "2015550123" resolve to the same subject. A subject is never guessed
from a name alone: phone or email is required.
"""

import logging
from typing import Callable, Optional
from uuid import uuid4

import phonenumbers
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database.connection import AsyncSessionLocal
from database.models import Subject
from scheduling.errors import BookingPersistenceError, InvalidContactError
from scheduling.models import SubjectInfo, SubjectMatch
from shared.config import get_settings

logger = logging.getLogger(__name__)


def normalize_phone(phone: str, region: Optional[str] = None) -> str | None:
    """
    Normalize phone number to E.164 format.

    Args:
        phone: Phone number in any format
        region: Region for numbers without country code (DEFAULT_PHONE_REGION)

    Returns:
        E.164 formatted phone number (e.g., "+12015550123") or None if invalid

    Examples:
        "(201) 555-0123" -> "+12015550123"
        "+1 201 555 0123" -> "+12015550123"
        "invalid" -> None
    """
    region = region or get_settings().DEFAULT_PHONE_REGION
    try:
        parsed = phonenumbers.parse(phone, region)

        if not phonenumbers.is_valid_number(parsed):
            logger.warning(f"Invalid phone number: {phone}")
            return None

        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    except phonenumbers.NumberParseException as e:
        logger.error(f"Failed to parse phone number '{phone}': {e}")
        return None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_contact(info: SubjectInfo, region: Optional[str] = None) -> tuple[str | None, str | None]:
    """
    Normalised (phone, email) of a subject.

    Raises:
        InvalidContactError: Neither a valid phone nor an email was given
    """
    phone = normalize_phone(info.phone, region) if info.phone else None
    email = normalize_email(info.email) if info.email else None
    if phone is None and not email:
        raise InvalidContactError(
            "A valid phone number or email is required to identify the patient",
            {"phone": info.phone, "email": info.email},
        )
    return phone, email


class InMemoryIdentityResolver:
    """Process-local subject registry."""

    def __init__(self, region: Optional[str] = None):
        self.region = region
        self._by_phone: dict[str, str] = {}
        self._by_email: dict[str, str] = {}
        self.names: dict[str, Optional[str]] = {}

    async def find_or_create(self, info: SubjectInfo) -> SubjectMatch:
        phone, email = normalize_contact(info, self.region)

        subject_id = (phone and self._by_phone.get(phone)) or (email and self._by_email.get(email))
        created = subject_id is None
        if created:
            subject_id = str(uuid4())
            self.names[subject_id] = info.name
            logger.info(f"Subject created: {subject_id}", extra={"subject_id": subject_id})

        # Link any newly supplied contact to the subject
        if phone:
            self._by_phone.setdefault(phone, subject_id)
        if email:
            self._by_email.setdefault(email, subject_id)
        return SubjectMatch(subject_id=subject_id, created=created)


class SqlAlchemyIdentityResolver:
    """Subject find-or-create over the `subjects` table."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        region: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self.region = region

    async def find_or_create(self, info: SubjectInfo) -> SubjectMatch:
        phone, email = normalize_contact(info, self.region)

        conditions = []
        if phone:
            conditions.append(Subject.phone == phone)
        if email:
            conditions.append(Subject.email == email)

        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Subject).where(or_(*conditions)))
                subject = result.scalars().first()
                if subject is not None:
                    # Link any newly supplied contact
                    if phone and subject.phone is None:
                        subject.phone = phone
                    if email and subject.email is None:
                        subject.email = email
                    if info.name and not subject.name:
                        subject.name = info.name
                    await session.commit()
                    return SubjectMatch(subject_id=str(subject.id), created=False)

                subject = Subject(id=uuid4(), phone=phone, email=email, name=info.name)
                session.add(subject)
                await session.commit()
                logger.info(f"Subject created: {subject.id}", extra={"subject_id": str(subject.id)})
                return SubjectMatch(subject_id=str(subject.id), created=True)
        except SQLAlchemyError as e:
            logger.error(f"Subject lookup failed: {e}", exc_info=True)
            raise BookingPersistenceError("Subject lookup failed", {"error": str(e)}) from e
