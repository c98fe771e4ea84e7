import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from auth import hash_password, verify_password
from availability import WeeklyAvailability
from database import transaction
from errors import (
    ConsultantNotFound,
    EmailAlreadyRegistered,
    InvalidCredentials,
    NotBookingParty,
    UserNotFound,
)
from models import Admin, Consultant, Contact, Customer, HealthRecord, Role, User
from scheduler import get_booking

logger = logging.getLogger(__name__)

_ROLE_CLASSES = {
    Role.USER.value: Customer,
    Role.CONSULTANT.value: Consultant,
    Role.ADMIN.value: Admin,
}

COMMON_FIELDS = ("full_name", "email", "phone", "profile_picture")
_REQUIRED_FIELDS = ("full_name", "email")
CUSTOMER_FIELDS = ("blood_group", "medical_history", "current_prescriptions")
CONSULTANT_FIELDS = (
    "bio",
    "qualification",
    "areas_of_expertise",
    "speciality",
    "availability",
    "bank_account",
    "consulting_fees",
)


def _fields_for(role: str):
    if role == Role.USER.value:
        return COMMON_FIELDS + CUSTOMER_FIELDS
    if role == Role.CONSULTANT.value:
        return COMMON_FIELDS + CONSULTANT_FIELDS
    return COMMON_FIELDS


def _clean_availability(value: Any) -> Optional[Dict[str, Dict[str, str]]]:
    if value is None:
        return None
    return WeeklyAvailability.from_raw(value, strict=True).to_dict()


def get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise UserNotFound(f"User {user_id} not found", details={"user_id": user_id})
    return user


def register_user(db: Session, email: str, password: str, role: str, full_name: str, **profile) -> User:
    """Create an account. Consultants start unapproved until an admin signs them off."""
    if db.query(User).filter(User.email == email).first():
        raise EmailAlreadyRegistered("Email already exists", details={"email": email})

    model = _ROLE_CLASSES[role]
    allowed = set(_fields_for(role))
    values = {k: v for k, v in profile.items() if k in allowed and v is not None}
    if "availability" in values:
        values["availability"] = _clean_availability(values["availability"])

    user = model(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        **values,
    )
    if isinstance(user, Consultant):
        user.is_approved = False

    try:
        with transaction(db):
            db.add(user)
    except IntegrityError:
        raise EmailAlreadyRegistered("Email already exists", details={"email": email})

    db.refresh(user)
    logger.info("Registered %s account %s", role, user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.password_hash):
        raise InvalidCredentials("Invalid credentials")
    return user


def update_profile(db: Session, user: User, changes: Dict[str, Any]) -> User:
    """Apply the profile fields that make sense for the user's role.

    Availability is replaced as a whole, never merged day by day.
    """
    allowed = _fields_for(user.role)
    updates = {
        k: v for k, v in changes.items()
        if k in allowed and not (v is None and k in _REQUIRED_FIELDS)
    }
    if "availability" in updates:
        updates["availability"] = _clean_availability(updates["availability"])

    new_email = updates.get("email")
    if new_email and new_email != user.email:
        clash = db.query(User).filter(User.email == new_email, User.id != user.id).first()
        if clash:
            raise EmailAlreadyRegistered("Email already exists", details={"email": new_email})

    with transaction(db):
        for key, value in updates.items():
            setattr(user, key, value)

    db.refresh(user)
    return user


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.id).all()


def list_consultants(
    db: Session,
    specialty: Optional[str] = None,
    day: Optional[str] = None,
    approved_only: bool = True,
) -> List[Consultant]:
    query = db.query(Consultant)
    if approved_only:
        query = query.filter(Consultant.is_approved.is_(True))
    if specialty:
        query = query.filter(Consultant.speciality.ilike(f"%{specialty}%"))
    consultants = query.order_by(Consultant.id).all()

    if day:
        consultants = [
            c for c in consultants
            if WeeklyAvailability.from_raw(c.availability).window_for(day) is not None
        ]
    return consultants


def get_consultant(db: Session, consultant_id: int, approved_only: bool = True) -> Consultant:
    query = db.query(Consultant).filter(Consultant.id == consultant_id)
    if approved_only:
        query = query.filter(Consultant.is_approved.is_(True))
    consultant = query.first()
    if not consultant:
        raise ConsultantNotFound(
            f"Consultant {consultant_id} not found", details={"consultant_id": consultant_id}
        )
    return consultant


def approve_consultant(db: Session, consultant_id: int) -> Consultant:
    consultant = get_consultant(db, consultant_id, approved_only=False)
    with transaction(db):
        consultant.is_approved = True
    db.refresh(consultant)
    logger.info("Consultant %s approved", consultant.id)
    return consultant


def add_health_record(
    db: Session, user_id: int, medical_history: str, ongoing_treatments: str, prescriptions: str
) -> HealthRecord:
    record = HealthRecord(
        user_id=user_id,
        medical_history=medical_history,
        ongoing_treatments=ongoing_treatments,
        prescriptions=prescriptions,
    )
    with transaction(db):
        db.add(record)
    db.refresh(record)
    return record


def list_health_records(db: Session, user_id: int) -> List[HealthRecord]:
    return db.query(HealthRecord).filter(HealthRecord.user_id == user_id).order_by(HealthRecord.id).all()


def booking_patient_details(db: Session, booking_id: int, actor_id: int, actor_role: str):
    """The patient behind a booking and their health records, for the booked consultant."""
    booking = get_booking(db, booking_id)
    if actor_role != Role.ADMIN.value and actor_id != booking.consultant_id:
        raise NotBookingParty(
            "Only the booked consultant can view this patient", details={"booking_id": booking_id}
        )
    patient = get_user(db, booking.user_id)
    return patient, list_health_records(db, patient.id)


def submit_contact(db: Session, name: str, email: str, subject: str, message: str) -> Contact:
    contact = Contact(name=name, email=email, subject=subject, message=message)
    with transaction(db):
        db.add(contact)
    db.refresh(contact)
    logger.info("Contact form submitted by %s", email)
    return contact
