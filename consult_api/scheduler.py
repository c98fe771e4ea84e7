import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from availability import WeeklyAvailability, parse_slot, weekday_name
from database import transaction
from errors import (
    BookingNotFound,
    ConsultantNotFound,
    InvalidStatusTransition,
    NotBookingParty,
    OutsideAvailability,
    SlotAlreadyAccepted,
    SlotAlreadyBooked,
    UserDoubleBooked,
)
from models import BOOKING_TRANSITIONS, Booking, BookingStatus, Consultant, Payment, Role
from payments import record_payment, refund_payment

logger = logging.getLogger(__name__)


def get_approved_consultant(db: Session, consultant_id: int) -> Consultant:
    consultant = db.query(Consultant).filter(
        Consultant.id == consultant_id,
        Consultant.is_approved.is_(True),
    ).first()

    if not consultant:
        raise ConsultantNotFound(
            f"Consultant {consultant_id} not found", details={"consultant_id": consultant_id}
        )
    return consultant


def consultant_schedule(consultant: Consultant) -> WeeklyAvailability:
    return WeeklyAvailability.from_raw(consultant.availability)


def generate_slots(db: Session, consultant: Consultant, day: date) -> List[str]:
    """Slots the consultant is open for on ``day`` that nobody has requested yet."""
    slots = consultant_schedule(consultant).slots_for(day)
    if not slots:
        return []

    # a slot that has ever been requested is never offered again, whatever
    # happened to that booking
    taken = {
        row.time_slot
        for row in db.query(Booking.time_slot).filter(
            Booking.consultant_id == consultant.id,
            Booking.date == day,
        )
    }
    return [slot for slot in slots if slot not in taken]


def _get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if not booking:
        raise BookingNotFound(f"Booking {booking_id} not found", details={"booking_id": booking_id})
    return booking


def _check_transition(booking: Booking, target: BookingStatus) -> None:
    current = BookingStatus(booking.status)
    if target not in BOOKING_TRANSITIONS[current]:
        raise InvalidStatusTransition(
            f"Booking {booking.id} is {current.value} and cannot become {target.value}",
            details={"booking_id": booking.id, "status": current.value},
        )


def _accepted_conflict(db: Session, booking: Booking) -> Optional[Booking]:
    return db.query(Booking).filter(
        Booking.consultant_id == booking.consultant_id,
        Booking.date == booking.date,
        Booking.time_slot == booking.time_slot,
        Booking.status == BookingStatus.ACCEPTED.value,
        Booking.id != booking.id,
    ).first()


def _slot_taken(booking: Booking) -> SlotAlreadyAccepted:
    return SlotAlreadyAccepted(
        "This timeslot is already booked by another booking.",
        details={
            "booking_id": booking.id,
            "date": booking.date.isoformat(),
            "time": booking.time_slot,
        },
    )


def _require_consultant_side(booking: Booking, actor_id: int, actor_role: str) -> None:
    if actor_role == Role.ADMIN.value:
        return
    if actor_id != booking.consultant_id:
        raise NotBookingParty(
            "Only the booked consultant can do this", details={"booking_id": booking.id}
        )


def _require_either_side(booking: Booking, actor_id: int, actor_role: str) -> None:
    if actor_role == Role.ADMIN.value:
        return
    if actor_id not in (booking.user_id, booking.consultant_id):
        raise NotBookingParty(
            "Only the patient or the consultant can do this", details={"booking_id": booking.id}
        )


def create_booking(
    db: Session,
    user_id: int,
    consultant_id: int,
    day: date,
    time_slot: str,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> Tuple[Booking, Payment]:
    """Request a slot and pay for it.

    Gates run in order and the first failure wins; nothing is written until
    all of them pass. The booking and its payment are committed together.
    """
    consultant = get_approved_consultant(db, consultant_id)

    parse_slot(time_slot)
    if not consultant_schedule(consultant).covers(day, time_slot):
        raise OutsideAvailability(
            f"Consultant is not available on {weekday_name(day)} at {time_slot}",
            details={"date": day.isoformat(), "time": time_slot},
        )

    existing = db.query(Booking).filter(
        Booking.consultant_id == consultant_id,
        Booking.date == day,
        Booking.time_slot == time_slot,
    ).first()
    if existing:
        raise SlotAlreadyBooked(
            "Consultant is already booked for this date and time.",
            details={"date": day.isoformat(), "time": time_slot},
        )

    own = db.query(Booking).filter(
        Booking.user_id == user_id,
        Booking.date == day,
        Booking.time_slot == time_slot,
    ).first()
    if own:
        raise UserDoubleBooked(
            "You already have a booking for this date and time.",
            details={"booking_id": own.id},
        )

    with transaction(db):
        booking = Booking(
            user_id=user_id,
            consultant_id=consultant_id,
            date=day,
            time_slot=time_slot,
            reason_for_appointment=reason,
            additional_notes=notes,
            status=BookingStatus.PENDING.value,
        )
        db.add(booking)
        db.flush()
        payment = record_payment(db, booking)

    db.refresh(booking)
    db.refresh(payment)
    logger.info(
        "Booking %s created for user %s with consultant %s on %s %s (payment %s)",
        booking.id, user_id, consultant_id, day, time_slot, payment.id,
    )
    return booking, payment


def accept_booking(db: Session, booking_id: int, actor_id: int, actor_role: str) -> Booking:
    booking = _get_booking(db, booking_id)
    _require_consultant_side(booking, actor_id, actor_role)
    _check_transition(booking, BookingStatus.ACCEPTED)

    # re-checked here since two pending requests can share a slot
    if _accepted_conflict(db, booking):
        raise _slot_taken(booking)

    try:
        with transaction(db):
            booking.status = BookingStatus.ACCEPTED.value
    except IntegrityError:
        # lost the race to another acceptance between the check and the write
        raise _slot_taken(booking)

    db.refresh(booking)
    logger.info("Booking %s accepted by %s", booking.id, actor_id)
    return booking


def _close_booking(db: Session, booking: Booking, status: BookingStatus, reason_tag: str):
    with transaction(db):
        booking.status = status.value
        db.flush()
        refund = refund_payment(db, booking, reason_tag)

    db.refresh(booking)
    db.refresh(refund)
    logger.info("Booking %s %s, refund %s issued", booking.id, status.value, refund.id)
    return booking, refund


def reject_booking(db: Session, booking_id: int, actor_id: int, actor_role: str):
    booking = _get_booking(db, booking_id)
    _require_consultant_side(booking, actor_id, actor_role)

    if _accepted_conflict(db, booking):
        raise _slot_taken(booking)

    _check_transition(booking, BookingStatus.REJECTED)
    return _close_booking(db, booking, BookingStatus.REJECTED, "rejection")


def cancel_booking(db: Session, booking_id: int, actor_id: int, actor_role: str):
    booking = _get_booking(db, booking_id)
    _require_either_side(booking, actor_id, actor_role)
    _check_transition(booking, BookingStatus.CANCELED)
    return _close_booking(db, booking, BookingStatus.CANCELED, "cancellation")


def list_user_bookings(db: Session, user_id: int) -> List[Booking]:
    return db.query(Booking).filter(Booking.user_id == user_id).order_by(Booking.date, Booking.time_slot).all()


def list_consultant_bookings(db: Session, consultant_id: int) -> List[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.consultant_id == consultant_id)
        .order_by(Booking.date, Booking.time_slot)
        .all()
    )


def list_all_bookings(db: Session, status: Optional[str] = None) -> List[Booking]:
    query = db.query(Booking)
    if status:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.id).all()


def get_booking(db: Session, booking_id: int) -> Booking:
    return _get_booking(db, booking_id)
