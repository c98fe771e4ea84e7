import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy.orm import Session

from config import settings
from errors import PaymentNotFound
from models import Booking, Payment, PaymentStatus, Refund

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def refund_amount_for(amount) -> Decimal:
    """The amount handed back after the flat cancellation fee is kept."""
    amount = Decimal(str(amount))
    kept = Decimal("1") - settings.cancellation_fee_rate
    return (amount * kept).quantize(CENTS, rounding=ROUND_HALF_UP)


def record_payment(db: Session, booking: Booking, payment_method: str = "card") -> Payment:
    """Charge the flat booking fee. Flushes but leaves the commit to the caller."""
    payment = Payment(
        booking_id=booking.id,
        user_id=booking.user_id,
        amount=settings.booking_fee,
        payment_date=datetime.utcnow(),
        payment_method=payment_method,
        status=PaymentStatus.PAID.value,
    )
    db.add(payment)
    db.flush()
    return payment


def refund_payment(db: Session, booking: Booking, reason_tag: str) -> Refund:
    """Refund a booking's payment minus the cancellation fee.

    ``reason_tag`` ("rejection" or "cancellation") only feeds the audit text.
    Flushes but leaves the commit to the caller.
    """
    payment = db.query(Payment).filter(Payment.booking_id == booking.id).first()
    if not payment:
        raise PaymentNotFound(
            f"No payment found for booking {booking.id}", details={"booking_id": booking.id}
        )

    refund = Refund(
        payment_id=payment.id,
        refund_date=datetime.utcnow(),
        refund_amount=refund_amount_for(payment.amount),
        reason=f"Refund for booking {booking.id} due to {reason_tag}",
    )
    db.add(refund)
    payment.status = PaymentStatus.REFUNDED.value
    db.flush()

    logger.info(
        "Refunded %s of %s for booking %s (%s)",
        refund.refund_amount, payment.amount, booking.id, reason_tag,
    )
    return refund


def _refunded_total(payment: Payment) -> Decimal:
    return sum((Decimal(str(r.refund_amount)) for r in payment.refunds), Decimal("0.00"))


def payment_summary(payment: Payment) -> dict:
    booking = payment.booking
    refunded = _refunded_total(payment)
    return {
        "id": payment.id,
        "booking_id": payment.booking_id,
        "user_id": payment.user_id,
        "amount": payment.amount,
        "payment_date": payment.payment_date,
        "payment_method": payment.payment_method,
        "status": payment.status,
        "booking_date": booking.date if booking else None,
        "booking_time": booking.time_slot if booking else None,
        "refund_amount": refunded if payment.refunds else None,
        "final_amount": Decimal(str(payment.amount)) - refunded,
    }


def list_user_payments(db: Session, user_id: int) -> List[dict]:
    payments = (
        db.query(Payment)
        .filter(Payment.user_id == user_id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )
    return [payment_summary(p) for p in payments]


def list_consultant_earnings(db: Session, consultant_id: int) -> List[dict]:
    payments = (
        db.query(Payment)
        .join(Booking, Payment.booking_id == Booking.id)
        .filter(Booking.consultant_id == consultant_id, Payment.status == PaymentStatus.PAID.value)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )
    return [payment_summary(p) for p in payments]


def list_all_payments(db: Session, status: Optional[str] = None) -> List[dict]:
    query = db.query(Payment)
    if status:
        query = query.filter(Payment.status == status)
    return [payment_summary(p) for p in query.order_by(Payment.id).all()]
