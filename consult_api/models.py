from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from database import Base


class Role(str, Enum):
    USER = "user"
    CONSULTANT = "consultant"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"


class ChatStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Booking lifecycle. Rejected and canceled bookings are final.
BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.ACCEPTED, BookingStatus.REJECTED, BookingStatus.CANCELED},
    BookingStatus.ACCEPTED: {BookingStatus.CANCELED},
    BookingStatus.REJECTED: set(),
    BookingStatus.CANCELED: set(),
}


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)
    phone = Column(String(20), nullable=True)
    profile_picture = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __mapper_args__ = {"polymorphic_on": role}


class Customer(User):
    blood_group = Column(String(10), nullable=True)
    medical_history = Column(Text, nullable=True)
    current_prescriptions = Column(Text, nullable=True)

    __mapper_args__ = {"polymorphic_identity": Role.USER.value}


class Consultant(User):
    bio = Column(Text, nullable=True)
    qualification = Column(String(255), nullable=True)
    areas_of_expertise = Column(Text, nullable=True)
    speciality = Column(String(255), nullable=True)
    # weekday name -> {"startTime": "HH:MM", "endTime": "HH:MM"}
    availability = Column(JSON, nullable=True)
    bank_account = Column(String(255), nullable=True)
    consulting_fees = Column(Numeric(10, 2), nullable=True)
    is_approved = Column(Boolean, nullable=False, default=False)

    __mapper_args__ = {"polymorphic_identity": Role.CONSULTANT.value}


class Admin(User):
    __mapper_args__ = {"polymorphic_identity": Role.ADMIN.value}


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    consultant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time_slot = Column(String(11), nullable=False)
    reason_for_appointment = Column(String(255), nullable=True)
    additional_notes = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", foreign_keys=[user_id])
    consultant = relationship("User", foreign_keys=[consultant_id])
    payment = relationship("Payment", back_populates="booking", uselist=False)

    __table_args__ = (
        Index(
            "uq_bookings_accepted_slot",
            "consultant_id",
            "date",
            "time_slot",
            unique=True,
            sqlite_where=text("status = 'accepted'"),
            postgresql_where=text("status = 'accepted'"),
        ),
    )


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    payment_method = Column(String(255), nullable=True)
    status = Column(String(50), nullable=False, default=PaymentStatus.PAID.value)

    booking = relationship("Booking", back_populates="payment")
    refunds = relationship("Refund", back_populates="payment", order_by="Refund.id")


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    refund_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    refund_amount = Column(Numeric(10, 2), nullable=False)
    reason = Column(Text, nullable=True)

    payment = relationship("Payment", back_populates="refunds")


class ChatRequest(Base):
    __tablename__ = "chat_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    consultant_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    status = Column(String(20), nullable=False, default=ChatStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    messages = relationship("ChatMessage", back_populates="chat_request", order_by="ChatMessage.id")

    __table_args__ = (
        UniqueConstraint("user_id", "consultant_id", "booking_id", name="uq_chat_requests_booking"),
    )


class ChatMessage(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    chat_request_id = Column(Integer, ForeignKey("chat_requests.id"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)

    chat_request = relationship("ChatRequest", back_populates="messages")


class Review(Base):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    consultant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    rating = Column(Integer, nullable=False)
    review = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class HealthRecord(Base):
    __tablename__ = "healthrecords"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    medical_history = Column(Text, nullable=False)
    ongoing_treatments = Column(Text, nullable=False)
    prescriptions = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
