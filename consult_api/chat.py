"""
Booking-scoped chat between a patient and their consultant.

A chat is opened by the patient against a paid booking and starts out
pending. Messages can only be exchanged once the consultant accepts it;
until then the opening message is all there is. Clients poll for new
messages.
"""

import logging
from datetime import datetime
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import transaction
from errors import (
    ChatNotAccepted,
    ChatNotAuthorized,
    ChatRequestExists,
    ChatRequestNotFound,
    InvalidStatusTransition,
)
from models import Booking, ChatMessage, ChatRequest, ChatStatus, Payment, PaymentStatus, Role

logger = logging.getLogger(__name__)


def _get_request(db: Session, chat_request_id: int) -> ChatRequest:
    chat_request = db.query(ChatRequest).filter(ChatRequest.id == chat_request_id).first()
    if not chat_request:
        raise ChatRequestNotFound(
            f"Chat request {chat_request_id} not found",
            details={"chat_request_id": chat_request_id},
        )
    return chat_request


def _is_party(chat_request: ChatRequest, user_id: int) -> bool:
    return user_id in (chat_request.user_id, chat_request.consultant_id)


def open_chat(
    db: Session, user_id: int, consultant_id: int, booking_id: int, initial_message: str
) -> ChatRequest:
    booking = db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.user_id == user_id,
        Booking.consultant_id == consultant_id,
    ).first()
    if not booking:
        raise ChatNotAuthorized(
            "No booking with this consultant matches the chat request",
            details={"booking_id": booking_id},
        )

    paid = db.query(Payment).filter(
        Payment.booking_id == booking_id,
        Payment.status == PaymentStatus.PAID.value,
    ).first()
    if not paid:
        raise ChatNotAuthorized(
            "A paid booking is required before starting a chat",
            details={"booking_id": booking_id},
        )

    existing = db.query(ChatRequest).filter(
        ChatRequest.user_id == user_id,
        ChatRequest.consultant_id == consultant_id,
        ChatRequest.booking_id == booking_id,
    ).first()
    if existing:
        raise ChatRequestExists(
            "A chat request already exists for this booking",
            details={"chat_request_id": existing.id},
        )

    try:
        with transaction(db):
            chat_request = ChatRequest(
                user_id=user_id,
                consultant_id=consultant_id,
                booking_id=booking_id,
                status=ChatStatus.PENDING.value,
            )
            db.add(chat_request)
            db.flush()
            db.add(ChatMessage(
                chat_request_id=chat_request.id,
                sender_id=user_id,
                message=initial_message,
                timestamp=datetime.utcnow(),
            ))
    except IntegrityError:
        raise ChatRequestExists(
            "A chat request already exists for this booking", details={"booking_id": booking_id}
        )

    db.refresh(chat_request)
    logger.info("Chat request %s opened for booking %s", chat_request.id, booking_id)
    return chat_request


def respond_to_chat_request(db: Session, consultant_id: int, chat_request_id: int, accept: bool) -> ChatRequest:
    chat_request = _get_request(db, chat_request_id)
    if chat_request.consultant_id != consultant_id:
        raise ChatNotAuthorized(
            "Only the consultant of this chat can answer it",
            details={"chat_request_id": chat_request_id},
        )
    # once answered, a chat request stays answered
    if chat_request.status != ChatStatus.PENDING.value:
        raise InvalidStatusTransition(
            f"Chat request {chat_request_id} is already {chat_request.status}",
            details={"chat_request_id": chat_request_id, "status": chat_request.status},
        )

    with transaction(db):
        chat_request.status = (ChatStatus.ACCEPTED if accept else ChatStatus.REJECTED).value

    db.refresh(chat_request)
    logger.info("Chat request %s %s", chat_request.id, chat_request.status)
    return chat_request


def post_message(db: Session, chat_request_id: int, sender_id: int, text: str) -> ChatMessage:
    chat_request = _get_request(db, chat_request_id)
    if chat_request.status != ChatStatus.ACCEPTED.value:
        raise ChatNotAccepted(
            "Chat request has not been accepted",
            details={"chat_request_id": chat_request_id, "status": chat_request.status},
        )
    if not _is_party(chat_request, sender_id):
        raise ChatNotAuthorized(
            "You are not part of this chat", details={"chat_request_id": chat_request_id}
        )

    message = ChatMessage(
        chat_request_id=chat_request.id,
        sender_id=sender_id,
        message=text,
        timestamp=datetime.utcnow(),
    )
    with transaction(db):
        db.add(message)
    db.refresh(message)
    return message


def list_messages(db: Session, chat_request_id: int, reader_id: int) -> List[ChatMessage]:
    chat_request = _get_request(db, chat_request_id)
    if not _is_party(chat_request, reader_id):
        raise ChatNotAuthorized(
            "You are not part of this chat", details={"chat_request_id": chat_request_id}
        )
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.chat_request_id == chat_request.id)
        .order_by(ChatMessage.timestamp, ChatMessage.id)
        .all()
    )


def list_chat_requests(db: Session, user_id: int, role: str) -> List[ChatRequest]:
    query = db.query(ChatRequest)
    if role == Role.CONSULTANT.value:
        query = query.filter(ChatRequest.consultant_id == user_id)
    elif role != Role.ADMIN.value:
        query = query.filter(ChatRequest.user_id == user_id)
    return query.order_by(ChatRequest.id.desc()).all()
