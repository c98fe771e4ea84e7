import logging
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from database import transaction
from errors import ConsultantNotFound, InvalidRating, ReviewNotAllowed
from models import Booking, Consultant, Review

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def post_review(
    db: Session,
    user_id: int,
    consultant_id: int,
    rating: int,
    text: str,
    booking_id: Optional[int] = None,
) -> Review:
    """Leave a review for a consultant the user has booked at least once.

    Any booking counts, whatever its status.
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise InvalidRating(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}", details={"rating": rating}
        )

    consultant = db.query(Consultant).filter(Consultant.id == consultant_id).first()
    if not consultant:
        raise ConsultantNotFound(
            f"Consultant {consultant_id} not found", details={"consultant_id": consultant_id}
        )

    query = db.query(Booking).filter(
        Booking.user_id == user_id,
        Booking.consultant_id == consultant_id,
    )
    if booking_id is not None:
        query = query.filter(Booking.id == booking_id)
    if not query.first():
        raise ReviewNotAllowed(
            "You can only review consultants you have booked",
            details={"consultant_id": consultant_id},
        )

    review = Review(
        user_id=user_id,
        consultant_id=consultant_id,
        booking_id=booking_id,
        rating=rating,
        review=text,
    )
    with transaction(db):
        db.add(review)
    db.refresh(review)
    logger.info("Review %s posted for consultant %s", review.id, consultant_id)
    return review


def list_reviews(db: Session, consultant_id: int) -> Tuple[List[Review], Optional[float]]:
    reviews = (
        db.query(Review)
        .filter(Review.consultant_id == consultant_id)
        .order_by(Review.id.desc())
        .all()
    )
    average = db.query(func.avg(Review.rating)).filter(Review.consultant_id == consultant_id).scalar()
    return reviews, round(float(average), 2) if average is not None else None
