import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import accounts
import chat
import payments
import reviews
import scheduler
from auth import Principal, create_access_token, get_current_user, require_admin, require_consultant
from availability import weekday_name
from config import settings
from database import Base, SessionLocal, engine
from errors import DomainException
from models import Consultant
from schemas import (
    BookingClosedResponse,
    BookingCreatedResponse,
    BookingRequest,
    BookingResponse,
    ChatMessageCreate,
    ChatMessageResponse,
    ChatOpenRequest,
    ChatRequestResponse,
    ChatRespondRequest,
    ConsultantPrivateResponse,
    ConsultantResponse,
    ContactRequest,
    HealthRecordCreate,
    HealthRecordResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PatientDetailsResponse,
    PaymentResponse,
    ProfileUpdate,
    RefundResponse,
    RegisterRequest,
    ReviewCreate,
    ReviewListResponse,
    ReviewResponse,
    SlotsResponse,
    UserResponse,
)
from seed import seed_demo_data

logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    if settings.seed_demo_data:
        db = SessionLocal()
        try:
            seed_demo_data(db)
        finally:
            db.close()
    yield


app = FastAPI(title="Health Consultation API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(DomainException)
async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": str(exc.detail), "code": "HTTPException", "details": {}},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder(
            {"message": "Request validation failed", "code": "RequestValidationError", "details": {"errors": errors}}
        ),
    )


# Dependency for DB session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def parse_date_param(value: str) -> date:
    # Accept either raw YYYY-MM-DD or a quoted string (clients sometimes send %22...%22)
    raw = value.strip()
    if (raw.startswith('"') and raw.endswith('"')) or (raw.startswith("'") and raw.endswith("'")):
        raw = raw[1:-1]

    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        pass
    try:
        # allow full ISO datetimes (take the date portion)
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise HTTPException(status_code=422, detail="date must be YYYY-MM-DD or ISO format")


def _user_response(user):
    if isinstance(user, Consultant):
        return ConsultantPrivateResponse.model_validate(user)
    return UserResponse.model_validate(user)


def _closed_response(message: str, booking, refund) -> BookingClosedResponse:
    return BookingClosedResponse(
        message=message,
        booking=BookingResponse.model_validate(booking),
        refund=RefundResponse.model_validate(refund),
    )


# Accounts


@app.post("/api/register", status_code=201)
def register(req: RegisterRequest, db: Session = Depends(get_db)):
    profile = req.model_dump(exclude={"email", "password", "role", "full_name"})
    user = accounts.register_user(
        db, email=req.email, password=req.password, role=req.role, full_name=req.full_name, **profile
    )
    return _user_response(user)


@app.post("/api/login", response_model=LoginResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, req.email, req.password)
    return LoginResponse(
        token=create_access_token(user.id, user.role),
        role=user.role,
        user_id=user.id,
        is_approved=bool(getattr(user, "is_approved", False)),
    )


@app.get("/api/profile")
def get_profile(principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return _user_response(accounts.get_user(db, principal.user_id))


@app.put("/api/profile")
def update_profile(
    req: ProfileUpdate,
    principal: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = accounts.get_user(db, principal.user_id)
    user = accounts.update_profile(db, user, req.model_dump(exclude_unset=True))
    return _user_response(user)


@app.get("/api/consultant/profile", response_model=ConsultantPrivateResponse)
def get_consultant_profile(principal: Principal = Depends(require_consultant), db: Session = Depends(get_db)):
    return accounts.get_consultant(db, principal.user_id, approved_only=False)


@app.put("/api/consultant/profile", response_model=ConsultantPrivateResponse)
def update_consultant_profile(
    req: ProfileUpdate,
    principal: Principal = Depends(require_consultant),
    db: Session = Depends(get_db),
):
    consultant = accounts.get_consultant(db, principal.user_id, approved_only=False)
    return accounts.update_profile(db, consultant, req.model_dump(exclude_unset=True))


# Consultants


@app.get("/api/consultants", response_model=List[ConsultantResponse])
def list_consultants(
    specialty: Optional[str] = None,
    availability: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Approved consultants. ``availability`` filters by weekday name."""
    return accounts.list_consultants(db, specialty=specialty, day=availability)


@app.get("/api/consultants/{consultant_id}", response_model=ConsultantResponse)
def get_consultant(consultant_id: int, db: Session = Depends(get_db)):
    return accounts.get_consultant(db, consultant_id)


@app.get("/api/consultant/{consultant_id}/availability")
def get_availability(consultant_id: int, db: Session = Depends(get_db)):
    consultant = accounts.get_consultant(db, consultant_id)
    return scheduler.consultant_schedule(consultant).to_dict()


@app.get("/api/consultant/{consultant_id}/slots", response_model=SlotsResponse)
def get_slots(consultant_id: int, date: str, db: Session = Depends(get_db)):
    day = parse_date_param(date)
    consultant = scheduler.get_approved_consultant(db, consultant_id)
    return SlotsResponse(
        consultant_id=consultant.id,
        date=day,
        weekday=weekday_name(day),
        available_slots=scheduler.generate_slots(db, consultant, day),
    )


@app.get("/api/consultants/{consultant_id}/reviews", response_model=ReviewListResponse)
def consultant_reviews(consultant_id: int, db: Session = Depends(get_db)):
    items, average = reviews.list_reviews(db, consultant_id)
    return ReviewListResponse(
        consultant_id=consultant_id,
        average_rating=average,
        reviews=[ReviewResponse.model_validate(r) for r in items],
    )


# Bookings


@app.get("/api/bookings", response_model=List[BookingResponse])
def my_bookings(principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return scheduler.list_user_bookings(db, principal.user_id)


@app.post("/api/bookings", response_model=BookingCreatedResponse, status_code=201)
def book(req: BookingRequest, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    booking, payment = scheduler.create_booking(
        db,
        user_id=principal.user_id,
        consultant_id=req.consultant_id,
        day=req.date,
        time_slot=req.time_slot,
        reason=req.reason_for_appointment,
        notes=req.additional_notes,
    )
    data = BookingResponse.model_validate(booking).model_dump()
    return BookingCreatedResponse(
        **data,
        payment_id=payment.id,
        amount=payment.amount,
        payment_status=payment.status,
    )


@app.put("/api/bookings/{booking_id}/accept", response_model=BookingResponse)
def accept(booking_id: int, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return scheduler.accept_booking(db, booking_id, principal.user_id, principal.role)


@app.put("/api/bookings/{booking_id}/reject", response_model=BookingClosedResponse)
def reject(booking_id: int, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    booking, refund = scheduler.reject_booking(db, booking_id, principal.user_id, principal.role)
    return _closed_response("Booking rejected and refunded", booking, refund)


@app.put("/api/bookings/{booking_id}/cancel", response_model=BookingClosedResponse)
def cancel(booking_id: int, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    booking, refund = scheduler.cancel_booking(db, booking_id, principal.user_id, principal.role)
    return _closed_response("Booking canceled and refunded", booking, refund)


@app.get("/api/consultant/bookings", response_model=List[BookingResponse])
def consultant_bookings(principal: Principal = Depends(require_consultant), db: Session = Depends(get_db)):
    return scheduler.list_consultant_bookings(db, principal.user_id)


@app.get("/api/consultants/{consultant_id}/bookings", response_model=List[BookingResponse])
def bookings_for_consultant(
    consultant_id: int,
    principal: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    consultant = accounts.get_consultant(db, consultant_id, approved_only=False)
    if not principal.is_admin and principal.user_id != consultant.id:
        raise HTTPException(status_code=403, detail="Only the consultant or an admin can list these bookings")
    return scheduler.list_consultant_bookings(db, consultant.id)


@app.get("/api/getDetails/{booking_id}", response_model=PatientDetailsResponse)
def patient_details(booking_id: int, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    patient, records = accounts.booking_patient_details(db, booking_id, principal.user_id, principal.role)
    return PatientDetailsResponse(
        user=UserResponse.model_validate(patient),
        health_records=[HealthRecordResponse.model_validate(r) for r in records],
    )


# Health records


@app.get("/api/healthrecords", response_model=List[HealthRecordResponse])
def my_health_records(principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return accounts.list_health_records(db, principal.user_id)


@app.post("/api/healthrecords", response_model=HealthRecordResponse, status_code=201)
def add_health_record(
    req: HealthRecordCreate,
    principal: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return accounts.add_health_record(
        db, principal.user_id, req.medical_history, req.ongoing_treatments, req.prescriptions
    )


# Payments


@app.get("/api/payments", response_model=List[PaymentResponse])
def my_payments(principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return payments.list_user_payments(db, principal.user_id)


@app.get("/api/consultant/earnings", response_model=List[PaymentResponse])
def my_earnings(principal: Principal = Depends(require_consultant), db: Session = Depends(get_db)):
    return payments.list_consultant_earnings(db, principal.user_id)


# Chat


@app.post("/api/chat/request", response_model=ChatRequestResponse, status_code=201)
def open_chat(req: ChatOpenRequest, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return chat.open_chat(db, principal.user_id, req.consultant_id, req.booking_id, req.message)


@app.get("/api/chat/requests", response_model=List[ChatRequestResponse])
def chat_requests(principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return chat.list_chat_requests(db, principal.user_id, principal.role)


@app.put("/api/chat/requests/{chat_request_id}", response_model=ChatRequestResponse)
def respond_to_chat(
    chat_request_id: int,
    req: ChatRespondRequest,
    principal: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return chat.respond_to_chat_request(
        db, principal.user_id, chat_request_id, accept=req.status == "accepted"
    )


@app.get("/api/chat/{chat_request_id}/messages", response_model=List[ChatMessageResponse])
def chat_messages(chat_request_id: int, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return chat.list_messages(db, chat_request_id, principal.user_id)


@app.post("/api/chat/{chat_request_id}/messages", response_model=ChatMessageResponse, status_code=201)
def send_message(
    chat_request_id: int,
    req: ChatMessageCreate,
    principal: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return chat.post_message(db, chat_request_id, principal.user_id, req.message)


# Reviews


@app.post("/api/reviews", response_model=ReviewResponse, status_code=201)
def post_review(req: ReviewCreate, principal: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return reviews.post_review(
        db, principal.user_id, req.consultant_id, req.rating, req.review, booking_id=req.booking_id
    )


# Admin


@app.get("/api/admin/users")
def admin_users(principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return [_user_response(u) for u in accounts.list_users(db)]


@app.get("/api/admin/consultants", response_model=List[ConsultantPrivateResponse])
def admin_consultants(principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    return accounts.list_consultants(db, approved_only=False)


@app.put("/api/admin/consultants/{consultant_id}/approve", response_model=MessageResponse)
def admin_approve(consultant_id: int, principal: Principal = Depends(require_admin), db: Session = Depends(get_db)):
    accounts.approve_consultant(db, consultant_id)
    return MessageResponse(message="Consultant approved successfully")


@app.get("/api/admin/bookings", response_model=List[BookingResponse])
def admin_bookings(
    status: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return scheduler.list_all_bookings(db, status=status)


@app.get("/api/admin/payments", response_model=List[PaymentResponse])
def admin_payments(
    status: Optional[str] = None,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return payments.list_all_payments(db, status=status)


# Contact


@app.post("/api/contact", response_model=MessageResponse)
def contact(req: ContactRequest, db: Session = Depends(get_db)):
    accounts.submit_contact(db, req.name, req.email, req.subject, req.message)
    return MessageResponse(message="Contact form submitted successfully")
