from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from availability import WeeklyAvailability
from errors import InvalidAvailability


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# weekday name -> {"startTime": "HH:MM", "endTime": "HH:MM"}
AvailabilitySchedule = Dict[str, Dict[str, str]]


def _schedule_dict(value):
    if value is None:
        return None
    try:
        return WeeklyAvailability.from_raw(value, strict=True).to_dict()
    except InvalidAvailability as exc:
        raise ValueError(exc.message)


class MessageResponse(BaseModel):
    message: str


# Accounts


class RegisterRequest(CamelModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["user", "consultant"] = "user"
    phone: str = Field(min_length=1)
    blood_group: Optional[str] = None
    medical_history: Optional[str] = None
    current_prescriptions: Optional[str] = None
    bio: Optional[str] = None
    qualification: Optional[str] = None
    areas_of_expertise: Optional[str] = None
    speciality: Optional[str] = None
    availability: Optional[AvailabilitySchedule] = None
    bank_account: Optional[str] = None
    consulting_fees: Optional[Decimal] = None

    @field_validator("availability")
    @classmethod
    def availability_is_valid(cls, value):
        return _schedule_dict(value)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class LoginResponse(CamelModel):
    token: str
    role: str
    user_id: int
    is_approved: bool


class ProfileUpdate(CamelModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    profile_picture: Optional[str] = None
    blood_group: Optional[str] = None
    medical_history: Optional[str] = None
    current_prescriptions: Optional[str] = None
    bio: Optional[str] = None
    qualification: Optional[str] = None
    areas_of_expertise: Optional[str] = Field(default=None, validation_alias=AliasChoices("areasOfExpertise", "areas_of_expertise"))
    speciality: Optional[str] = Field(default=None, validation_alias=AliasChoices("speciality", "specialty"))
    availability: Optional[AvailabilitySchedule] = None
    bank_account: Optional[str] = None
    consulting_fees: Optional[Decimal] = None

    @field_validator("availability")
    @classmethod
    def availability_is_valid(cls, value):
        return _schedule_dict(value)


class UserResponse(CamelModel):
    id: int
    full_name: str
    email: str
    role: str
    phone: Optional[str] = None
    profile_picture: Optional[str] = None
    blood_group: Optional[str] = None
    medical_history: Optional[str] = None
    current_prescriptions: Optional[str] = None


class ConsultantResponse(CamelModel):
    id: int
    full_name: str
    email: str
    role: str
    phone: Optional[str] = None
    profile_picture: Optional[str] = None
    bio: Optional[str] = None
    qualification: Optional[str] = None
    areas_of_expertise: Optional[str] = None
    speciality: Optional[str] = None
    availability: Optional[Dict[str, Dict[str, str]]] = None
    consulting_fees: Optional[float] = None
    is_approved: bool = False


class ConsultantPrivateResponse(ConsultantResponse):
    bank_account: Optional[str] = None


class SlotsResponse(CamelModel):
    consultant_id: int
    date: date
    weekday: str
    available_slots: List[str]


# Bookings


class BookingRequest(CamelModel):
    consultant_id: int
    date: date
    time_slot: str = Field(validation_alias=AliasChoices("time", "timeSlot", "time_slot"))
    reason_for_appointment: Optional[str] = None
    additional_notes: Optional[str] = None


class BookingResponse(CamelModel):
    id: int
    user_id: int
    consultant_id: int
    date: date
    time_slot: str = Field(serialization_alias="time")
    reason_for_appointment: Optional[str] = None
    additional_notes: Optional[str] = None
    status: str


class BookingCreatedResponse(BookingResponse):
    payment_id: int
    amount: float
    payment_status: str


class RefundResponse(CamelModel):
    id: int
    payment_id: int
    refund_date: datetime
    refund_amount: float
    reason: Optional[str] = None


class BookingClosedResponse(CamelModel):
    message: str
    booking: BookingResponse
    refund: RefundResponse


# Payments


class PaymentResponse(CamelModel):
    id: int
    booking_id: int
    user_id: int
    amount: float
    payment_date: datetime
    payment_method: Optional[str] = None
    status: str
    booking_date: Optional[date] = None
    booking_time: Optional[str] = None
    refund_amount: Optional[float] = None
    final_amount: float


# Health records


class HealthRecordCreate(CamelModel):
    medical_history: str = Field(min_length=1)
    ongoing_treatments: str = Field(min_length=1)
    prescriptions: str = Field(min_length=1)


class HealthRecordResponse(HealthRecordCreate):
    id: int
    user_id: int
    created_at: Optional[datetime] = None


class PatientDetailsResponse(CamelModel):
    user: UserResponse
    health_records: List[HealthRecordResponse]


# Chat


class ChatOpenRequest(CamelModel):
    consultant_id: int
    booking_id: int
    message: str = Field(min_length=1)


class ChatRespondRequest(CamelModel):
    status: Literal["accepted", "rejected"]


class ChatRequestResponse(CamelModel):
    id: int
    user_id: int
    consultant_id: int
    booking_id: int
    status: str
    created_at: Optional[datetime] = None


class ChatMessageCreate(CamelModel):
    message: str = Field(min_length=1)


class ChatMessageResponse(CamelModel):
    id: int
    chat_request_id: int
    sender_id: int
    message: str
    timestamp: datetime


# Reviews


class ReviewCreate(CamelModel):
    consultant_id: int
    # range is checked by the review rules so that it reports InvalidRating
    rating: int
    review: str = Field(min_length=1)
    booking_id: Optional[int] = None


class ReviewResponse(CamelModel):
    id: int
    user_id: int
    consultant_id: int
    booking_id: Optional[int] = None
    rating: int
    review: str
    created_at: Optional[datetime] = None


class ReviewListResponse(CamelModel):
    consultant_id: int
    average_rating: Optional[float] = None
    reviews: List[ReviewResponse]


# Contact


class ContactRequest(CamelModel):
    name: str = Field(min_length=1)
    email: EmailStr
    subject: str = Field(min_length=1)
    message: str = Field(min_length=1)
