from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import create_access_token
from database import Base
from main import app, get_db
from models import Admin, Booking, BookingStatus, Consultant, Customer, Payment, PaymentStatus

# 2030-01-07 is a Monday
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SUNDAY = date(2030, 1, 6)

NINE_TO_FIVE = {"startTime": "09:00", "endTime": "17:00"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def make_customer(db):
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        values = {
            "full_name": f"Patient {counter['n']}",
            "email": f"patient{counter['n']}@example.com",
            "password_hash": "unused",
            "phone": "555-0100",
        }
        values.update(overrides)
        user = Customer(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_consultant(db):
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        values = {
            "full_name": f"Dr. Consultant {counter['n']}",
            "email": f"consultant{counter['n']}@example.com",
            "password_hash": "unused",
            "speciality": "Cardiology",
            "availability": {"Monday": NINE_TO_FIVE, "Wednesday": NINE_TO_FIVE},
            "is_approved": True,
        }
        values.update(overrides)
        consultant = Consultant(**values)
        db.add(consultant)
        db.commit()
        db.refresh(consultant)
        return consultant

    return factory


@pytest.fixture
def admin(db):
    user = Admin(full_name="Admin", email="admin@example.com", password_hash="unused")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def consultant(make_consultant):
    return make_consultant()


@pytest.fixture
def make_booking(db):
    """Insert a booking (and optionally its payment) directly, bypassing the gates."""

    def factory(user, consultant, day=MONDAY, time_slot="09:00-10:00",
                status=BookingStatus.PENDING, payment_status=PaymentStatus.PAID, amount=Decimal("100.00")):
        booking = Booking(
            user_id=user.id,
            consultant_id=consultant.id,
            date=day,
            time_slot=time_slot,
            status=status.value,
        )
        db.add(booking)
        db.flush()
        if payment_status is not None:
            db.add(Payment(
                booking_id=booking.id,
                user_id=user.id,
                amount=amount,
                payment_method="card",
                status=payment_status.value,
            ))
        db.commit()
        db.refresh(booking)
        return booking

    return factory


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
