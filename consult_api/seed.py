import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from auth import hash_password
from database import transaction
from models import Admin, Consultant, Customer, User

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"

_WEEKDAYS_9_TO_9 = {"startTime": "09:00", "endTime": "21:00"}

DEMO_CONSULTANTS = [
    {
        "full_name": "Dr. Jane Doe",
        "email": "jane.doe@example.com",
        "phone": "555-123-4567",
        "bio": "Experienced cardiologist",
        "qualification": "MD, Cardiology",
        "areas_of_expertise": "Heart failure, Hypertension",
        "speciality": "Cardiology",
        "availability": {d: _WEEKDAYS_9_TO_9 for d in ("Monday", "Tuesday", "Wednesday", "Saturday", "Sunday")},
        "bank_account": "1234567890",
        "consulting_fees": Decimal("250.00"),
        "is_approved": True,
    },
    {
        "full_name": "Dr. John Smith",
        "email": "john.smith@example.com",
        "phone": "555-987-6543",
        "bio": "Neurologist specializing in migraines",
        "qualification": "PhD, Neurology",
        "areas_of_expertise": "Migraines, Epilepsy",
        "speciality": "Neurology",
        "availability": {d: _WEEKDAYS_9_TO_9 for d in ("Monday", "Tuesday", "Wednesday", "Saturday", "Sunday")},
        "bank_account": "0987654321",
        "consulting_fees": Decimal("300.00"),
        "is_approved": False,
    },
    {
        "full_name": "Dr. Emily Chen",
        "email": "emily.chen@example.com",
        "phone": "555-555-5555",
        "bio": "Pediatrician with a passion for child health",
        "qualification": "MD, Pediatrics",
        "areas_of_expertise": "Childhood illnesses, Vaccinations",
        "speciality": "Pediatrics",
        "availability": {d: _WEEKDAYS_9_TO_9 for d in ("Tuesday", "Thursday", "Friday")},
        "bank_account": "1122334455",
        "consulting_fees": Decimal("400.00"),
        "is_approved": True,
    },
]


def seed_demo_data(db: Session) -> bool:
    """Fill an empty database with a few consultants, an admin and a patient."""
    if db.query(User).first():
        logger.info("Users table already has data, skipping seeding")
        return False

    password_hash = hash_password(DEMO_PASSWORD)
    with transaction(db):
        for data in DEMO_CONSULTANTS:
            db.add(Consultant(password_hash=password_hash, **data))
        db.add(Admin(
            full_name="Admin User",
            email="admin@example.com",
            phone="9999999999",
            password_hash=password_hash,
        ))
        db.add(Customer(
            full_name="Test User",
            email="user@example.com",
            phone="7777777777",
            password_hash=password_hash,
        ))

    logger.info("Seeded %d demo consultants", len(DEMO_CONSULTANTS))
    return True
