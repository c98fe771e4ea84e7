from models import Booking, BookingStatus, ChatRequest, Payment, PaymentStatus, Refund
from conftest import MONDAY, NINE_TO_FIVE, auth_header


def _book(client, user, consultant, slot="09:00-10:00", day=MONDAY):
    return client.post(
        "/api/bookings",
        json={"consultantId": consultant.id, "date": day.isoformat(), "time": slot},
        headers=auth_header(user),
    )


def test_scenario_a_booking_is_pending_and_paid(client, db, customer, consultant):
    response = _book(client, customer, consultant)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["time"] == "09:00-10:00"
    assert body["paymentStatus"] == "paid"
    assert body["amount"] == 100.0

    payment = db.query(Payment).filter(Payment.id == body["paymentId"]).one()
    assert payment.booking_id == body["id"]
    assert payment.status == PaymentStatus.PAID


def test_scenario_b_repeat_request_conflicts(client, make_customer, consultant):
    assert _book(client, make_customer(), consultant).status_code == 201

    response = _book(client, make_customer(), consultant)

    assert response.status_code == 409
    assert response.json()["code"] == "SlotAlreadyBooked"


def test_scenario_c_cancel_refunds_ninety(client, db, customer, consultant):
    booking_id = _book(client, customer, consultant).json()["id"]
    accepted = client.put(f"/api/bookings/{booking_id}/accept", headers=auth_header(consultant))
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"

    response = client.put(f"/api/bookings/{booking_id}/cancel", headers=auth_header(customer))

    assert response.status_code == 200
    body = response.json()
    assert body["booking"]["status"] == "canceled"
    assert body["refund"]["refundAmount"] == 90.0
    payment = db.query(Payment).filter(Payment.booking_id == booking_id).one()
    assert payment.status == PaymentStatus.REFUNDED
    assert db.query(Refund).filter(Refund.payment_id == payment.id).one().refund_amount == 90.0


def test_scenario_d_chat_on_unpaid_booking_is_refused(client, db, customer, consultant, make_booking):
    booking = make_booking(customer, consultant, status=BookingStatus.CANCELED,
                           payment_status=PaymentStatus.REFUNDED)

    response = client.post(
        "/api/chat/request",
        json={"consultantId": consultant.id, "bookingId": booking.id, "message": "Hi"},
        headers=auth_header(customer),
    )

    assert response.status_code == 403
    assert response.json()["code"] == "ChatNotAuthorized"
    assert db.query(ChatRequest).count() == 0


def test_second_acceptance_for_same_slot_conflicts(client, db, make_customer, consultant, make_booking):
    first = make_booking(make_customer(), consultant, status=BookingStatus.ACCEPTED)
    second = make_booking(make_customer(), consultant)

    response = client.put(f"/api/bookings/{second.id}/accept", headers=auth_header(consultant))

    assert response.status_code == 409
    assert response.json()["code"] == "SlotAlreadyAccepted"
    db.expire_all()
    assert db.get(Booking, first.id).status == "accepted"


def test_booking_errors_are_structured(client, customer, consultant):
    outside = _book(client, customer, consultant, slot="18:00-19:00")
    assert outside.status_code == 400
    assert outside.json()["code"] == "OutsideAvailability"
    assert outside.json()["message"]

    wide = _book(client, customer, consultant, slot="09:00-12:00")
    assert wide.status_code == 400
    assert wide.json()["code"] == "OutsideAvailability"

    missing = client.put("/api/bookings/999/reject", headers=auth_header(consultant))
    assert missing.status_code == 404
    assert missing.json()["code"] == "BookingNotFound"


def test_authentication_is_required(client, consultant):
    assert client.get("/api/payments").status_code == 401
    bad = client.get("/api/bookings", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 403


def test_register_login_and_profile(client):
    registered = client.post("/api/register", json={
        "fullName": "Ann Patient",
        "email": "ann@example.com",
        "password": "s3cret!",
        "role": "user",
        "phone": "555-0101",
        "bloodGroup": "A+",
    })
    assert registered.status_code == 201
    assert registered.json()["bloodGroup"] == "A+"

    login = client.post("/api/login", json={"email": "ann@example.com", "password": "s3cret!"})
    assert login.status_code == 200
    token = login.json()["token"]

    profile = client.get("/api/profile", headers={"Authorization": f"Bearer {token}"})
    assert profile.json()["email"] == "ann@example.com"

    wrong = client.post("/api/login", json={"email": "ann@example.com", "password": "nope"})
    assert wrong.status_code == 403


def test_register_rejects_bad_availability(client):
    response = client.post("/api/register", json={
        "fullName": "Dr. Typo",
        "email": "typo@example.com",
        "password": "s3cret!",
        "role": "consultant",
        "phone": "555-0102",
        "availability": {"Thrusday": {"startTime": "09:00", "endTime": "17:00"}},
    })

    assert response.status_code == 422


def test_register_refuses_admin_role(client):
    response = client.post("/api/register", json={
        "fullName": "Self Promoted",
        "email": "boss@example.com",
        "password": "s3cret!",
        "phone": "555-0199",
        "role": "admin",
    })

    assert response.status_code == 422


def test_availability_and_slots(client, customer, consultant):
    schedule = client.get(f"/api/consultant/{consultant.id}/availability")
    assert schedule.json() == {"Monday": NINE_TO_FIVE, "Wednesday": NINE_TO_FIVE}

    _book(client, customer, consultant, slot="09:00-10:00")
    slots = client.get(f"/api/consultant/{consultant.id}/slots", params={"date": MONDAY.isoformat()})
    assert slots.status_code == 200
    body = slots.json()
    assert body["weekday"] == "Monday"
    assert "09:00-10:00" not in body["availableSlots"]
    assert body["availableSlots"][0] == "10:00-11:00"


def test_consultant_updates_availability(client, consultant):
    new_schedule = {"Tuesday": {"startTime": "10:00", "endTime": "12:00"}}

    response = client.put(
        "/api/consultant/profile", json={"availability": new_schedule}, headers=auth_header(consultant)
    )

    assert response.status_code == 200
    assert response.json()["availability"] == new_schedule


def test_chat_flow(client, customer, consultant):
    booking_id = _book(client, customer, consultant).json()["id"]
    opened = client.post(
        "/api/chat/request",
        json={"consultantId": consultant.id, "bookingId": booking_id, "message": "Hello"},
        headers=auth_header(customer),
    )
    assert opened.status_code == 201
    chat_id = opened.json()["id"]

    early = client.post(f"/api/chat/{chat_id}/messages", json={"message": "?"}, headers=auth_header(customer))
    assert early.status_code == 403
    assert early.json()["code"] == "ChatNotAccepted"

    answered = client.put(f"/api/chat/requests/{chat_id}", json={"status": "accepted"}, headers=auth_header(consultant))
    assert answered.json()["status"] == "accepted"

    sent = client.post(f"/api/chat/{chat_id}/messages", json={"message": "Hi there"}, headers=auth_header(consultant))
    assert sent.status_code == 201

    messages = client.get(f"/api/chat/{chat_id}/messages", headers=auth_header(customer)).json()
    assert [m["message"] for m in messages] == ["Hello", "Hi there"]


def test_reviews(client, customer, consultant):
    no_booking = client.post(
        "/api/reviews", json={"consultantId": consultant.id, "rating": 5, "review": "Great"},
        headers=auth_header(customer),
    )
    assert no_booking.status_code == 403

    _book(client, customer, consultant)
    bad_rating = client.post(
        "/api/reviews", json={"consultantId": consultant.id, "rating": 9, "review": "Great"},
        headers=auth_header(customer),
    )
    assert bad_rating.status_code == 400
    assert bad_rating.json()["code"] == "InvalidRating"

    posted = client.post(
        "/api/reviews", json={"consultantId": consultant.id, "rating": 5, "review": "Great"},
        headers=auth_header(customer),
    )
    assert posted.status_code == 201

    listing = client.get(f"/api/consultants/{consultant.id}/reviews").json()
    assert listing["averageRating"] == 5.0


def test_admin_approves_consultant(client, admin, customer, make_consultant):
    pending = make_consultant(is_approved=False)
    assert client.get(f"/api/consultants/{pending.id}").status_code == 404

    forbidden = client.put(f"/api/admin/consultants/{pending.id}/approve", headers=auth_header(customer))
    assert forbidden.status_code == 403
    assert forbidden.json()["code"] == "RoleRequired"

    approved = client.put(f"/api/admin/consultants/{pending.id}/approve", headers=auth_header(admin))
    assert approved.status_code == 200
    assert client.get(f"/api/consultants/{pending.id}").json()["isApproved"] is True


def test_payments_listing(client, customer, consultant):
    booking_id = _book(client, customer, consultant).json()["id"]
    client.put(f"/api/bookings/{booking_id}/cancel", headers=auth_header(customer))

    payments = client.get("/api/payments", headers=auth_header(customer)).json()

    assert len(payments) == 1
    assert payments[0]["status"] == "refunded"
    assert payments[0]["refundAmount"] == 90.0
    assert payments[0]["finalAmount"] == 10.0
    assert payments[0]["bookingTime"] == "09:00-10:00"


def test_health_records_and_patient_details(client, customer, consultant):
    created = client.post(
        "/api/healthrecords",
        json={"medicalHistory": "Asthma", "ongoingTreatments": "Inhaler", "prescriptions": "Salbutamol"},
        headers=auth_header(customer),
    )
    assert created.status_code == 201

    booking_id = _book(client, customer, consultant).json()["id"]
    details = client.get(f"/api/getDetails/{booking_id}", headers=auth_header(consultant))

    assert details.status_code == 200
    assert details.json()["user"]["id"] == customer.id
    assert details.json()["healthRecords"][0]["medicalHistory"] == "Asthma"


def test_contact_form(client):
    response = client.post("/api/contact", json={
        "name": "Visitor", "email": "visitor@example.com", "subject": "Hours", "message": "When are you open?",
    })

    assert response.status_code == 200
    assert response.json()["message"] == "Contact form submitted successfully"
