import os
import sqlite3
import sys
from datetime import date, datetime, timedelta, timezone

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../..")))

from membership.database import create_database
from membership.database_manager import (
    TIMESTAMP_FORMAT,
    DatabaseManager,
    calculate_next_due_date,
    to_timestamp,
)
from membership.models import Member, Payment, PaymentView


@pytest.fixture
def db_manager() -> DatabaseManager:
    conn = create_database(":memory:")
    manager = DatabaseManager(connection=conn)
    yield manager
    conn.close()


@pytest.fixture
def member_id(db_manager: DatabaseManager) -> int:
    return db_manager.add_member(Member(id=None, name="Payment Member")).id


def parse(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT)


def test_add_payment_defaults(db_manager: DatabaseManager, member_id: int):
    before = datetime.now().replace(microsecond=0)
    payment = db_manager.add_payment(Payment(id=None, member_id=member_id, amount=50))
    after = datetime.now()

    assert isinstance(payment.id, int)
    assert payment.payment_type == "membership"
    payment_date = parse(payment.payment_date)
    assert before <= payment_date <= after
    next_due = parse(payment.next_due_date)
    assert next_due.year == payment_date.year + 1
    assert (next_due.month, next_due.day, next_due.time()) == (
        payment_date.month,
        payment_date.day,
        payment_date.time(),
    ) or (payment_date.month, payment_date.day) == (2, 29)


def test_add_payment_next_due_is_one_year_after_payment_date(db_manager: DatabaseManager, member_id: int):
    payment = db_manager.add_payment(
        Payment(id=None, member_id=member_id, amount=75.5, payment_date="2023-04-15T10:30:00")
    )
    assert payment.payment_date == "2023-04-15 10:30:00"
    assert payment.next_due_date == "2024-04-15 10:30:00"


def test_add_payment_leap_day_rolls_to_feb_28(db_manager: DatabaseManager, member_id: int):
    payment = db_manager.add_payment(
        Payment(id=None, member_id=member_id, amount=10, payment_date=date(2024, 2, 29))
    )
    assert payment.next_due_date == "2025-02-28 00:00:00"


def test_add_payment_with_explicit_values(db_manager: DatabaseManager, member_id: int):
    payment = db_manager.add_payment(
        Payment(
            id=None,
            member_id=member_id,
            amount=15,
            payment_date=datetime(2024, 1, 10, 9, 0, 0),
            payment_type="late_fee",
            next_due_date="2024-02-10",
            notes="Paid at desk",
        )
    )
    stored = db_manager.get_payments(member_id)
    assert len(stored) == 1
    view = stored[0]
    assert isinstance(view, PaymentView)
    assert view.id == payment.id
    assert view.member_name == "Payment Member"
    assert view.amount == 15
    assert view.payment_date == "2024-01-10 09:00:00"
    assert view.payment_type == "late_fee"
    assert view.next_due_date == "2024-02-10 00:00:00"
    assert view.notes == "Paid at desk"


def test_add_payment_invalid_date_raises(db_manager: DatabaseManager, member_id: int):
    with pytest.raises(ValueError):
        db_manager.add_payment(Payment(id=None, member_id=member_id, amount=10, payment_date="not a date"))
    assert db_manager.get_payments() == []


def test_add_payment_unknown_member_rejected_by_storage(db_manager: DatabaseManager):
    with pytest.raises(sqlite3.IntegrityError):
        db_manager.add_payment(Payment(id=None, member_id=999, amount=10))


def test_add_payment_unknown_member_with_verification():
    conn = create_database(":memory:")
    strict_manager = DatabaseManager(conn, verify_member_exists=True)
    with pytest.raises(ValueError, match="Member with ID 999 does not exist."):
        strict_manager.add_payment(Payment(id=None, member_id=999, amount=10))

    known = strict_manager.add_member(Member(id=None, name="Known"))
    payment = strict_manager.add_payment(Payment(id=None, member_id=known.id, amount=10))
    assert payment.id is not None
    conn.close()


def test_get_payments_for_member(db_manager: DatabaseManager, member_id: int):
    other_id = db_manager.add_member(Member(id=None, name="Other Member")).id
    db_manager.add_payment(Payment(id=None, member_id=member_id, amount=10, payment_date="2024-01-01"))
    db_manager.add_payment(Payment(id=None, member_id=member_id, amount=20, payment_date="2024-03-01"))
    db_manager.add_payment(Payment(id=None, member_id=other_id, amount=30, payment_date="2024-02-01"))

    payments = db_manager.get_payments(member_id)
    assert sorted(p.amount for p in payments) == [10, 20]
    assert {p.member_name for p in payments} == {"Payment Member"}
    assert db_manager.get_payments(12345) == []


def test_get_all_payments_most_recent_first(db_manager: DatabaseManager, member_id: int):
    other_id = db_manager.add_member(Member(id=None, name="Other Member")).id
    db_manager.add_payment(Payment(id=None, member_id=member_id, amount=10, payment_date="2024-01-01"))
    db_manager.add_payment(Payment(id=None, member_id=member_id, amount=20, payment_date="2024-03-01"))
    db_manager.add_payment(Payment(id=None, member_id=other_id, amount=30, payment_date="2024-02-01"))

    payments = db_manager.get_payments()
    assert [p.amount for p in payments] == [20, 30, 10]
    assert [p.member_name for p in payments] == ["Payment Member", "Other Member", "Payment Member"]


def test_calculate_next_due_date():
    assert calculate_next_due_date("2023-12-31 23:59:59") == "2024-12-31 23:59:59"
    assert calculate_next_due_date(date(2028, 2, 29)) == "2029-02-28 00:00:00"

    before = datetime.now().replace(microsecond=0)
    default_due = parse(calculate_next_due_date())
    assert default_due.year == before.year + 1
    assert default_due - before < timedelta(days=367)


def test_to_timestamp_formats():
    assert to_timestamp(None) is None
    assert to_timestamp("") is None
    assert to_timestamp("2024-05-06") == "2024-05-06 00:00:00"
    assert to_timestamp("2024-05-06 07:08:09") == "2024-05-06 07:08:09"
    assert to_timestamp("2024-05-06T07:08:09.123") == "2024-05-06 07:08:09"
    assert to_timestamp(date(2024, 5, 6)) == "2024-05-06 00:00:00"
    assert to_timestamp(datetime(2024, 5, 6, 7, 8, 9)) == "2024-05-06 07:08:09"
    # UTC input is stored as local time
    expected_local = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc).astimezone()
    assert to_timestamp("2024-05-06T07:08:09Z") == expected_local.strftime(TIMESTAMP_FORMAT)
    with pytest.raises(ValueError):
        to_timestamp("06/05/2024")
