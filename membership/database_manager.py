import logging
import sqlite3
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from dateutil.relativedelta import relativedelta

from .database import DB_FILE, create_database
from .models import (
    DEFAULT_MEMBERSHIP_TYPE,
    DEFAULT_PAYMENT_TYPE,
    DEFAULT_STATUS,
    DashboardStats,
    Member,
    MemberView,
    Payment,
    PaymentView,
)

# Basic logging configuration (can be overridden by application's config)
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)

# Stored timestamps all use this layout so text comparison in SQL is chronological
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
UPCOMING_WINDOW_DAYS = 30

MEMBER_COLUMNS = "m.id, m.name, m.email, m.phone, m.address, m.membership_type, m.status, m.join_date, m.notes"
PAYMENT_COLUMNS = "p.id, p.member_id, m.name AS member_name, p.amount, p.payment_date, p.payment_type, p.next_due_date, p.notes"


def to_timestamp(value: Union[str, date, datetime, None]) -> Optional[str]:
    """Normalises a datetime, date or ISO 8601 string to TIMESTAMP_FORMAT.
    Returns None for None or an empty string.
    Raises ValueError if a string cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid timestamp '{value}'.") from None
    if parsed.tzinfo is not None:
        # Convert aware values to naive local time, matching datetime.now()
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed.strftime(TIMESTAMP_FORMAT)


def calculate_next_due_date(from_date: Union[str, date, datetime, None] = None) -> str:
    """Returns from_date (default: now) plus one calendar year.
    Feb 29 rolls back to Feb 28 when the following year has no leap day.
    """
    start = datetime.strptime(to_timestamp(from_date or datetime.now()), TIMESTAMP_FORMAT)
    return (start + relativedelta(years=1)).strftime(TIMESTAMP_FORMAT)


class DatabaseManager:
    def __init__(self, connection: sqlite3.Connection, verify_member_exists: bool = False):
        self.conn = connection
        self.conn.row_factory = sqlite3.Row
        # Cascade from members to payments relies on this per-connection pragma
        self.conn.execute("PRAGMA foreign_keys = ON;")
        self.verify_member_exists = verify_member_exists

    @classmethod
    def open(cls, db_path: str = DB_FILE, verify_member_exists: bool = False) -> "DatabaseManager":
        """Creates the schema if needed and returns a manager owning the connection."""
        conn = create_database(db_path)
        logging.info(f"Database opened at {db_path}.")
        return cls(conn, verify_member_exists=verify_member_exists)

    def close(self) -> None:
        self.conn.close()
        logging.info("Database connection closed.")

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    # Member operations
    def get_all_members_for_view(self) -> List[MemberView]:
        """Retrieves all members ordered by name, each with its latest due date
        and number of payments.
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                f"""
                SELECT {MEMBER_COLUMNS},
                       MAX(p.next_due_date) AS last_due_date,
                       COUNT(p.id) AS payment_count
                FROM members m
                LEFT JOIN payments p ON p.member_id = m.id
                GROUP BY m.id
                ORDER BY m.name ASC
                """
            )
            return [MemberView(**row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logging.error(f"Database error in get_all_members_for_view: {e}", exc_info=True)
            raise

    def get_member(self, member_id: int) -> Optional[MemberView]:
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                f"""
                SELECT {MEMBER_COLUMNS},
                       MAX(p.next_due_date) AS last_due_date,
                       COUNT(p.id) AS payment_count
                FROM members m
                LEFT JOIN payments p ON p.member_id = m.id
                WHERE m.id = ?
                GROUP BY m.id
                """,
                (member_id,),
            )
            row = cursor.fetchone()
            return MemberView(**row) if row else None
        except sqlite3.Error as e:
            logging.error(f"Database error in get_member for ID {member_id}: {e}", exc_info=True)
            raise

    def add_member(self, member: Member) -> Member:
        """Adds a new member to the database.
        Empty optional fields are stored as NULL, membership_type and status fall
        back to 'standard' and 'active', and join_date is set to now.
        Returns the member object with id and join_date filled in.
        """
        cursor = self.conn.cursor()
        join_date = to_timestamp(datetime.now())
        try:
            cursor.execute(
                """
                INSERT INTO members (name, email, phone, address, membership_type, status, join_date, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    member.name,
                    member.email or None,
                    member.phone or None,
                    member.address or None,
                    member.membership_type or DEFAULT_MEMBERSHIP_TYPE,
                    member.status or DEFAULT_STATUS,
                    join_date,
                    member.notes or None,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logging.error(
                f"Database error in add_member for '{member.name}': {e}", exc_info=True
            )
            raise
        member.id = cursor.lastrowid
        member.join_date = join_date
        member.membership_type = member.membership_type or DEFAULT_MEMBERSHIP_TYPE
        member.status = member.status or DEFAULT_STATUS
        logging.info(f"Member '{member.name}' added with ID {member.id}.")
        return member

    def update_member(self, member_id: int, member: Member) -> bool:
        """Overwrites every mutable field of the member. join_date is left untouched.
        Returns True if a row was updated, False if no member has that ID.
        """
        cursor = self.conn.cursor()
        try:
            cursor.execute(
                """
                UPDATE members
                SET name = ?, email = ?, phone = ?, address = ?,
                    membership_type = ?, status = ?, notes = ?
                WHERE id = ?
                """,
                (
                    member.name,
                    member.email or None,
                    member.phone or None,
                    member.address or None,
                    member.membership_type or DEFAULT_MEMBERSHIP_TYPE,
                    member.status or DEFAULT_STATUS,
                    member.notes or None,
                    member_id,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logging.error(
                f"Database error in update_member for ID {member_id}: {e}",
                exc_info=True,
            )
            raise
        if cursor.rowcount == 0:
            logging.warning(f"Member with ID {member_id} not found for update.")
            return False
        logging.info(f"Member ID {member_id} updated successfully.")
        return True

    def delete_member(self, member_id: int) -> bool:
        """Deletes a member and, through ON DELETE CASCADE, all of its payments.
        Returns True if deletion was successful, False if no member has that ID.
        """
        cursor = self.conn.cursor()
        try:
            cursor.execute("DELETE FROM members WHERE id = ?", (member_id,))
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logging.error(
                f"Database error in delete_member for ID {member_id}: {e}",
                exc_info=True,
            )
            raise
        if cursor.rowcount == 0:
            logging.warning(f"No member found with ID {member_id} to delete.")
            return False
        logging.info(f"Member ID {member_id} deleted successfully.")
        return True

    # Payment operations
    def get_payments(self, member_id: Optional[int] = None) -> List[PaymentView]:
        """Retrieves payments joined with the member's name.
        With member_id, only that member's payments are returned; otherwise all
        payments, most recent payment_date first.
        """
        query = f"SELECT {PAYMENT_COLUMNS} FROM payments p JOIN members m ON p.member_id = m.id"
        params = ()
        if member_id is not None:
            query += " WHERE p.member_id = ? ORDER BY p.id ASC"
            params = (member_id,)
        else:
            query += " ORDER BY p.payment_date DESC, p.id DESC"
        try:
            cursor = self.conn.cursor()
            cursor.execute(query, params)
            return [PaymentView(**row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logging.error(f"Database error in get_payments: {e}", exc_info=True)
            raise

    def add_payment(self, payment: Payment) -> Payment:
        """Records a payment.
        payment_date defaults to now and next_due_date to one year after the
        payment date. When verify_member_exists is set, raises ValueError for an
        unknown member_id before anything is written.
        Returns the payment object with id and both dates filled in.
        """
        cursor = self.conn.cursor()
        if self.verify_member_exists:
            cursor.execute("SELECT id FROM members WHERE id = ?", (payment.member_id,))
            if not cursor.fetchone():
                logging.warning(
                    f"Attempt to add payment for non-existent member ID {payment.member_id}"
                )
                raise ValueError(f"Member with ID {payment.member_id} does not exist.")

        payment_date = to_timestamp(payment.payment_date) or to_timestamp(datetime.now())
        next_due_date = to_timestamp(payment.next_due_date) or calculate_next_due_date(payment_date)
        try:
            cursor.execute(
                """
                INSERT INTO payments (member_id, amount, payment_date, payment_type, next_due_date, notes)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.member_id,
                    payment.amount,
                    payment_date,
                    payment.payment_type or DEFAULT_PAYMENT_TYPE,
                    next_due_date,
                    payment.notes or None,
                ),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            logging.error(
                f"Database error in add_payment for member ID {payment.member_id}: {e}",
                exc_info=True,
            )
            raise
        payment.id = cursor.lastrowid
        payment.payment_date = payment_date
        payment.next_due_date = next_due_date
        payment.payment_type = payment.payment_type or DEFAULT_PAYMENT_TYPE
        logging.info(
            f"Payment of {payment.amount} added with ID {payment.id} for member ID {payment.member_id}, next due {next_due_date}."
        )
        return payment

    # Dashboard statistics
    def get_dashboard_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        """Counts members by status and payments due in the next 30 days or overdue.
        Each figure is its own query; all of them share one 'now'.
        """
        now = now or datetime.now()
        now_str = to_timestamp(now)
        window_end_str = to_timestamp(now + timedelta(days=UPCOMING_WINDOW_DAYS))
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM members")
            total_members = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM members WHERE status = ?", ("active",))
            active_members = cursor.fetchone()[0]

            cursor.execute("SELECT COUNT(*) FROM members WHERE status = ?", ("inactive",))
            inactive_members = cursor.fetchone()[0]

            cursor.execute(
                "SELECT COUNT(*) FROM payments WHERE next_due_date >= ? AND next_due_date <= ?",
                (now_str, window_end_str),
            )
            upcoming_payments = cursor.fetchone()[0]

            cursor.execute(
                "SELECT COUNT(*) FROM payments WHERE next_due_date < ?", (now_str,)
            )
            overdue_payments = cursor.fetchone()[0]
        except sqlite3.Error as e:
            logging.error(f"Database error in get_dashboard_stats: {e}", exc_info=True)
            raise

        stats = DashboardStats(
            total_members=total_members,
            active_members=active_members,
            inactive_members=inactive_members,
            upcoming_payments=upcoming_payments,
            overdue_payments=overdue_payments,
        )
        logging.info(f"Dashboard stats: {stats}")
        return stats
