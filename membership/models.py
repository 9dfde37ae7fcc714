from dataclasses import dataclass
from typing import Optional

MEMBERSHIP_TYPES = ("standard", "premium", "vip")
MEMBER_STATUSES = ("active", "inactive", "suspended")
PAYMENT_TYPES = ("membership", "renewal", "late_fee", "other")

DEFAULT_MEMBERSHIP_TYPE = "standard"
DEFAULT_STATUS = "active"
DEFAULT_PAYMENT_TYPE = "membership"


@dataclass
class Member:
    id: Optional[int]
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    membership_type: str = DEFAULT_MEMBERSHIP_TYPE
    status: str = DEFAULT_STATUS
    join_date: Optional[str] = None  # Set by the store on creation
    notes: Optional[str] = None


@dataclass
class MemberView:
    id: int
    name: str
    email: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    membership_type: str
    status: str
    join_date: str
    notes: Optional[str]
    # Derived from payments, not stored on the member row
    last_due_date: Optional[str] = None
    payment_count: int = 0


@dataclass
class Payment:
    id: Optional[int]
    member_id: int
    amount: float
    payment_date: Optional[str] = None  # Defaults to now
    payment_type: str = DEFAULT_PAYMENT_TYPE
    next_due_date: Optional[str] = None  # Defaults to payment_date + 1 year
    notes: Optional[str] = None


@dataclass
class PaymentView:
    id: int
    member_id: int
    member_name: str  # Denormalized for easy display
    amount: float
    payment_date: str
    payment_type: str
    next_due_date: Optional[str]
    notes: Optional[str]


@dataclass
class DashboardStats:
    total_members: int
    active_members: int
    inactive_members: int
    upcoming_payments: int
    overdue_payments: int
