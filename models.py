"""
models.py
Domain records (frozen dataclasses), option sets and store defaults.
"""

from __future__ import annotations
from dataclasses import dataclass, field

ROLES = ("admin", "staff", "mentor")
LANGS = ("ar", "en")
THEMES = ("light", "dark")
SUBSCRIPTION_PLANS = ("daily", "weekly", "monthly")
PAYMENT_METHODS = ("cash", "bank")
EXPENSE_CATEGORIES = ("rent", "salary", "utilities", "marketing", "supplies", "other")
ENROLLMENT_STATUSES = ("active", "completed", "dropped")

# Field names by kind, shared by patch rounding and backup checks
MONEY_FIELDS = {"price_total", "paid_amount", "total_price", "amount", "hourly_rate", "daily", "weekly", "monthly"}
DAY_FIELDS = {"date"}  # 'YYYY-MM-DD'
INSTANT_FIELDS = {"created_at", "check_in_at", "check_out_at"}  # ISO timestamps

ADMIN_USER_ID = "u_admin"
DEFAULT_ADMIN_PASSWORD = "admin"


@dataclass(frozen=True)
class User:
    id: str
    username: str
    role: str  # admin/staff/mentor
    name: str
    password_hash: str | None = None


@dataclass(frozen=True)
class Mentor:
    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Student:
    id: str
    name: str
    phone: str | None = None
    email: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class Course:
    id: str
    title: str
    price_total: float
    created_at: str
    mentor_id: str | None = None  # weak ref, cleared when the mentor is deleted


@dataclass(frozen=True)
class Enrollment:
    id: str
    course_id: str
    student_id: str
    created_at: str
    paid_amount: float = 0.0
    attendance: dict[str, bool] = field(default_factory=dict)  # 'YYYY-MM-DD' -> present
    grade: float | None = None  # 0-100
    status: str = "active"  # active/completed/dropped


@dataclass(frozen=True)
class WorkspaceSession:
    id: str
    date: str
    person_name: str
    check_in_at: str
    check_out_at: str | None = None  # open while None

    @property
    def is_open(self) -> bool:
        return self.check_out_at is None


@dataclass(frozen=True)
class Subscription:
    id: str
    person_name: str
    plan: str  # daily/weekly/monthly
    total_price: float
    created_at: str
    paid_amount: float = 0.0
    method: str = "cash"  # cash/bank
    student_id: str | None = None  # weak ref, guests have none


@dataclass(frozen=True)
class Expense:
    id: str
    title: str
    amount: float
    category: str
    date: str
    created_at: str


@dataclass(frozen=True)
class SubPrices:
    daily: float = 20.0
    weekly: float = 120.0
    monthly: float = 350.0

    def for_plan(self, plan: str) -> float:
        return getattr(self, plan)


@dataclass(frozen=True)
class Settings:
    lang: str = "ar"
    hourly_rate: float = 5.0
    theme: str = "dark"
    currency: str = "ILS"
    sub_prices: SubPrices = field(default_factory=SubPrices)


@dataclass(frozen=True)
class StoreState:
    """
    Whole-store snapshot. Mutations never edit one in place; they build a new
    StoreState with dataclasses.replace().
    """

    users: tuple[User, ...] = ()
    mentors: tuple[Mentor, ...] = ()
    students: tuple[Student, ...] = ()
    courses: tuple[Course, ...] = ()
    enrollments: tuple[Enrollment, ...] = ()
    workspace: tuple[WorkspaceSession, ...] = ()
    subscriptions: tuple[Subscription, ...] = ()
    expenses: tuple[Expense, ...] = ()
    settings: Settings = field(default_factory=Settings)
    current_user_id: str | None = None


@dataclass(frozen=True)
class Result:
    ok: bool
    error: str | None = None


def default_admin(password_hash: str | None = None) -> User:
    return User(id=ADMIN_USER_ID, username="admin", role="admin", name="Administrator", password_hash=password_hash)


def empty_state(admin_hash: str | None = None) -> StoreState:
    """Fresh store: default settings and the built-in administrator, logged in."""
    return StoreState(users=(default_admin(admin_hash),), current_user_id=ADMIN_USER_ID)
