"""
utils.py
Money and date primitives, session billing, caller-side validation, demo data.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP

from i18n import t
from models import EXPENSE_CATEGORIES, WorkspaceSession

CENT = Decimal("0.01")

CURRENCY_SYMBOLS = {
    "ILS": "₪",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JOD": "JD ",
    "EGP": "E£",
    "SAR": "SAR ",
    "AED": "AED ",
}


# ---------- Dates & instants ----------

def today_iso() -> str:
    return date.today().isoformat()


def now_iso(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec="seconds")


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def parse_instant(value: str | date | datetime) -> datetime:
    """
    Accepts 'YYYY-MM-DD', a full ISO timestamp (a trailing 'Z' is fine), a date or a datetime.
    A bare date becomes midnight of that day.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    text = value.strip()
    if len(text) == 10:
        return datetime.combine(parse_iso(text), time.min)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _as_local(value: str | date | datetime) -> datetime:
    # aware instants are compared in local wall-clock time, like calendar days are
    dt = parse_instant(value)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def _as_day(value: str | date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_instant(value).date()


def date_in_range(target, start=None, end=None) -> bool:
    """
    Inclusive calendar-range check. Empty bounds ('' or None) are open; with
    both open everything matches.
    """
    if not start and not end:
        return True

    moment = _as_local(target)
    if start and moment < datetime.combine(_as_day(start), time.min):
        return False
    if end and moment > datetime.combine(_as_day(end), time.max):
        return False
    return True


# ---------- Money ----------

def round_money(x) -> float:
    """Round to the cent, half-up (1.005 -> 1.01, -0.125 -> -0.13)."""
    return float(Decimal(str(x)).quantize(CENT, rounding=ROUND_HALF_UP))


def format_money(x, currency: str = "ILS") -> str:
    amount = round_money(x)
    digits = f"{abs(amount):,.2f}".rstrip("0").rstrip(".")
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{digits}"


def minutes_between(start, end) -> int:
    s = parse_instant(start)
    e = parse_instant(end)
    if s.tzinfo is None:
        s = s.replace(tzinfo=timezone.utc)
    if e.tzinfo is None:
        e = e.replace(tzinfo=timezone.utc)
    minutes = math.floor((e - s).total_seconds() / 60 + 0.5)
    return max(0, minutes)


def session_cost(session: WorkspaceSession, hourly_rate: float) -> float:
    if session.check_out_at is None:
        return 0.0
    mins = minutes_between(session.check_in_at, session.check_out_at)
    return round_money(mins / 60 * hourly_rate)


# ---------- Validation (caller side; the store trusts its input) ----------

def _to_number(value):
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def validate_required(value, label: str, lang: str = "en") -> list[str]:
    if value is None or not str(value).strip():
        return [t(lang, "err_required", label=label)]
    return []


def validate_price(value, label: str, lang: str = "en", allow_zero: bool = True) -> list[str]:
    number = _to_number(value)
    if number is None:
        return [t(lang, "err_numeric", label=label)]
    if number < 0:
        return [t(lang, "err_negative", label=label)]
    if number == 0 and not allow_zero:
        return [t(lang, "err_positive", label=label)]
    return []


def validate_payment(paid_amount: float, delta, total: float, lang: str = "en") -> list[str]:
    """
    Shared pre-check for course and subscription payments: the resulting paid
    amount must stay inside [0, total]. Negative deltas are corrections.
    """
    number = _to_number(delta)
    if number is None:
        return [t(lang, "err_numeric", label=t(lang, "paid"))]
    if number == 0:
        return [t(lang, "err_zero_payment")]
    new_paid = round_money(paid_amount + number)
    if new_paid < 0:
        return [t(lang, "err_paid_below_zero")]
    if new_paid > round_money(total):
        return [t(lang, "err_paid_over_total")]
    return []


def validate_grade(value, lang: str = "en") -> list[str]:
    if value is None or value == "":
        return []
    number = _to_number(value)
    if number is None:
        return [t(lang, "err_numeric", label=t(lang, "grade"))]
    if not 0 <= number <= 100:
        return [t(lang, "err_grade_range")]
    return []


def validate_expense_inputs(title: str, amount, category: str, expense_date: str, lang: str = "en") -> list[str]:
    errors: list[str] = []
    errors += validate_required(title, "Title", lang)
    errors += validate_price(amount, "Amount", lang, allow_zero=False)
    if category not in EXPENSE_CATEGORIES:
        errors.append(t(lang, "err_choice", label="Category", options=", ".join(EXPENSE_CATEGORIES)))
    try:
        parse_iso(expense_date)
    except (TypeError, ValueError):
        errors.append("Date must be a valid ISO date (YYYY-MM-DD).")
    return errors


def validate_new_password(new1: str, new2: str, lang: str = "en") -> list[str]:
    if len(new1) < 6:
        return [t(lang, "err_password_short")]
    if new1 != new2:
        return [t(lang, "err_password_mismatch")]
    return []


def choice_map(records, label_attr: str = "name") -> dict[str, str]:
    """Selectbox label -> record id. The short id keeps records that share a name apart."""
    return {f"{getattr(r, label_attr)} - {r.id[:6]}": r.id for r in records}


# ---------- Demo data ----------

def insert_sample_data(store) -> None:
    """
    Seed three mentors, five students, three courses with enrollments, two
    subscriptions, two open workspace sessions and three expenses
    (adds new rows each run).
    """
    today = today_iso()

    mentors = [
        store.add_mentor(name="Dr. Ahmed Salem", phone="0599123456", email="ahmed@edu.com", notes="Senior Web Developer"),
        store.add_mentor(name="Sarah Johnson", phone="0598765432", email="sarah.j@design.com", notes="UI/UX Specialist"),
        store.add_mentor(name="Mohammed Ali", phone="0597112233", email="mali@english.com", notes="IELTS Certified Trainer"),
    ]
    students = [
        store.add_student(name="Omar Khalid", phone="0592233445", email="omar@mail.com"),
        store.add_student(name="Laila Mahmoud", phone="0595566778", email="laila@mail.com"),
        store.add_student(name="Yousef Hassan", phone="0593344556", email="yousef@mail.com"),
        store.add_student(name="Mariam Isaac", phone="0591122334", email="mariam@mail.com"),
        store.add_student(name="Zaid Amari", phone="0596677889", email="zaid@mail.com"),
    ]
    courses = [
        store.add_course(title="Full-Stack React Bootcamp", price_total=1200, mentor_id=mentors[0]),
        store.add_course(title="Graphic Design Masterclass", price_total=800, mentor_id=mentors[1]),
        store.add_course(title="Business English Level 1", price_total=500, mentor_id=mentors[2]),
    ]

    plan = [
        (students[0], courses[0], 1200, "active", True),
        (students[1], courses[0], 600, "active", False),
        (students[2], courses[1], 800, "completed", False),
        (students[3], courses[2], 200, "active", True),
    ]
    for student_id, course_id, paid, status, present_today in plan:
        store.enroll_student(student_id, [course_id])
        enrollment = next(
            e for e in store.state.enrollments if e.student_id == student_id and e.course_id == course_id
        )
        store.add_course_payment(enrollment.id, paid)
        store.update_enrollment(enrollment.id, status=status)
        if present_today:
            store.toggle_attendance(enrollment.id, today)

    sub_id = store.add_subscription(person_name="Zaid Amari", plan="monthly", total_price=350, student_id=students[4])
    store.add_subscription_payment(sub_id, 350)
    store.add_subscription(person_name="Guest User 1", plan="daily", total_price=20)

    store.check_in("Omar Khalid", today)
    store.check_in("Laila Mahmoud", today)

    store.add_expense(title="Office Rent", amount=1500, category="rent", date=today)
    store.add_expense(title="Electricity Bill", amount=240, category="utilities", date=today)
    store.add_expense(title="Facebook Ads Campaign", amount=350, category="marketing", date=today)


def previous_month_bounds(today: date | None = None) -> tuple[date, date]:
    today = today or date.today()
    first_this = today.replace(day=1)
    last_prev = first_this - timedelta(days=1)
    return last_prev.replace(day=1), last_prev
