"""
metrics.py
Read-only money aggregates over a StoreState. Dashboard, reports and the
detail pages all read their numbers from here; nothing is cached.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from models import (
    EXPENSE_CATEGORIES,
    Course,
    Enrollment,
    Expense,
    StoreState,
    Student,
    Subscription,
    WorkspaceSession,
)
from utils import date_in_range, round_money, session_cost


@dataclass(frozen=True)
class Balance:
    total_due: float
    total_paid: float
    remaining: float  # signed; negative means overpaid


@dataclass(frozen=True)
class Metrics:
    course_revenue: float
    subscription_revenue: float
    workspace_revenue: float
    total_revenue: float
    total_expenses: float
    net_profit: float
    profit_margin: float
    total_debt: float


@dataclass(frozen=True)
class CourseSummary:
    enrolled: int
    expected: float
    collected: float
    remaining: float


def find_by_id(items: Iterable, item_id: str | None):
    if item_id is None:
        return None
    return next((x for x in items if x.id == item_id), None)


def _money_sum(values: Iterable[float]) -> float:
    return round_money(sum(values, 0.0))


def is_settled(paid_amount: float, total: float) -> bool:
    return round_money(paid_amount) >= round_money(total)


# ---------- Per-entity ----------

def course_remaining(enrollment: Enrollment, course: Course) -> float:
    return round_money(course.price_total - enrollment.paid_amount)


def student_balance(state: StoreState, student_id: str) -> Balance:
    enrollments = [e for e in state.enrollments if e.student_id == student_id]
    subscriptions = [s for s in state.subscriptions if s.student_id == student_id]

    courses = {c.id: c for c in state.courses}
    course_due = sum(courses[e.course_id].price_total for e in enrollments if e.course_id in courses)
    total_due = round_money(course_due + sum(s.total_price for s in subscriptions))
    total_paid = _money_sum([e.paid_amount for e in enrollments] + [s.paid_amount for s in subscriptions])
    return Balance(total_due=total_due, total_paid=total_paid, remaining=round_money(total_due - total_paid))


def students_with_outstanding_balance(state: StoreState) -> list[tuple[Student, Balance]]:
    """Payment alerts, in store order."""
    out = []
    for student in state.students:
        balance = student_balance(state, student.id)
        if balance.remaining > 0:
            out.append((student, balance))
    return out


def course_summary(state: StoreState, course_id: str) -> CourseSummary:
    course = find_by_id(state.courses, course_id)
    enrollments = [e for e in state.enrollments if e.course_id == course_id]
    price = course.price_total if course else 0.0
    expected = round_money(price * len(enrollments))
    collected = _money_sum(e.paid_amount for e in enrollments)
    return CourseSummary(
        enrolled=len(enrollments),
        expected=expected,
        collected=collected,
        remaining=round_money(expected - collected),
    )


def attendance_count(enrollment: Enrollment) -> int:
    return sum(1 for present in enrollment.attendance.values() if present)


# ---------- Global ----------

def course_revenue(enrollments: Iterable[Enrollment]) -> float:
    return _money_sum(e.paid_amount for e in enrollments)


def subscription_revenue(subscriptions: Iterable[Subscription]) -> float:
    return _money_sum(s.paid_amount for s in subscriptions)


def workspace_revenue(sessions: Iterable[WorkspaceSession], hourly_rate: float) -> float:
    return _money_sum(session_cost(s, hourly_rate) for s in sessions)


def global_revenue(
    enrollments: Iterable[Enrollment],
    subscriptions: Iterable[Subscription],
    sessions: Iterable[WorkspaceSession],
    hourly_rate: float,
) -> float:
    """Realized money only: payments received plus billed workspace time."""
    return round_money(
        course_revenue(enrollments) + subscription_revenue(subscriptions) + workspace_revenue(sessions, hourly_rate)
    )


def global_debt(
    enrollments: Iterable[Enrollment],
    courses: Iterable[Course],
    subscriptions: Iterable[Subscription],
) -> float:
    """Owed minus paid over enrollments and subscriptions. Workspace time is never owed."""
    enrollments = list(enrollments)
    subscriptions = list(subscriptions)
    prices = {c.id: c.price_total for c in courses}

    owed = sum(prices.get(e.course_id, 0.0) for e in enrollments) + sum(s.total_price for s in subscriptions)
    paid = sum(e.paid_amount for e in enrollments) + sum(s.paid_amount for s in subscriptions)
    return round_money(owed - paid)


def total_expenses(expenses: Iterable[Expense]) -> float:
    return _money_sum(e.amount for e in expenses)


def net_profit(revenue: float, expenses: Iterable[Expense]) -> float:
    return round_money(revenue - total_expenses(expenses))


def profit_margin(revenue: float, profit: float) -> float:
    if revenue == 0:
        return 0.0
    return profit / revenue * 100


def expenses_by_category(expenses: Iterable[Expense]) -> dict[str, float]:
    totals = {c: 0.0 for c in EXPENSE_CATEGORIES}
    for e in expenses:
        totals[e.category] = round_money(totals.get(e.category, 0.0) + e.amount)
    return totals


def range_filtered_metrics(state: StoreState, start=None, end=None) -> Metrics:
    """
    All headline numbers for [start, end]. Records are picked by
    Enrollment.created_at, Subscription.created_at, Expense.date and
    WorkspaceSession.date. No bounds means all time.
    """
    enrollments = [e for e in state.enrollments if date_in_range(e.created_at, start, end)]
    subscriptions = [s for s in state.subscriptions if date_in_range(s.created_at, start, end)]
    expenses = [x for x in state.expenses if date_in_range(x.date, start, end)]
    sessions = [w for w in state.workspace if date_in_range(w.date, start, end)]
    rate = state.settings.hourly_rate

    c_rev = course_revenue(enrollments)
    s_rev = subscription_revenue(subscriptions)
    w_rev = workspace_revenue(sessions, rate)
    revenue = round_money(c_rev + s_rev + w_rev)
    profit = net_profit(revenue, expenses)

    return Metrics(
        course_revenue=c_rev,
        subscription_revenue=s_rev,
        workspace_revenue=w_rev,
        total_revenue=revenue,
        total_expenses=total_expenses(expenses),
        net_profit=profit,
        profit_margin=profit_margin(revenue, profit),
        total_debt=global_debt(enrollments, state.courses, subscriptions),
    )


def dashboard_metrics(state: StoreState) -> Metrics:
    return range_filtered_metrics(state)


def daily_workspace(state: StoreState, day: str, search: str = "") -> tuple[list[WorkspaceSession], float]:
    needle = search.strip().lower()
    sessions = [w for w in state.workspace if w.date == day and needle in w.person_name.lower()]
    return sessions, workspace_revenue(sessions, state.settings.hourly_rate)
