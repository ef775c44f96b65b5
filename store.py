"""
store.py
In-memory entity store. Every mutator builds a new StoreState and hands it to
the persist callback, so a reader never sees a half-applied change.

Unknown ids are ignored by update/delete operations (no error). Payment
mutators add the delta as given; bounds are checked by the caller
(utils.validate_payment).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Callable, Iterable

import db
from backup import ParseError, export_snapshot, parse_snapshot
from models import (
    ADMIN_USER_ID,
    MONEY_FIELDS,
    Course,
    Enrollment,
    Expense,
    Mentor,
    Result,
    Settings,
    Student,
    User,
    StoreState,
    SubPrices,
    Subscription,
    WorkspaceSession,
    default_admin,
    empty_state,
)
from utils import now_iso, round_money, today_iso

logger = logging.getLogger(__name__)


def new_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _day_key(day: str | date | None) -> str:
    if day is None or day == "":
        return today_iso()
    if isinstance(day, date):
        return day.isoformat()
    return day


def _clean_patch(record_type, patch: dict) -> dict:
    known = {f.name for f in fields(record_type)}
    unknown = set(patch) - known
    if unknown:
        raise TypeError(f"{record_type.__name__} has no field(s): {', '.join(sorted(unknown))}")
    cleaned = {k: v for k, v in patch.items() if k != "id"}
    for key in MONEY_FIELDS & cleaned.keys():
        if cleaned[key] is not None:
            cleaned[key] = round_money(cleaned[key])
    return cleaned


def _patched(items: tuple, item_id: str, patch: dict) -> tuple[tuple, bool]:
    found = False
    out = []
    for item in items:
        if item.id == item_id:
            item = replace(item, **patch)
            found = True
        out.append(item)
    return tuple(out), found


class EntityStore:
    """
    Owner of the current StoreState.

    persist: called with the new state after every mutation (see open_store).
    clock: returns the current aware datetime; used for created_at and check in/out.
    """

    def __init__(
        self,
        state: StoreState | None = None,
        persist: Callable[[StoreState], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._state = state if state is not None else empty_state()
        self._persist = persist
        self._clock = clock or _utc_now

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def settings(self) -> Settings:
        return self._state.settings

    def snapshot(self) -> StoreState:
        """The current state; frozen, so callers can keep it while the store moves on."""
        return self._state

    def _now(self) -> str:
        return now_iso(self._clock())

    def _commit(self, new_state: StoreState, action: str) -> None:
        # a failed write leaves the previous state in place
        if self._persist is not None:
            self._persist(new_state)
        self._state = new_state
        logger.debug("store: %s", action)

    def _update(self, collection: str, record_type, item_id: str, patch: dict) -> None:
        cleaned = _clean_patch(record_type, patch)
        items, found = _patched(getattr(self._state, collection), item_id, cleaned)
        if not found:
            logger.debug("store: ignored update of unknown %s id=%s", collection, item_id)
            return
        self._commit(replace(self._state, **{collection: items}), f"update {collection} {item_id}")

    def _delete(self, collection: str, item_id: str) -> None:
        items = getattr(self._state, collection)
        kept = tuple(x for x in items if x.id != item_id)
        if len(kept) == len(items):
            logger.debug("store: ignored delete of unknown %s id=%s", collection, item_id)
            return
        self._commit(replace(self._state, **{collection: kept}), f"delete {collection} {item_id}")

    # ---------- Identity ----------

    def login_as(self, user_id: str) -> None:
        self._commit(replace(self._state, current_user_id=user_id), f"login {user_id}")

    def logout(self) -> None:
        self._commit(replace(self._state, current_user_id=None), "logout")

    def update_user(self, user_id: str, **patch) -> None:
        self._update("users", User, user_id, patch)

    # ---------- Mentors ----------

    def add_mentor(self, name: str, phone: str | None = None, email: str | None = None, notes: str | None = None) -> str:
        mentor = Mentor(id=new_id(), name=name, phone=phone, email=email, notes=notes)
        self._commit(replace(self._state, mentors=self._state.mentors + (mentor,)), f"add mentor {mentor.id}")
        return mentor.id

    def update_mentor(self, mentor_id: str, **patch) -> None:
        self._update("mentors", Mentor, mentor_id, patch)

    def delete_mentor(self, mentor_id: str) -> None:
        """Removes the mentor and unlinks (does not delete) the courses it taught."""
        mentors = tuple(m for m in self._state.mentors if m.id != mentor_id)
        if len(mentors) == len(self._state.mentors):
            return
        courses = tuple(
            replace(c, mentor_id=None) if c.mentor_id == mentor_id else c for c in self._state.courses
        )
        unlinked = sum(1 for c in self._state.courses if c.mentor_id == mentor_id)
        self._commit(replace(self._state, mentors=mentors, courses=courses), f"delete mentor {mentor_id}")
        logger.info("Deleted mentor %s; unlinked %d course(s)", mentor_id, unlinked)

    # ---------- Students ----------

    def add_student(self, name: str, phone: str | None = None, email: str | None = None, notes: str | None = None) -> str:
        student = Student(id=new_id(), name=name, phone=phone, email=email, notes=notes)
        self._commit(replace(self._state, students=self._state.students + (student,)), f"add student {student.id}")
        return student.id

    def add_students_batch(self, rows: Iterable[dict]) -> list[str]:
        new = tuple(
            Student(id=new_id(), name=r["name"], phone=r.get("phone"), email=r.get("email"), notes=r.get("notes"))
            for r in rows
        )
        if new:
            self._commit(replace(self._state, students=self._state.students + new), f"add {len(new)} students")
        return [s.id for s in new]

    def update_student(self, student_id: str, **patch) -> None:
        self._update("students", Student, student_id, patch)

    def delete_student(self, student_id: str) -> None:
        """Removes the student with all of its enrollments and subscriptions."""
        students = tuple(s for s in self._state.students if s.id != student_id)
        if len(students) == len(self._state.students):
            return
        enrollments = tuple(e for e in self._state.enrollments if e.student_id != student_id)
        subscriptions = tuple(s for s in self._state.subscriptions if s.student_id != student_id)
        dropped_enrollments = len(self._state.enrollments) - len(enrollments)
        dropped_subscriptions = len(self._state.subscriptions) - len(subscriptions)
        self._commit(
            replace(self._state, students=students, enrollments=enrollments, subscriptions=subscriptions),
            f"delete student {student_id}",
        )
        logger.info(
            "Deleted student %s with %d enrollment(s) and %d subscription(s)",
            student_id,
            dropped_enrollments,
            dropped_subscriptions,
        )

    # ---------- Courses ----------

    def add_course(self, title: str, price_total: float, mentor_id: str | None = None) -> str:
        course = Course(
            id=new_id(),
            title=title,
            price_total=round_money(price_total),
            created_at=self._now(),
            mentor_id=mentor_id or None,
        )
        self._commit(replace(self._state, courses=self._state.courses + (course,)), f"add course {course.id}")
        return course.id

    def update_course(self, course_id: str, **patch) -> None:
        self._update("courses", Course, course_id, patch)

    def delete_course(self, course_id: str) -> None:
        """Removes the course and its enrollments. Subscriptions are untouched."""
        courses = tuple(c for c in self._state.courses if c.id != course_id)
        if len(courses) == len(self._state.courses):
            return
        enrollments = tuple(e for e in self._state.enrollments if e.course_id != course_id)
        dropped = len(self._state.enrollments) - len(enrollments)
        self._commit(replace(self._state, courses=courses, enrollments=enrollments), f"delete course {course_id}")
        logger.info("Deleted course %s with %d enrollment(s)", course_id, dropped)

    # ---------- Enrollments ----------

    def enroll_student(self, student_id: str, course_ids: Iterable[str]) -> list[str]:
        """Creates one active enrollment per new (student, course) pair; existing pairs are skipped."""
        taken = {e.course_id for e in self._state.enrollments if e.student_id == student_id}
        created: list[Enrollment] = []
        for course_id in course_ids:
            if course_id in taken:
                continue
            taken.add(course_id)
            created.append(
                Enrollment(
                    id=new_id(),
                    course_id=course_id,
                    student_id=student_id,
                    created_at=self._now(),
                    paid_amount=0.0,
                    attendance={},
                    status="active",
                )
            )
        if created:
            self._commit(
                replace(self._state, enrollments=self._state.enrollments + tuple(created)),
                f"enroll {student_id} in {len(created)} course(s)",
            )
        return [e.id for e in created]

    def unenroll(self, enrollment_id: str) -> None:
        self._delete("enrollments", enrollment_id)

    def update_enrollment(self, enrollment_id: str, **patch) -> None:
        self._update("enrollments", Enrollment, enrollment_id, patch)

    def add_course_payment(self, enrollment_id: str, delta: float) -> None:
        for e in self._state.enrollments:
            if e.id == enrollment_id:
                self.update_enrollment(enrollment_id, paid_amount=e.paid_amount + delta)
                return

    def toggle_attendance(self, enrollment_id: str, day: str | date) -> None:
        key = _day_key(day)
        for e in self._state.enrollments:
            if e.id == enrollment_id:
                attendance = dict(e.attendance)
                attendance[key] = not attendance.get(key, False)
                self.update_enrollment(enrollment_id, attendance=attendance)
                return

    # ---------- Workspace ----------

    def check_in(self, person_name: str, day: str | date | None = None) -> str:
        session = WorkspaceSession(
            id=new_id(),
            date=_day_key(day),
            person_name=person_name,
            check_in_at=self._now(),
        )
        self._commit(replace(self._state, workspace=self._state.workspace + (session,)), f"check in {session.id}")
        return session.id

    def check_out(self, session_id: str) -> None:
        # a second call moves check_out_at forward; it is not rejected
        self._update("workspace", WorkspaceSession, session_id, {"check_out_at": self._now()})

    def delete_workspace_session(self, session_id: str) -> None:
        self._delete("workspace", session_id)

    # ---------- Subscriptions ----------

    def add_subscription(
        self,
        person_name: str,
        plan: str,
        total_price: float,
        paid_amount: float = 0.0,
        method: str = "cash",
        student_id: str | None = None,
    ) -> str:
        sub = Subscription(
            id=new_id(),
            person_name=person_name,
            plan=plan,
            total_price=round_money(total_price),
            created_at=self._now(),
            paid_amount=round_money(paid_amount),
            method=method,
            student_id=student_id or None,
        )
        self._commit(
            replace(self._state, subscriptions=self._state.subscriptions + (sub,)), f"add subscription {sub.id}"
        )
        return sub.id

    def update_subscription(self, sub_id: str, **patch) -> None:
        self._update("subscriptions", Subscription, sub_id, patch)

    def add_subscription_payment(self, sub_id: str, delta: float) -> None:
        for s in self._state.subscriptions:
            if s.id == sub_id:
                self.update_subscription(sub_id, paid_amount=s.paid_amount + delta)
                return

    def delete_subscription(self, sub_id: str) -> None:
        self._delete("subscriptions", sub_id)

    # ---------- Expenses ----------

    def add_expense(self, title: str, amount: float, category: str, date: str | None = None) -> str:
        expense = Expense(
            id=new_id(),
            title=title,
            amount=round_money(amount),
            category=category,
            date=_day_key(date),
            created_at=self._now(),
        )
        self._commit(replace(self._state, expenses=self._state.expenses + (expense,)), f"add expense {expense.id}")
        return expense.id

    def update_expense(self, expense_id: str, **patch) -> None:
        self._update("expenses", Expense, expense_id, patch)

    def delete_expense(self, expense_id: str) -> None:
        self._delete("expenses", expense_id)

    # ---------- Settings ----------

    def set_settings(self, **patch) -> None:
        prices = patch.get("sub_prices")
        if isinstance(prices, SubPrices):
            prices = {f.name: getattr(prices, f.name) for f in fields(SubPrices)}
        if isinstance(prices, dict):
            rounded = {k: round_money(v) for k, v in prices.items()}
            patch["sub_prices"] = replace(self._state.settings.sub_prices, **rounded)
        cleaned = _clean_patch(Settings, patch)
        settings = replace(self._state.settings, **cleaned)
        self._commit(replace(self._state, settings=settings), "update settings")

    # ---------- Whole state ----------

    def replace_state(self, state: StoreState) -> None:
        """Swap in a parsed snapshot; the session is reset to the built-in administrator."""
        users = state.users
        if not any(u.id == ADMIN_USER_ID for u in users):
            current_admin = next((u for u in self._state.users if u.id == ADMIN_USER_ID), None)
            users = (current_admin or default_admin(),) + users
        self._commit(replace(state, users=users, current_user_id=ADMIN_USER_ID), "replace whole state")

    def import_whole_state(self, document: str | bytes) -> Result:
        """Parses a backup document and replaces everything, or leaves the store untouched."""
        try:
            parsed = parse_snapshot(document)
        except ParseError as e:
            logger.warning("Import rejected: %s", e)
            return Result(ok=False, error=str(e))
        self.replace_state(parsed)
        logger.info(
            "Imported snapshot: %d students, %d courses, %d enrollments",
            len(parsed.students),
            len(parsed.courses),
            len(parsed.enrollments),
        )
        return Result(ok=True)


def open_store(default_admin_hash: Callable[[], str], namespace: str = db.NAMESPACE) -> EntityStore:
    """
    Load the persisted store, or seed an empty one with the built-in
    administrator (and force a password change on first login).
    Every later mutation is written back under the same namespace.
    """
    db.init_db()

    def persist(state: StoreState) -> None:
        db.save_document(export_snapshot(state), namespace)

    document = db.load_document(namespace)
    if document is None:
        state = empty_state(default_admin_hash())
        persist(state)
        db.set_force_password_change()
        logger.info("Created new store under namespace %r", namespace)
    else:
        state = parse_snapshot(document)
        logger.info("Loaded store %r: %d students, %d courses", namespace, len(state.students), len(state.courses))

    return EntityStore(state, persist=persist)
