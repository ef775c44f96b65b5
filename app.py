"""
app.py
Streamlit Training Center Management System (single operator).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
import os
from datetime import date

import pandas as pd
import streamlit as st

import auth
import backup
import db
import metrics
import utils
from i18n import t
from models import (
    DEFAULT_ADMIN_PASSWORD,
    ENROLLMENT_STATUSES,
    EXPENSE_CATEGORIES,
    LANGS,
    PAYMENT_METHODS,
    SUBSCRIPTION_PLANS,
    THEMES,
)
from store import EntityStore, open_store

logging.basicConfig(
    level=os.getenv("CENTER_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Training Center", layout="wide")


@st.cache_resource
def get_store() -> EntityStore:
    # one store per process; every session reads and writes through it
    return open_store(lambda: auth.hash_password(DEFAULT_ADMIN_PASSWORD))


def require_login():
    if "logged_in" not in st.session_state:
        st.session_state.logged_in = False
    if "username" not in st.session_state:
        st.session_state.username = None


def logout(store: EntityStore):
    auth.logout(store)
    st.session_state.logged_in = False
    st.session_state.username = None
    st.success("Logged out.")


def money(x) -> str:
    return utils.format_money(x, get_store().settings.currency)


def clock(iso: str) -> str:
    return utils.parse_instant(iso).astimezone().strftime("%H:%M")


def show_errors(errors: list[str]) -> bool:
    for e in errors:
        st.error(e)
    return bool(errors)


def login_screen(store: EntityStore):
    st.title("🔐 Training Center Login")

    col1, col2 = st.columns([1, 1])
    with col1:
        username = st.text_input("Username", value="admin")
        password = st.text_input("Password", type="password")
        if st.button("Login", type="primary"):
            res = auth.login(store, username.strip(), password)
            if res.ok:
                st.session_state.logged_in = True
                st.session_state.username = username.strip()
                st.rerun()
            else:
                st.error(res.error)

    with col2:
        st.info(
            "First run creates a default admin:\n\n"
            "- username: **admin**\n"
            f"- password: **{DEFAULT_ADMIN_PASSWORD}**\n\n"
            "You will be forced to change it on first login."
        )


def force_change_password_screen(store: EntityStore):
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if show_errors(utils.validate_new_password(new1, new2, store.settings.lang)):
            return
        auth.change_password(store, st.session_state.username, new1)
        st.success("Password updated. You can continue.")
        st.rerun()


# ---------- Pages ----------

def dashboard_page(store: EntityStore):
    st.header("📊 Dashboard")
    state = store.state
    m = metrics.dashboard_metrics(state)

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Revenue (all sources)", money(m.total_revenue))
    c2.metric("Total debt (uncollected)", money(m.total_debt))
    c3.metric("Students", len(state.students))
    c4.metric("Net profit", money(m.net_profit))

    st.divider()

    st.subheader("Financial health")
    chart = pd.DataFrame(
        {"amount": [m.total_revenue, m.total_expenses, m.total_debt]},
        index=["Revenue", "Expenses", "Debt"],
    )
    st.bar_chart(chart)

    st.subheader("Payment alerts")
    alerts = metrics.students_with_outstanding_balance(state)
    if alerts:
        st.dataframe(
            pd.DataFrame(
                [
                    {"name": s.name, "phone": s.phone or "", "remaining": money(b.remaining)}
                    for s, b in alerts
                ]
            ),
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.caption("Every student is fully paid.")


def mentors_page(store: EntityStore):
    st.header("🧑‍🏫 Mentors")
    lang = store.settings.lang

    search = st.text_input("Search (name/phone)")
    needle = search.strip().lower()
    mentors = [m for m in store.state.mentors if needle in m.name.lower() or needle in (m.phone or "")]
    st.dataframe(backup.records_frame(mentors), use_container_width=True, hide_index=True)

    st.divider()
    st.subheader("➕ Add mentor")
    c1, c2, c3 = st.columns(3)
    name = c1.text_input("Name", key="mentor_name")
    phone = c2.text_input("Phone", key="mentor_phone")
    email = c3.text_input("Email", key="mentor_email")
    notes = st.text_input("Notes", key="mentor_notes")
    if st.button("Save mentor", type="primary"):
        if not show_errors(utils.validate_required(name, "Name", lang)):
            store.add_mentor(name=name.strip(), phone=phone.strip() or None, email=email.strip() or None,
                             notes=notes.strip() or None)
            st.success("Mentor added.")
            st.rerun()

    if store.state.mentors:
        st.divider()
        options = utils.choice_map(store.state.mentors)
        chosen = metrics.find_by_id(store.state.mentors, options[st.selectbox("Mentor", list(options.keys()))])
        c1, c2 = st.columns(2)
        with c1:
            new_name = st.text_input("Rename", value=chosen.name, key=f"rename_{chosen.id}")
            if st.button("Update"):
                if not show_errors(utils.validate_required(new_name, "Name", lang)):
                    store.update_mentor(chosen.id, name=new_name.strip())
                    st.rerun()
        with c2:
            confirm = st.checkbox("Confirm delete", value=False, key="del_mentor")
            if st.button("Delete", disabled=not confirm):
                store.delete_mentor(chosen.id)
                st.success("Mentor deleted; their courses are now unassigned.")
                st.rerun()


def student_detail(store: EntityStore, student_id: str):
    state = store.state
    student = metrics.find_by_id(state.students, student_id)
    if student is None:
        st.caption("Student not found.")
        return

    balance = metrics.student_balance(state, student_id)
    st.subheader(student.name)
    c1, c2, c3 = st.columns(3)
    c1.metric("Total", money(balance.total_due))
    c2.metric("Paid", money(balance.total_paid))
    c3.metric("Remaining", money(balance.remaining))

    rows = []
    for e in state.enrollments:
        if e.student_id != student_id:
            continue
        course = metrics.find_by_id(state.courses, e.course_id)
        rows.append(
            {
                "course": course.title if course else "—",
                "status": e.status,
                "paid": e.paid_amount,
                "remaining": metrics.course_remaining(e, course) if course else 0.0,
                "attendance": metrics.attendance_count(e),
                "grade": e.grade,
            }
        )
    st.write("Enrollments")
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    subs = [s for s in state.subscriptions if s.student_id == student_id]
    st.write("Subscriptions")
    st.dataframe(backup.records_frame(subs), use_container_width=True, hide_index=True)

    c1, c2 = st.columns(2)
    with c1:
        course_options = utils.choice_map(state.courses, "title")
        picked = st.multiselect("Enroll in courses", list(course_options.keys()))
        if st.button("Enroll", disabled=not picked):
            created = store.enroll_student(student_id, [course_options[p] for p in picked])
            st.success(f"{len(created)} enrollment(s) created.")
            st.rerun()
    with c2:
        confirm = st.checkbox("Confirm delete (removes enrollments and subscriptions)", key="del_student")
        if st.button("Delete student", disabled=not confirm):
            store.delete_student(student_id)
            st.rerun()


def students_page(store: EntityStore):
    st.header("👥 Students")
    lang = store.settings.lang

    with st.sidebar:
        st.subheader("Search")
        search = st.text_input("Search (name/phone)")

    needle = search.strip().lower()
    students = [s for s in store.state.students if needle in s.name.lower() or needle in (s.phone or "")]
    st.dataframe(backup.records_frame(students), use_container_width=True, hide_index=True)

    st.divider()
    c1, c2 = st.columns(2)
    with c1:
        st.subheader("➕ Add student")
        name = st.text_input("Name", key="student_name")
        phone = st.text_input("Phone", key="student_phone")
        if st.button("Save student", type="primary"):
            if not show_errors(utils.validate_required(name, "Name", lang)):
                store.add_student(name=name.strip(), phone=phone.strip() or None)
                st.success("Student added.")
                st.rerun()
    with c2:
        st.subheader("Bulk upload")
        st.download_button(
            "Download template",
            data=backup.students_template_xlsx(lang),
            file_name="Student_Import_Template.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        upload = st.file_uploader("Upload .xlsx or .csv", type=["xlsx", "csv"])
        if upload is not None and st.button("Import students"):
            try:
                rows = backup.read_students_upload(upload.getvalue(), upload.name, lang)
            except backup.ParseError as e:
                st.error(str(e))
            else:
                added = backup.import_students_batch(store, rows)
                st.success(f"{added} student(s) imported.")
                st.rerun()

    if store.state.students:
        st.divider()
        options = {f"{s.name} ({s.phone or '-'}) - {s.id[:6]}": s.id for s in store.state.students}
        student_detail(store, options[st.selectbox("Student", list(options.keys()))])


def course_detail(store: EntityStore, course_id: str):
    state = store.state
    lang = state.settings.lang
    course = metrics.find_by_id(state.courses, course_id)
    if course is None:
        st.caption("Course not found.")
        return

    mentor = metrics.find_by_id(state.mentors, course.mentor_id)
    summary = metrics.course_summary(state, course_id)
    st.subheader(course.title)
    st.caption(f"Mentor: {mentor.name if mentor else '—'} | Price: {money(course.price_total)}")
    c1, c2, c3 = st.columns(3)
    c1.metric("Enrolled", summary.enrolled)
    c2.metric("Collected", money(summary.collected))
    c3.metric("Remaining", money(summary.remaining))

    day = st.date_input("Attendance date", value=date.today()).isoformat()

    for e in [e for e in state.enrollments if e.course_id == course_id]:
        student = metrics.find_by_id(state.students, e.student_id)
        with st.expander(f"{student.name if student else 'Unknown'} - paid {money(e.paid_amount)}"):
            c1, c2, c3, c4 = st.columns(4)
            with c1:
                present = bool(e.attendance.get(day))
                if st.button("Mark absent" if present else "Mark present", key=f"att_{e.id}"):
                    store.toggle_attendance(e.id, day)
                    st.rerun()
            with c2:
                amount = st.text_input("Payment (+/-)", key=f"pay_{e.id}")
                if st.button("Record payment", key=f"paybtn_{e.id}"):
                    errors = utils.validate_payment(e.paid_amount, amount, course.price_total, lang)
                    if not show_errors(errors):
                        store.add_course_payment(e.id, float(amount))
                        st.rerun()
            with c3:
                status = st.selectbox("Status", ENROLLMENT_STATUSES, index=ENROLLMENT_STATUSES.index(e.status)
                                      if e.status in ENROLLMENT_STATUSES else 0, key=f"status_{e.id}")
                grade = st.text_input("Grade", value="" if e.grade is None else str(e.grade), key=f"grade_{e.id}")
                if st.button("Save", key=f"save_{e.id}"):
                    if not show_errors(utils.validate_grade(grade, lang)):
                        store.update_enrollment(e.id, status=status, grade=float(grade) if grade.strip() else None)
                        st.rerun()
            with c4:
                if st.button("Unenroll", key=f"unenroll_{e.id}"):
                    store.unenroll(e.id)
                    st.rerun()

    st.download_button(
        "Download attendance (.xlsx)",
        data=backup.attendance_xlsx(state, course_id, lang),
        file_name=backup.attendance_filename(course),
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    confirm = st.checkbox("Confirm delete (removes enrollments)", key="del_course")
    if st.button("Delete course", disabled=not confirm):
        store.delete_course(course_id)
        st.rerun()


def courses_page(store: EntityStore):
    st.header("📚 Courses")
    state = store.state
    lang = state.settings.lang

    rows = []
    for c in state.courses:
        mentor = metrics.find_by_id(state.mentors, c.mentor_id)
        summary = metrics.course_summary(state, c.id)
        rows.append({"title": c.title, "mentor": mentor.name if mentor else "—", "price": c.price_total,
                     "enrolled": summary.enrolled, "collected": summary.collected})
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    st.divider()
    st.subheader("➕ Add course")
    c1, c2, c3 = st.columns(3)
    title = c1.text_input("Title")
    price = c2.text_input("Total price", value="0")
    mentor_options = {"(none)": None} | utils.choice_map(state.mentors)
    mentor_label = c3.selectbox("Mentor", list(mentor_options.keys()))
    if st.button("Save course", type="primary"):
        errors = utils.validate_required(title, "Title", lang) + utils.validate_price(price, "Total price", lang)
        if not show_errors(errors):
            store.add_course(title=title.strip(), price_total=float(price), mentor_id=mentor_options[mentor_label])
            st.success("Course added.")
            st.rerun()

    if state.courses:
        st.divider()
        options = utils.choice_map(state.courses, "title")
        course_detail(store, options[st.selectbox("Course", list(options.keys()))])


def workspace_page(store: EntityStore):
    st.header("💻 Workspace")
    lang = store.settings.lang

    c1, c2 = st.columns([1, 2])
    with c1:
        view_day = st.date_input("Day", value=date.today()).isoformat()
        person = st.text_input("Visitor name")
        if st.button("Check in", type="primary"):
            if not show_errors(utils.validate_required(person, "Name", lang)):
                store.check_in(person.strip(), view_day)
                st.rerun()
    with c2:
        search = st.text_input("Search visitors")
        sessions, total = metrics.daily_workspace(store.state, view_day, search)
        st.metric(f"Total for {view_day}", money(total))
        for s in sessions:
            cost = utils.session_cost(s, store.settings.hourly_rate)
            cols = st.columns([3, 2, 1, 1])
            cols[0].write(f"**{s.person_name}** in {clock(s.check_in_at)}"
                          + (f" / out {clock(s.check_out_at)}" if s.check_out_at else " (open)"))
            cols[1].write(money(cost))
            if s.is_open and cols[2].button("Check out", key=f"out_{s.id}"):
                store.check_out(s.id)
                st.rerun()
            if cols[3].button("Delete", key=f"del_{s.id}"):
                store.delete_workspace_session(s.id)
                st.rerun()


def subscriptions_page(store: EntityStore):
    st.header("🎟️ Subscriptions")
    state = store.state
    lang = state.settings.lang

    c1, c2, c3 = st.columns(3)
    with c1:
        student_options = {"(guest)": None} | utils.choice_map(state.students)
        student_label = st.selectbox("Student", list(student_options.keys()))
        guest_name = st.text_input("Guest name", disabled=student_options[student_label] is not None)
    with c2:
        plan = st.selectbox("Plan", SUBSCRIPTION_PLANS, index=SUBSCRIPTION_PLANS.index("monthly"))
        price = st.text_input("Total price", value=str(state.settings.sub_prices.for_plan(plan)), key=f"price_{plan}")
    with c3:
        method = st.selectbox("Method", PAYMENT_METHODS)

    if st.button("Add subscription", type="primary"):
        student_id = student_options[student_label]
        student = metrics.find_by_id(state.students, student_id)
        person = student.name if student else guest_name
        errors = utils.validate_required(person, "Name", lang) + utils.validate_price(price, "Total price", lang)
        if not show_errors(errors):
            store.add_subscription(person_name=person.strip(), plan=plan, total_price=float(price),
                                   method=method, student_id=student_id)
            st.rerun()

    st.divider()
    for sub in store.state.subscriptions:
        settled = metrics.is_settled(sub.paid_amount, sub.total_price)
        cols = st.columns([3, 2, 2, 1])
        cols[0].write(f"**{sub.person_name}** · {t(lang, sub.plan)} · {t(lang, sub.method)}")
        cols[1].write(f"{money(sub.paid_amount)} / {money(sub.total_price)}" + (" ✅" if settled else ""))
        amount = cols[2].text_input("Payment (+/-)", key=f"subpay_{sub.id}", label_visibility="collapsed")
        if cols[3].button("Pay", key=f"subpaybtn_{sub.id}"):
            if not show_errors(utils.validate_payment(sub.paid_amount, amount, sub.total_price, lang)):
                store.add_subscription_payment(sub.id, float(amount))
                st.rerun()
        if st.button("Delete", key=f"subdel_{sub.id}"):
            store.delete_subscription(sub.id)
            st.rerun()


def expenses_page(store: EntityStore):
    st.header("💸 Expenses")
    lang = store.settings.lang

    c1, c2, c3, c4 = st.columns(4)
    title = c1.text_input("Title")
    amount = c2.text_input("Amount", value="0")
    category = c3.selectbox("Category", EXPENSE_CATEGORIES)
    exp_date = c4.date_input("Date", value=date.today()).isoformat()
    if st.button("Add expense", type="primary"):
        if not show_errors(utils.validate_expense_inputs(title, amount, category, exp_date, lang)):
            store.add_expense(title=title.strip(), amount=float(amount), category=category, date=exp_date)
            st.rerun()

    st.divider()
    expenses = store.state.expenses
    st.metric("Total expenses", money(metrics.total_expenses(expenses)))
    by_cat = metrics.expenses_by_category(expenses)
    st.dataframe(pd.DataFrame({"category": list(by_cat), "total": list(by_cat.values())}), hide_index=True)

    for x in expenses:
        cols = st.columns([3, 2, 2, 1])
        cols[0].write(f"**{x.title}** · {t(lang, x.category)}")
        cols[1].write(money(x.amount))
        cols[2].write(x.date)
        if cols[3].button("Delete", key=f"expdel_{x.id}"):
            store.delete_expense(x.id)
            st.rerun()


def reports_page(store: EntityStore):
    st.header("🧾 Reports")
    state = store.state

    c1, c2, c3 = st.columns(3)
    use_range = c1.toggle("Filter by date", value=False)
    last_start, last_end = utils.previous_month_bounds()
    start = c2.date_input("From", value=last_start, disabled=not use_range)
    end = c3.date_input("To", value=last_end, disabled=not use_range)
    if not use_range:
        start = end = None

    m = metrics.range_filtered_metrics(state, start, end)
    st.caption(f"{start or '...'} / {end or '...'}" if use_range else "All time")

    summary = pd.DataFrame(
        [
            {"source": "Courses", "amount": m.course_revenue},
            {"source": "Subscriptions", "amount": m.subscription_revenue},
            {"source": "Workspace", "amount": m.workspace_revenue},
            {"source": "Revenue", "amount": m.total_revenue},
            {"source": "Expenses", "amount": m.total_expenses},
            {"source": "Net profit", "amount": m.net_profit},
            {"source": "Debt", "amount": m.total_debt},
        ]
    )
    st.dataframe(summary, use_container_width=True, hide_index=True)
    st.metric("Profit margin", f"{m.profit_margin:.1f}%")

    st.divider()

    st.subheader("Export students to CSV")
    if state.students:
        st.download_button(
            "Download students.csv",
            data=backup.frame_to_csv_bytes(backup.students_frame(state)),
            file_name="students.csv",
            mime="text/csv",
        )
    else:
        st.caption("No students to export.")

    st.subheader("Export expenses to CSV")
    if state.expenses:
        st.download_button(
            "Download expenses.csv",
            data=backup.frame_to_csv_bytes(backup.records_frame(state.expenses)),
            file_name="expenses.csv",
            mime="text/csv",
        )
    else:
        st.caption("No expenses to export.")


def settings_page(store: EntityStore):
    st.header("⚙️ Settings")
    s = store.settings

    c1, c2 = st.columns(2)
    with c1:
        lang = st.selectbox("Language", LANGS, index=LANGS.index(s.lang) if s.lang in LANGS else 0)
        theme = st.selectbox("Theme", THEMES, index=THEMES.index(s.theme) if s.theme in THEMES else 0)
        currency = st.text_input("Currency code", value=s.currency)
        hourly = st.text_input("Workspace hourly rate", value=str(s.hourly_rate))
    with c2:
        daily = st.text_input("Daily plan price", value=str(s.sub_prices.daily))
        weekly = st.text_input("Weekly plan price", value=str(s.sub_prices.weekly))
        monthly = st.text_input("Monthly plan price", value=str(s.sub_prices.monthly))

    if st.button("Save settings", type="primary"):
        errors = utils.validate_required(currency, "Currency", s.lang)
        for value, label in ((hourly, "Hourly rate"), (daily, "Daily"), (weekly, "Weekly"), (monthly, "Monthly")):
            errors += utils.validate_price(value, label, s.lang)
        if not show_errors(errors):
            store.set_settings(
                lang=lang,
                theme=theme,
                currency=currency.strip().upper(),
                hourly_rate=float(hourly),
                sub_prices={"daily": float(daily), "weekly": float(weekly), "monthly": float(monthly)},
            )
            st.success("Settings saved.")
            st.rerun()

    st.divider()

    st.subheader("Backup")
    st.download_button(
        "Export data (.json)",
        data=backup.export_snapshot(store.state).encode("utf-8"),
        file_name=backup.backup_filename(),
        mime="application/json",
    )
    restore = st.file_uploader("Import data (.json)", type=["json"])
    if restore is not None and st.button("Restore backup"):
        res = backup.import_snapshot(store, restore.getvalue())
        if res.ok:
            st.success("Backup imported.")
            st.rerun()
        else:
            st.error(res.error)

    st.divider()

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password"):
        if not show_errors(utils.validate_new_password(p1, p2, s.lang)):
            auth.change_password(store, st.session_state.username, p1)
            st.success("Password updated.")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert sample mentors, students, courses, subscriptions and expenses (adds new rows each run).")
    if st.button("Insert sample data"):
        utils.insert_sample_data(store)
        st.success("Sample data inserted.")
        st.rerun()


PAGES = {
    "Dashboard": dashboard_page,
    "Mentors": mentors_page,
    "Students": students_page,
    "Courses": courses_page,
    "Workspace": workspace_page,
    "Subscriptions": subscriptions_page,
    "Expenses": expenses_page,
    "Reports": reports_page,
    "Settings": settings_page,
}


def main_app(store: EntityStore):
    st.sidebar.title("🎓 Training Center")
    st.sidebar.caption(f"Logged in as: {st.session_state.username}")

    pages = list(PAGES)
    if "page" not in st.session_state:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout(store)
        st.rerun()

    PAGES[st.session_state.page](store)


# --------- App entry ---------

def run():
    store = get_store()
    require_login()

    if not st.session_state.logged_in:
        login_screen(store)
        return

    # Force password change on first login after the store is created
    if db.is_force_password_change():
        force_change_password_screen(store)
        return

    main_app(store)


if __name__ == "__main__":
    run()
