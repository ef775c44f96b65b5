"""
Snapshot export/import, bulk student upload and attendance export.
"""

import io
import json

import pandas as pd
import pytest

import backup
from models import ADMIN_USER_ID
from store import EntityStore


@pytest.fixture
def filled(store: EntityStore) -> EntityStore:
    mentor = store.add_mentor(name="Sarah Johnson", email="sarah.j@design.com")
    course = store.add_course(title="Graphic Design", price_total=800, mentor_id=mentor)
    laila = store.add_student(name="ليلى محمود", phone="0595566778")
    omar = store.add_student(name="Omar Khalid")
    store.enroll_student(laila, [course])
    store.enroll_student(omar, [course])
    store.add_course_payment(store.state.enrollments[0].id, 300.5)
    store.update_enrollment(store.state.enrollments[0].id, grade=88.0)
    store.toggle_attendance(store.state.enrollments[0].id, "2024-03-12")
    store.toggle_attendance(store.state.enrollments[1].id, "2024-03-05")
    store.add_subscription(person_name="Guest", plan="daily", total_price=20, method="bank")
    store.check_in("Walk-in", "2024-03-15")
    store.add_expense(title="Rent", amount=1500, category="rent", date="2024-03-01")
    store.set_settings(lang="en", currency="USD")
    return store


class TestSnapshotRoundTrip:
    def test_import_of_export_reproduces_state(self, filled: EntityStore, clock) -> None:
        document = backup.export_snapshot(filled.state)
        fresh = EntityStore(clock=clock)

        res = backup.import_snapshot(fresh, document)

        assert res.ok
        assert fresh.state == filled.state

    def test_document_is_plain_json(self, filled: EntityStore) -> None:
        data = json.loads(backup.export_snapshot(filled.state))

        assert set(data) >= {"mentors", "students", "courses", "enrollments", "workspace",
                             "subscriptions", "expenses", "settings", "users", "current_user_id"}
        assert data["settings"]["sub_prices"]["monthly"] == 350
        assert data["students"][0]["name"] == "ليلى محمود"

    def test_import_resets_identity_to_admin(self, filled: EntityStore) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["current_user_id"] = None
        data["users"] = []

        res = filled.import_whole_state(json.dumps(data))

        assert res.ok
        assert filled.state.current_user_id == ADMIN_USER_ID
        assert [u.id for u in filled.state.users] == [ADMIN_USER_ID]


class TestSnapshotErrors:
    @pytest.mark.parametrize(
        "document",
        [
            "{not json",
            "[]",
            json.dumps({"students": []}),
        ],
    )
    def test_malformed_document_leaves_store_untouched(self, filled: EntityStore, document) -> None:
        before = filled.state

        res = backup.import_snapshot(filled, document)

        assert not res.ok
        assert res.error
        assert filled.state is before

    def test_bad_record_is_rejected(self, filled: EntityStore) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["courses"][0]["colour"] = "red"

        with pytest.raises(backup.ParseError, match="courses\\[0\\]"):
            backup.parse_snapshot(json.dumps(data))

    def test_duplicate_ids_rejected(self, filled: EntityStore) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["students"].append(dict(data["students"][0]))

        with pytest.raises(backup.ParseError, match="duplicate"):
            backup.parse_snapshot(json.dumps(data))

    def test_attendance_must_be_object(self, filled: EntityStore) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["enrollments"][0]["attendance"] = ["2024-03-12"]

        with pytest.raises(backup.ParseError):
            backup.parse_snapshot(json.dumps(data))

    @pytest.mark.parametrize(
        "collection, field, value",
        [
            ("courses", "price_total", "100"),
            ("courses", "price_total", True),
            ("enrollments", "paid_amount", None),
            ("expenses", "amount", float("nan")),
            ("subscriptions", "total_price", [350]),
            ("enrollments", "grade", "A"),
            ("students", "name", 42),
            ("expenses", "date", "15/03/2024"),
            ("courses", "created_at", "yesterday"),
            ("workspace", "check_out_at", 1710500000),
        ],
    )
    def test_wrong_value_type_rejected(self, filled: EntityStore, collection, field, value) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data[collection][0][field] = value
        before = filled.state

        res = filled.import_whole_state(json.dumps(data))

        assert not res.ok
        assert f"{collection}[0].{field}" in res.error
        assert filled.state is before

    @pytest.mark.parametrize(
        "patch, where",
        [
            ({"hourly_rate": "5"}, "settings.hourly_rate"),
            ({"currency": None}, "settings.currency"),
            ({"sub_prices": {"daily": 20, "weekly": 120, "monthly": "350"}}, "settings.sub_prices.monthly"),
        ],
    )
    def test_wrong_settings_type_rejected(self, filled: EntityStore, patch, where) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["settings"].update(patch)

        with pytest.raises(backup.ParseError, match=where):
            backup.parse_snapshot(json.dumps(data))

    @pytest.mark.parametrize("attendance", [{"2024-03-12": "false"}, {"2024-03-12": 1}, {"monday": True}])
    def test_attendance_entries_must_be_dated_booleans(self, filled: EntityStore, attendance) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["enrollments"][0]["attendance"] = attendance

        with pytest.raises(backup.ParseError, match="enrollments\\[0\\]"):
            backup.parse_snapshot(json.dumps(data))

    def test_money_is_rounded_on_import(self, filled: EntityStore) -> None:
        data = json.loads(backup.export_snapshot(filled.state))
        data["courses"][0]["price_total"] = 800.005
        data["settings"]["sub_prices"]["weekly"] = 99.999

        state = backup.parse_snapshot(json.dumps(data))

        assert state.courses[0].price_total == 800.01
        assert state.settings.sub_prices.weekly == 100.0


class TestStudentUpload:
    def test_blank_names_dropped(self, store: EntityStore) -> None:
        rows = [{"name": " Omar ", "phone": "059"}, {"name": "   ", "phone": "1"}, {"name": "", "phone": ""},
                {"name": "Zaid", "phone": ""}]

        added = backup.import_students_batch(store, rows)

        assert added == 2
        assert [(s.name, s.phone) for s in store.state.students] == [("Omar", "059"), ("Zaid", None)]

    def test_localized_headers(self) -> None:
        df = pd.DataFrame({"الهاتف": ["0591"], "الاسم": ["مريم"]})
        assert backup.rows_from_frame(df, "ar") == [{"name": "مريم", "phone": "0591"}]

    def test_positional_fallback(self) -> None:
        df = pd.DataFrame({"Full": ["Omar", None], "Mobile": ["059", "060"]})
        assert backup.rows_from_frame(df, "en") == [{"name": "Omar", "phone": "059"}, {"name": "", "phone": "060"}]

    def test_single_column_sheet(self) -> None:
        df = pd.DataFrame({"Whatever": ["Omar"]})
        assert backup.rows_from_frame(df) == [{"name": "Omar", "phone": ""}]

    def test_read_csv_keeps_leading_zero(self) -> None:
        data = "Name,Phone\nOmar,0592233445\n,0000\n".encode("utf-8")
        rows = backup.read_students_upload(data, "students.csv")
        assert rows == [{"name": "Omar", "phone": "0592233445"}, {"name": "", "phone": "0000"}]

    def test_read_xlsx(self) -> None:
        buf = io.BytesIO()
        pd.DataFrame({"Name": ["Laila"], "Phone": ["0595566778"]}).to_excel(buf, index=False, engine="openpyxl")
        assert backup.read_students_upload(buf.getvalue(), "Upload.XLSX") == [
            {"name": "Laila", "phone": "0595566778"}
        ]

    def test_unsupported_or_broken_file(self) -> None:
        with pytest.raises(backup.ParseError):
            backup.read_students_upload(b"abc", "students.pdf")
        with pytest.raises(backup.ParseError):
            backup.read_students_upload(b"not a zip", "students.xlsx")

    def test_template_has_localized_headers(self) -> None:
        df = pd.read_excel(io.BytesIO(backup.students_template_xlsx("ar")), engine="openpyxl")
        assert list(df.columns) == ["الاسم", "الهاتف"]


class TestAttendanceExport:
    def test_grid(self, filled: EntityStore) -> None:
        course_id = filled.state.courses[0].id

        df = backup.attendance_frame(filled.state, course_id, "en")

        assert list(df.columns) == ["Student Name", "Grade", "Status", "Paid", "Remaining", "2024-03-05", "2024-03-12"]
        first, second = df.to_dict(orient="records")
        assert first["Grade"] == 88.0
        assert first["Remaining"] == 499.5
        assert (first["2024-03-05"], first["2024-03-12"]) == ("Absent", "Present")
        assert (second["2024-03-05"], second["2024-03-12"]) == ("Present", "Absent")
        assert second["Grade"] == 0
        assert second["Status"] == "Active"

    def test_course_without_enrollments(self, filled: EntityStore) -> None:
        df = backup.attendance_frame(filled.state, "nope", "ar")
        assert df.empty
        assert list(df.columns) == ["الاسم", "العلامة", "الحالة", "المدفوع", "المتبقي"]

    def test_xlsx_bytes_readable(self, filled: EntityStore) -> None:
        data = backup.attendance_xlsx(filled.state, filled.state.courses[0].id)
        df = pd.read_excel(io.BytesIO(data), sheet_name="Attendance Grid", engine="openpyxl")
        assert len(df) == 2


def test_students_frame_includes_balances(filled: EntityStore) -> None:
    df = backup.students_frame(filled.state)
    assert df.loc[0, "remaining"] == 499.5
    assert df.loc[1, "remaining"] == 800
