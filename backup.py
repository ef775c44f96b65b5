"""
backup.py
Whole-store JSON backup/restore, bulk student upload and spreadsheet exports.
"""

from __future__ import annotations

import io
import json
import logging
import math
import zipfile
from dataclasses import asdict, fields, replace
from datetime import date
from pathlib import Path

import pandas as pd

import metrics
from i18n import LABELS, t
from models import (
    DAY_FIELDS,
    INSTANT_FIELDS,
    MONEY_FIELDS,
    Course,
    Enrollment,
    Expense,
    Mentor,
    Result,
    Settings,
    StoreState,
    Student,
    SubPrices,
    Subscription,
    User,
    WorkspaceSession,
)
from utils import parse_instant, parse_iso, round_money

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "users": User,
    "mentors": Mentor,
    "students": Student,
    "courses": Course,
    "enrollments": Enrollment,
    "workspace": WorkspaceSession,
    "subscriptions": Subscription,
    "expenses": Expense,
}
OPTIONAL_COLLECTIONS = {"users"}

UPLOAD_SUFFIXES = (".xlsx", ".csv")


class ParseError(Exception):
    """Backup document could not be read; the store was not touched."""


# ---------- Snapshot ----------

def state_to_dict(state: StoreState) -> dict:
    return asdict(state)


def export_snapshot(state: StoreState) -> str:
    return json.dumps(state_to_dict(state), ensure_ascii=False, indent=2)


def backup_filename(today: date | None = None) -> str:
    today = today or date.today()
    return f"center-backup-{today.isoformat()}.json"


def _number(value, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ParseError(f"{where}: expected a number, got {value!r}")
    return value


def _text(value, where: str, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, str):
        raise ParseError(f"{where}: expected a string, got {value!r}")


def _day(value, where: str) -> None:
    _text(value, where)
    try:
        parse_iso(value)
    except ValueError as e:
        raise ParseError(f"{where}: not a YYYY-MM-DD date ({value!r})") from e


def _instant(value, where: str, optional: bool = False) -> None:
    _text(value, where, optional)
    if value is None:
        return
    try:
        parse_instant(value)
    except ValueError as e:
        raise ParseError(f"{where}: not an ISO timestamp ({value!r})") from e


def _checked(record, where: str):
    """Type-checks every field of a freshly built record and rounds its money fields."""
    rounded = {}
    for f in fields(record):
        value = getattr(record, f.name)
        at = f"{where}.{f.name}"
        optional = f.default is None
        if f.name in MONEY_FIELDS:
            rounded[f.name] = round_money(_number(value, at))
        elif f.name in DAY_FIELDS:
            _day(value, at)
        elif f.name in INSTANT_FIELDS:
            _instant(value, at, optional)
        elif f.name == "grade":
            if value is not None:
                _number(value, at)
        elif f.name in ("attendance", "sub_prices"):
            continue  # nested; checked by the caller
        else:
            _text(value, at, optional)
    return replace(record, **rounded)


def _build(record_type, row, where: str):
    if not isinstance(row, dict):
        raise ParseError(f"{where}: expected an object")
    try:
        record = record_type(**row)
    except TypeError as e:
        raise ParseError(f"{where}: {e}") from e
    return _checked(record, where)


def _build_enrollment(row, where: str) -> Enrollment:
    e = _build(Enrollment, row, where)
    if not isinstance(e.attendance, dict):
        raise ParseError(f"{where}: attendance must be an object")
    for day, present in e.attendance.items():
        _day(day, f"{where}.attendance")
        if not isinstance(present, bool):
            raise ParseError(f"{where}.attendance[{day}]: expected true or false, got {present!r}")
    return replace(e, attendance=dict(e.attendance))


def _build_settings(raw) -> Settings:
    if not isinstance(raw, dict):
        raise ParseError("settings: expected an object")
    prices = raw.get("sub_prices", {})
    if not isinstance(prices, dict):
        raise ParseError("settings.sub_prices: expected an object")
    try:
        sub_prices = SubPrices(**prices)
        settings = Settings(**{**raw, "sub_prices": sub_prices})
    except TypeError as e:
        raise ParseError(f"settings: {e}") from e
    return _checked(replace(settings, sub_prices=_checked(sub_prices, "settings.sub_prices")), "settings")


def parse_snapshot(document: str | bytes) -> StoreState:
    """Strict reader for export_snapshot() output; raises ParseError on anything else."""
    try:
        data = json.loads(document)
    except (TypeError, ValueError) as e:
        raise ParseError(f"Parse Error: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("Parse Error: document root must be an object")

    missing = [k for k in list(COLLECTIONS) + ["settings"] if k not in data and k not in OPTIONAL_COLLECTIONS]
    if missing:
        raise ParseError(f"Parse Error: missing {', '.join(missing)}")

    parsed: dict[str, tuple] = {}
    for key, record_type in COLLECTIONS.items():
        rows = data.get(key, [])
        if not isinstance(rows, list):
            raise ParseError(f"{key}: expected a list")
        if record_type is Enrollment:
            records = tuple(_build_enrollment(r, f"{key}[{i}]") for i, r in enumerate(rows))
        else:
            records = tuple(_build(record_type, r, f"{key}[{i}]") for i, r in enumerate(rows))
        ids = [r.id for r in records]
        if len(ids) != len(set(ids)):
            raise ParseError(f"{key}: duplicate ids")
        parsed[key] = records

    current_user_id = data.get("current_user_id")
    _text(current_user_id, "current_user_id", optional=True)

    return StoreState(
        **parsed,
        settings=_build_settings(data["settings"]),
        current_user_id=current_user_id,
    )


def import_snapshot(store, document: str | bytes) -> Result:
    return store.import_whole_state(document)


# ---------- Bulk student upload ----------

def _cell(value) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value).strip()


def _pick_column(columns: list, key: str, lang: str, position: int):
    headers = [t(lang, key)] + [table[key] for table in LABELS.values()]
    for header in headers:
        if header in columns:
            return header
    if len(columns) > position:
        return columns[position]
    return None


def rows_from_frame(df: pd.DataFrame, lang: str = "en") -> list[dict]:
    """Maps a sheet to name/phone rows by localized header, else by column position."""
    columns = list(df.columns)
    name_col = _pick_column(columns, "name", lang, 0)
    phone_col = _pick_column(columns, "phone", lang, 1)
    if name_col is None:
        return []
    if phone_col == name_col:
        phone_col = None

    rows = []
    for record in df.to_dict(orient="records"):
        rows.append(
            {
                "name": _cell(record.get(name_col)),
                "phone": _cell(record.get(phone_col)) if phone_col is not None else "",
            }
        )
    return rows


def read_students_upload(data: bytes, filename: str, lang: str = "en") -> list[dict]:
    suffix = Path(filename).suffix.lower()
    if suffix not in UPLOAD_SUFFIXES:
        raise ParseError(f"Unsupported file type: {suffix or filename}")
    buf = io.BytesIO(data)
    try:
        if suffix == ".csv":
            df = pd.read_csv(buf, dtype=str)
        else:
            df = pd.read_excel(buf, dtype=str, engine="openpyxl")
    except (ValueError, KeyError, UnicodeDecodeError, zipfile.BadZipFile) as e:
        raise ParseError(f"Could not read {filename}: {e}") from e
    return rows_from_frame(df, lang)


def import_students_batch(store, rows: list[dict]) -> int:
    """Adds one student per row with a non-blank name; other rows are dropped."""
    keep = []
    for row in rows:
        name = _cell(row.get("name"))
        if not name:
            continue
        phone = _cell(row.get("phone"))
        keep.append({"name": name, "phone": phone or None})
    store.add_students_batch(keep)
    logger.info("Bulk upload: %d student(s) added, %d row(s) skipped", len(keep), len(rows) - len(keep))
    return len(keep)


# ---------- Spreadsheet exports ----------

def _xlsx_bytes(sheets: dict[str, pd.DataFrame]) -> bytes:
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name[:31], index=False)
    return buf.getvalue()


def students_template_xlsx(lang: str = "en") -> bytes:
    df = pd.DataFrame(columns=[t(lang, "name"), t(lang, "phone")])
    return _xlsx_bytes({"Students": df})


def attendance_frame(state: StoreState, course_id: str, lang: str = "en") -> pd.DataFrame:
    """
    One row per enrollment of the course, then one column per attendance date
    seen across those enrollments (ascending), marked Present/Absent.
    """
    course = metrics.find_by_id(state.courses, course_id)
    enrollments = [e for e in state.enrollments if e.course_id == course_id]
    dates = sorted({d for e in enrollments for d in e.attendance})
    price = course.price_total if course else 0.0

    base_cols = [t(lang, k) for k in ("student_name", "grade", "status", "paid", "remaining")]
    rows = []
    for e in enrollments:
        student = metrics.find_by_id(state.students, e.student_id)
        row = {
            base_cols[0]: student.name if student else t(lang, "unknown"),
            base_cols[1]: e.grade or 0,
            base_cols[2]: t(lang, e.status),
            base_cols[3]: e.paid_amount,
            base_cols[4]: round_money(price - e.paid_amount),
        }
        for d in dates:
            row[d] = t(lang, "present") if e.attendance.get(d) else t(lang, "absent")
        rows.append(row)
    return pd.DataFrame(rows, columns=base_cols + dates)


def attendance_xlsx(state: StoreState, course_id: str, lang: str = "en") -> bytes:
    return _xlsx_bytes({"Attendance Grid": attendance_frame(state, course_id, lang)})


def attendance_filename(course: Course) -> str:
    return f"{course.title}_Attendance_Report.xlsx"


def students_frame(state: StoreState) -> pd.DataFrame:
    rows = []
    for s in state.students:
        balance = metrics.student_balance(state, s.id)
        rows.append(
            {
                "id": s.id,
                "name": s.name,
                "phone": s.phone or "",
                "email": s.email or "",
                "total_due": balance.total_due,
                "total_paid": balance.total_paid,
                "remaining": balance.remaining,
            }
        )
    return pd.DataFrame(rows, columns=["id", "name", "phone", "email", "total_due", "total_paid", "remaining"])


def records_frame(records) -> pd.DataFrame:
    records = list(records)
    if not records:
        return pd.DataFrame()
    return pd.DataFrame([asdict(r) for r in records], columns=[f.name for f in fields(records[0])])


def frame_to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")
