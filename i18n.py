"""
i18n.py
Arabic/English labels for spreadsheet headers, status names and validation messages.
"""

from __future__ import annotations

LABELS: dict[str, dict[str, str]] = {
    "en": {
        "name": "Name",
        "phone": "Phone",
        "student_name": "Student Name",
        "grade": "Grade",
        "status": "Status",
        "paid": "Paid",
        "remaining": "Remaining",
        "present": "Present",
        "absent": "Absent",
        "unknown": "Unknown",
        "active": "Active",
        "completed": "Completed",
        "dropped": "Dropped",
        "daily": "Daily",
        "weekly": "Weekly",
        "monthly": "Monthly",
        "cash": "Cash",
        "bank": "Bank",
        "rent": "Rent",
        "salary": "Salary",
        "utilities": "Utilities",
        "marketing": "Marketing",
        "supplies": "Supplies",
        "other": "Other",
        "err_required": "{label} is required.",
        "err_numeric": "{label} must be numeric.",
        "err_negative": "{label} cannot be negative.",
        "err_positive": "{label} must be greater than zero.",
        "err_zero_payment": "Enter a non-zero amount.",
        "err_paid_below_zero": "Paid amount cannot be less than zero.",
        "err_paid_over_total": "Amount exceeds total price.",
        "err_grade_range": "Grade must be between 0 and 100.",
        "err_choice": "{label} must be one of: {options}.",
        "err_password_short": "Password must be at least 6 characters.",
        "err_password_mismatch": "Passwords do not match.",
    },
    "ar": {
        "name": "الاسم",
        "phone": "الهاتف",
        "student_name": "الاسم",
        "grade": "العلامة",
        "status": "الحالة",
        "paid": "المدفوع",
        "remaining": "المتبقي",
        "present": "حاضر",
        "absent": "غائب",
        "unknown": "غير معروف",
        "active": "نشط",
        "completed": "مكتمل",
        "dropped": "منسحب",
        "daily": "يومي",
        "weekly": "أسبوعي",
        "monthly": "شهري",
        "cash": "نقدي",
        "bank": "بنكي",
        "rent": "إيجار",
        "salary": "رواتب",
        "utilities": "خدمات",
        "marketing": "تسويق",
        "supplies": "مستلزمات",
        "other": "أخرى",
        "err_required": "{label} مطلوب.",
        "err_numeric": "{label} يجب أن يكون رقماً.",
        "err_negative": "{label} لا يمكن أن يكون سالباً.",
        "err_positive": "{label} يجب أن يكون أكبر من صفر.",
        "err_zero_payment": "أدخل مبلغاً غير صفري.",
        "err_paid_below_zero": "المبلغ المدفوع لا يمكن أن يكون أقل من صفر.",
        "err_paid_over_total": "المبلغ يتجاوز السعر الإجمالي.",
        "err_grade_range": "العلامة يجب أن تكون بين 0 و 100.",
        "err_choice": "{label} يجب أن يكون أحد: {options}.",
        "err_password_short": "كلمة المرور يجب أن تكون 6 أحرف على الأقل.",
        "err_password_mismatch": "كلمتا المرور غير متطابقتين.",
    },
}


def t(lang: str, key: str, **kwargs) -> str:
    table = LABELS.get(lang, LABELS["en"])
    text = table.get(key) or LABELS["en"].get(key, key)
    return text.format(**kwargs) if kwargs else text
