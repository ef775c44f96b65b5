"""
Money/date primitives and caller-side validators.
"""

from datetime import date

import pytest

import utils
from models import Student, WorkspaceSession


class TestRoundMoney:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (1.005, 1.01),
            (0.1 + 0.2, 0.3),
            (2.675, 2.68),
            (99.994, 99.99),
            (-0.125, -0.13),
            (1200, 1200.0),
        ],
    )
    def test_half_up_at_the_cent(self, value, expected) -> None:
        assert utils.round_money(value) == expected


class TestFormatMoney:
    def test_drops_trailing_zero_cents(self) -> None:
        assert utils.format_money(1200, "ILS") == "₪1,200"

    def test_keeps_significant_cents(self) -> None:
        assert utils.format_money(15.5, "USD") == "$15.5"

    def test_negative_and_unknown_code(self) -> None:
        assert utils.format_money(-20, "xyz") == "-XYZ 20"


class TestDateInRange:
    def test_no_bounds_includes_everything(self) -> None:
        assert utils.date_in_range("1999-01-01")
        assert utils.date_in_range("2024-03-01", "", "")

    def test_bounds_are_inclusive(self) -> None:
        assert utils.date_in_range("2024-03-01", "2024-03-01", "2024-03-31")
        assert utils.date_in_range("2024-03-31", "2024-03-01", "2024-03-31")

    def test_day_outside_is_excluded(self) -> None:
        assert not utils.date_in_range("2024-02-29", "2024-03-01", "2024-03-31")
        assert not utils.date_in_range("2024-04-01", "2024-03-01", "2024-03-31")

    def test_single_bound_constrains_one_side(self) -> None:
        assert utils.date_in_range("2030-01-01", start="2024-03-01")
        assert not utils.date_in_range("2024-02-01", start="2024-03-01")
        assert utils.date_in_range("2000-01-01", end="2024-03-31")
        assert not utils.date_in_range("2024-04-02", end="2024-03-31")

    def test_instants_and_date_objects(self) -> None:
        assert utils.date_in_range("2024-03-15T12:00:00+00:00", date(2024, 3, 1), date(2024, 3, 31))
        assert not utils.date_in_range("2024-05-15T12:00:00Z", date(2024, 3, 1), date(2024, 3, 31))


class TestSessionCost:
    def _session(self, check_out_at=None) -> WorkspaceSession:
        return WorkspaceSession(
            id="w1",
            date="2024-03-15",
            person_name="Guest",
            check_in_at="2024-03-15T10:00:00+00:00",
            check_out_at=check_out_at,
        )

    def test_forty_five_minutes_at_twenty_per_hour(self) -> None:
        assert utils.session_cost(self._session("2024-03-15T10:45:00+00:00"), 20) == 15.0

    def test_open_session_costs_nothing(self) -> None:
        assert utils.session_cost(self._session(), 20) == 0.0

    def test_minutes_round_to_nearest(self) -> None:
        assert utils.minutes_between("2024-03-15T10:00:00+00:00", "2024-03-15T10:00:30+00:00") == 1
        assert utils.minutes_between("2024-03-15T10:00:00+00:00", "2024-03-15T10:00:29+00:00") == 0

    def test_negative_span_clamps_to_zero(self) -> None:
        assert utils.minutes_between("2024-03-15T11:00:00+00:00", "2024-03-15T10:00:00+00:00") == 0
        assert utils.session_cost(self._session("2024-03-15T09:00:00+00:00"), 20) == 0.0


class TestValidatePayment:
    def test_within_bounds(self) -> None:
        assert utils.validate_payment(100, 50, 200) == []

    def test_refund_below_zero_rejected(self) -> None:
        assert utils.validate_payment(10, -20, 200) == ["Paid amount cannot be less than zero."]

    def test_over_total_rejected(self) -> None:
        assert utils.validate_payment(150, 60, 200) == ["Amount exceeds total price."]

    def test_exact_settlement_allowed(self) -> None:
        assert utils.validate_payment(33.33, 166.67, 200) == []

    def test_zero_and_garbage(self) -> None:
        assert utils.validate_payment(0, 0, 100) == ["Enter a non-zero amount."]
        assert utils.validate_payment(0, "abc", 100) == ["Paid must be numeric."]

    def test_arabic_message(self) -> None:
        assert utils.validate_payment(0, 500, 100, lang="ar") == ["المبلغ يتجاوز السعر الإجمالي."]


class TestOtherValidators:
    def test_required(self) -> None:
        assert utils.validate_required("   ", "Name") == ["Name is required."]
        assert utils.validate_required("Omar", "Name") == []

    def test_expense_inputs(self) -> None:
        errors = utils.validate_expense_inputs("", "0", "travel", "not-a-date")
        assert len(errors) == 4

    def test_grade_range(self) -> None:
        assert utils.validate_grade("") == []
        assert utils.validate_grade("101") == ["Grade must be between 0 and 100."]

    def test_new_password(self) -> None:
        assert utils.validate_new_password("abc", "abc") == ["Password must be at least 6 characters."]
        assert utils.validate_new_password("abcdef", "abcdeg") == ["Passwords do not match."]
        assert utils.validate_new_password("abcdef", "abcdef") == []


def test_previous_month_bounds_crosses_year() -> None:
    assert utils.previous_month_bounds(date(2024, 1, 10)) == (date(2023, 12, 1), date(2023, 12, 31))


def test_choice_map_keeps_same_name_records_apart() -> None:
    a = Student(id="aaaaaa01", name="Omar")
    b = Student(id="bbbbbb02", name="Omar")

    options = utils.choice_map([a, b])

    assert options == {"Omar - aaaaaa": "aaaaaa01", "Omar - bbbbbb": "bbbbbb02"}
