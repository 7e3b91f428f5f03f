from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from engine.intervals import DateInterval
from engine.metrics import (
    annual_equivalent,
    compute_derived_metrics,
    monthly_equivalent,
    months_remaining,
    months_to_expiration,
    notice_window_open,
    resolve_expiration_date,
)


def _iv(literal):
    return DateInterval.parse(literal)


def test_rent_equivalents_month_and_year():
    assert annual_equivalent(6000, "MONTH") == Decimal("72000.00")
    assert monthly_equivalent(72000, "YEAR") == Decimal("6000.00")
    assert monthly_equivalent(Decimal("6000"), "MONTH") == Decimal("6000.00")
    assert annual_equivalent(Decimal("72000"), "YEAR") == Decimal("72000.00")


def test_rent_equivalents_round_half_up_to_cents():
    assert monthly_equivalent(Decimal("100000.06"), "YEAR") == Decimal("8333.34")
    assert monthly_equivalent(Decimal("0.30"), "YEAR") == Decimal("0.03")


def test_rent_equivalent_basis_is_case_insensitive():
    assert annual_equivalent(10, "month") == Decimal("120.00")


def test_rent_equivalent_unknown_basis():
    with pytest.raises(ValueError):
        monthly_equivalent(10, "WEEK")


def test_notice_window_open_half_open():
    window = _iv("[2028-01-01,2028-07-01)")
    assert notice_window_open(window, date(2028, 1, 1))
    assert notice_window_open(window, date(2028, 6, 30))
    assert not notice_window_open(window, date(2028, 7, 1))
    assert not notice_window_open(None, date(2028, 3, 1))


def test_months_remaining_free_rent():
    applies = _iv("[2024-01-01,2024-04-01)")
    # 46 days / 30
    assert months_remaining(applies, date(2024, 2, 15), "FREE_RENT") == 1.5
    assert months_remaining(applies, date(2024, 5, 1), "FREE_RENT") is None
    assert months_remaining(applies, date(2024, 4, 1), "FREE_RENT") is None
    assert months_remaining(applies, date(2024, 2, 15), "TI_ALLOWANCE") is None
    assert months_remaining(None, date(2024, 2, 15), "FREE_RENT") is None


def test_months_remaining_before_start_counts_from_now():
    applies = _iv("[2024-01-01,2024-04-01)")
    assert months_remaining(applies, date(2023, 12, 2), "FREE_RENT") == round(121 / 30, 1)


def _cd(kind, day):
    return SimpleNamespace(kind=kind, date_value=day)


def test_expiration_prefers_critical_date():
    current = _iv("[2024-01-01,2029-01-01)")
    cds = [_cd("NOTICE", date(2028, 1, 1)), _cd("EXPIRATION", date(2028, 12, 15))]
    assert resolve_expiration_date(cds, current) == date(2028, 12, 15)


def test_expiration_latest_of_several_wins():
    cds = [_cd("EXPIRATION", date(2028, 12, 15)), _cd("EXPIRATION", date(2030, 1, 31)), _cd("EXPIRATION", date(2027, 1, 1))]
    assert resolve_expiration_date(cds, None) == date(2030, 1, 31)


def test_expiration_falls_back_to_last_covered_day():
    assert resolve_expiration_date([], _iv("[2024-01-01,2029-01-01)")) == date(2028, 12, 31)
    assert resolve_expiration_date([_cd("NOTICE", date(2028, 1, 1))], None) is None


def test_months_to_expiration_may_be_negative():
    assert months_to_expiration(date(2024, 3, 1), date(2024, 1, 1)) == 2.0
    assert months_to_expiration(date(2024, 1, 1), date(2024, 3, 1)) == -2.0
    assert months_to_expiration(None, date(2024, 1, 1)) is None


def _rent(amount, basis):
    return SimpleNamespace(record_kind="rent_schedule", amount=amount, basis=basis)


def test_compute_rent_schedule_metrics():
    assert compute_derived_metrics(_rent(Decimal("6000"), "MONTH"), date(2024, 1, 1)) == {
        "monthly_equiv": Decimal("6000.00"),
        "annualized_equiv": Decimal("72000.00"),
    }
    assert compute_derived_metrics(_rent(Decimal("72000"), "YEAR"), date(2024, 1, 1))["monthly_equiv"] == Decimal(
        "6000.00"
    )


def test_compute_concession_metrics():
    c = SimpleNamespace(record_kind="concession", kind="FREE_RENT", applies_interval=_iv("[2024-01-01,2024-04-01)"))
    assert compute_derived_metrics(c, date(2024, 2, 15)) == {"months_remaining": 1.5}
    assert compute_derived_metrics(c, date(2024, 5, 1)) == {"months_remaining": None}


def test_compute_option_metrics():
    o = SimpleNamespace(record_kind="option", window_interval=_iv("[2028-01-01,2028-07-01)"))
    assert compute_derived_metrics(o, date(2028, 2, 1)) == {"notice_window_open": True}


def test_compute_lease_metrics():
    version = SimpleNamespace(effective_interval=_iv("[2024-01-01,2029-01-01)"))
    lease = SimpleNamespace(record_kind="lease", current_version=version, critical_dates=[])
    out = compute_derived_metrics(lease, date(2028, 12, 1))
    assert out == {"expiration_date": date(2028, 12, 31), "months_to_expiration": 1.0}

    empty = SimpleNamespace(record_kind="lease", current_version=None, critical_dates=[])
    assert compute_derived_metrics(empty, date(2028, 12, 1)) == {"expiration_date": None, "months_to_expiration": None}


def test_compute_superseded_version_uses_critical_dates_only():
    lease = SimpleNamespace(critical_dates=[])
    old = SimpleNamespace(
        record_kind="lease_version", effective_interval=_iv("[2024-01-01,2026-01-01)"), is_current=False, lease=lease
    )
    out = compute_derived_metrics(old, date(2025, 1, 1))
    assert out["in_effect"] is True
    assert out["expiration_date"] is None


def test_compute_is_pure_and_repeatable():
    c = SimpleNamespace(record_kind="concession", kind="FREE_RENT", applies_interval=_iv("[2024-01-01,2024-04-01)"))
    before = dict(vars(c))
    first = compute_derived_metrics(c, date(2024, 2, 15))
    second = compute_derived_metrics(c, date(2024, 2, 15))
    assert first == second
    assert vars(c) == before


def test_compute_unknown_record():
    with pytest.raises(ValueError):
        compute_derived_metrics(SimpleNamespace(), date(2024, 1, 1))
