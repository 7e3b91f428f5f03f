"""
Derived lease metrics, evaluated at read time and never persisted.

All functions are pure and take "now" explicitly so results are reproducible.
Month counts use a 30-day month approximation.
"""
from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from engine.intervals import DateInterval

DAYS_PER_MONTH = 30
_CENTS = Decimal("0.01")


def _money(value: Decimal | float | int) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _basis(basis: Any) -> str:
    return str(getattr(basis, "value", basis)).upper()


def monthly_equivalent(amount: Decimal | float | int, basis: Any) -> Decimal:
    b = _basis(basis)
    if b == "MONTH":
        return _money(amount)
    if b == "YEAR":
        return _money(Decimal(str(amount)) / 12)
    raise ValueError(f"Unsupported rent basis: {basis}")


def annual_equivalent(amount: Decimal | float | int, basis: Any) -> Decimal:
    b = _basis(basis)
    if b == "MONTH":
        return _money(Decimal(str(amount)) * 12)
    if b == "YEAR":
        return _money(amount)
    raise ValueError(f"Unsupported rent basis: {basis}")


def notice_window_open(window: Optional[DateInterval], now: date) -> bool:
    return window is not None and window.contains(now)


def months_remaining(applies: Optional[DateInterval], now: date, kind: Any) -> Optional[float]:
    """Remaining free-rent months; None unless a FREE_RENT interval ends after now."""
    if applies is None or _basis(kind) != "FREE_RENT":
        return None
    if applies.end <= now:
        return None
    return round((applies.end - now).days / DAYS_PER_MONTH, 1)


def resolve_expiration_date(
    critical_dates: Iterable[Any],
    current_interval: Optional[DateInterval],
) -> Optional[date]:
    """
    EXPIRATION critical date wins over the current version's interval; when several
    EXPIRATION rows exist the latest date is used. The fallback is the last day the
    current version covers. None means no expiration is known.
    """
    expirations = [
        cd.date_value for cd in critical_dates if _basis(cd.kind) == "EXPIRATION" and cd.date_value
    ]
    if expirations:
        return max(expirations)
    if current_interval is not None:
        return current_interval.last_day
    return None


def months_to_expiration(expiration: Optional[date], now: date) -> Optional[float]:
    """Negative for leases that already expired; callers filter as needed."""
    if expiration is None:
        return None
    return round((expiration - now).days / DAYS_PER_MONTH, 1)


def compute_derived_metrics(record: Any, now: date) -> dict[str, Any]:
    """
    Computed fields for a stored row, keyed by its record_kind. Read-only:
    the record is never modified.
    """
    kind = getattr(record, "record_kind", None)
    if kind == "rent_schedule":
        return {
            "monthly_equiv": monthly_equivalent(record.amount, record.basis),
            "annualized_equiv": annual_equivalent(record.amount, record.basis),
        }
    if kind == "option":
        return {"notice_window_open": notice_window_open(record.window_interval, now)}
    if kind == "concession":
        return {"months_remaining": months_remaining(record.applies_interval, now, record.kind)}
    if kind == "lease_version":
        interval = record.effective_interval
        expiration = resolve_expiration_date(
            record.lease.critical_dates if record.lease is not None else [],
            interval if record.is_current else None,
        )
        return {
            "in_effect": interval.contains(now),
            "expiration_date": expiration,
            "months_to_expiration": months_to_expiration(expiration, now),
        }
    if kind == "lease":
        current = record.current_version
        expiration = resolve_expiration_date(
            record.critical_dates,
            current.effective_interval if current is not None else None,
        )
        return {
            "expiration_date": expiration,
            "months_to_expiration": months_to_expiration(expiration, now),
        }
    raise ValueError(f"No derived metrics for {type(record).__name__}")
