# Overview: Atomic per-business-day order number allocation.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import Branch, OrderSequence
from ..models.orders import ORDER_SOURCES
from ..time_utils import business_date, utcnow


def format_order_number(source: str, day: date, sequence: int) -> str:
    return f"{source}-{day:%Y%m%d}-{sequence:04d}"


def _bump(day: date) -> int | None:
    stmt = (
        update(OrderSequence)
        .where(OrderSequence.business_date == day)
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    if not db.session.execute(stmt).rowcount:
        return None
    current = (
        db.session.query(OrderSequence.next_number)
        .filter_by(business_date=day)
        .scalar()
    )
    return current - 1


def next_sequence(day: date) -> int:
    """
    Allocate the next 1-indexed sequence for a business day.

    Runs inside the caller's transaction; the counter row is locked by the
    UPDATE until that transaction ends, so two creations never share a value.
    """
    allocated = _bump(day)
    if allocated is not None:
        return allocated

    try:
        with db.session.begin_nested():
            db.session.add(OrderSequence(business_date=day, next_number=2))
        return 1
    except IntegrityError:
        # Another transaction created the row first
        allocated = _bump(day)
        if allocated is None:
            raise
        return allocated


def next_order_number(branch: Branch, source: str, at: datetime | None = None) -> str:
    """
    "{SOURCE}-{YYYYMMDD}-{NNNN}", dated in the branch's local timezone.

    The number carries no branch, so the counter is keyed by the date alone
    and shared by every branch and both prefixes. That keeps order numbers
    globally unique, which public tracking relies on.
    """
    if source not in ORDER_SOURCES:
        raise ValidationError(f"Invalid order_source '{source}'")
    day = business_date(at or utcnow(), branch.timezone)
    return format_order_number(source, day, next_sequence(day))
