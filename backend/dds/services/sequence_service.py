# Overview: Service-layer operations for distribution numbering.

"""
Distribution numbers look like YY/DEPARTMENT_CODE/TYPE_CODE/SEQUENCE,
e.g. "25/DEPTA/NRM/0001".

SEQUENCE is scoped to (year, origin department, distribution type) and is
allocated from a DistributionSequence counter row:

1. insert the scope row if it does not exist (dialect "do nothing" upsert)
2. UPDATE last_number = last_number + 1 (atomic, takes the row/db lock)
3. read last_number back inside the same transaction

Lock contention surfaces as SequenceContention and is retried here; the
counter never goes down, so numbers are never reused.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, OperationalError

from ..extensions import db
from ..models import Department, DistributionSequence, DistributionType
from dds.time_utils import utcnow
from .concurrency import run_with_retry
from .errors import ConcurrencyConflict, NotFoundError, SequenceContention, ValidationError


SCOPE_COLUMNS = ["year", "department_id", "type_id"]


def format_distribution_number(
    *,
    year: int,
    department_code: str,
    type_code: str,
    sequence: int,
    pad: int = 4,
) -> str:
    return f"{year % 100:02d}/{department_code}/{type_code}/{sequence:0{pad}d}"


def _ensure_scope_row(year: int, department_id: int, type_id: int) -> None:
    values = {"year": year, "department_id": department_id, "type_id": type_id, "last_number": 0}
    dialect = db.session.get_bind().dialect.name

    if dialect == "sqlite":
        stmt = sqlite_insert(DistributionSequence).values(**values).on_conflict_do_nothing(
            index_elements=SCOPE_COLUMNS
        )
    elif dialect == "postgresql":
        stmt = pg_insert(DistributionSequence).values(**values).on_conflict_do_nothing(
            index_elements=SCOPE_COLUMNS
        )
    elif dialect in {"mysql", "mariadb"}:
        stmt = mysql_insert(DistributionSequence).values(**values)
        stmt = stmt.on_duplicate_key_update(last_number=DistributionSequence.__table__.c.last_number)
    else:
        exists = (
            db.session.query(DistributionSequence.id)
            .filter_by(year=year, department_id=department_id, type_id=type_id)
            .first()
        )
        if exists:
            return
        db.session.add(DistributionSequence(**values))
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise SequenceContention("Sequence scope created concurrently") from exc
        return

    db.session.execute(stmt)


def allocate_sequence(*, year: int, department_id: int, type_id: int) -> int:
    """
    Atomically allocate the next sequence number for a scope.

    Runs inside the caller's transaction: the allocation is committed
    together with the distribution that uses it.

    Lock contention is retried DISTRIBUTION_SEQUENCE_ATTEMPTS times and never
    reaches the caller as SequenceContention. Only when every attempt is
    contended (sustained lock starvation) does the caller see a retryable
    ConcurrencyConflict; no number is consumed in that case.
    """
    def _op() -> int:
        try:
            _ensure_scope_row(year, department_id, type_id)
            result = db.session.execute(
                update(DistributionSequence)
                .where(
                    DistributionSequence.year == year,
                    DistributionSequence.department_id == department_id,
                    DistributionSequence.type_id == type_id,
                )
                .values(last_number=DistributionSequence.last_number + 1)
                .execution_options(synchronize_session=False)
            )
            if not result.rowcount:
                raise SequenceContention(
                    f"Sequence row for {year}/{department_id}/{type_id} not found after upsert"
                )
            return (
                db.session.query(DistributionSequence.last_number)
                .filter_by(year=year, department_id=department_id, type_id=type_id)
                .scalar()
            )
        except OperationalError as exc:
            current_app.logger.warning(
                "Sequence contention on scope year=%s department=%s type=%s",
                year, department_id, type_id,
            )
            raise SequenceContention("Sequence counter is locked by another allocation") from exc

    try:
        return run_with_retry(
            _op,
            attempts=current_app.config.get("DISTRIBUTION_SEQUENCE_ATTEMPTS", 5),
            backoff_base=0.05,
            retry_on=(SequenceContention,),
        )
    except SequenceContention as exc:
        raise ConcurrencyConflict(
            "Could not allocate a distribution number, please retry"
        ) from exc


def next_distribution_number(
    *,
    department_id: int,
    type_id: int,
    year: int | None = None,
) -> tuple[str, int, int]:
    """
    Allocate the next distribution number for (year, department, type).

    Returns:
        (distribution_number, year, sequence)
    """
    department = db.session.get(Department, department_id)
    if not department:
        raise NotFoundError(f"Department {department_id} not found")
    dist_type = db.session.get(DistributionType, type_id)
    if not dist_type:
        raise ValidationError(f"Distribution type {type_id} not found")

    # Read codes before allocating: a retried allocation expires loaded objects
    department_code = department.location_code
    type_code = dist_type.code
    year = year or utcnow().year

    sequence = allocate_sequence(year=year, department_id=department_id, type_id=type_id)
    number = format_distribution_number(
        year=year,
        department_code=department_code,
        type_code=type_code,
        sequence=sequence,
        pad=current_app.config.get("DISTRIBUTION_SEQUENCE_PAD", 4),
    )
    return number, year, sequence


def peek_next_number(*, department_id: int, type_id: int, year: int | None = None) -> str:
    """Preview the number the next allocation would produce. Allocates nothing."""
    department = db.session.get(Department, department_id)
    if not department:
        raise NotFoundError(f"Department {department_id} not found")
    dist_type = db.session.get(DistributionType, type_id)
    if not dist_type:
        raise ValidationError(f"Distribution type {type_id} not found")

    year = year or utcnow().year
    last = (
        db.session.query(DistributionSequence.last_number)
        .filter_by(year=year, department_id=department_id, type_id=type_id)
        .scalar()
    ) or 0
    return format_distribution_number(
        year=year,
        department_code=department.location_code,
        type_code=dist_type.code,
        sequence=last + 1,
        pad=current_app.config.get("DISTRIBUTION_SEQUENCE_PAD", 4),
    )
