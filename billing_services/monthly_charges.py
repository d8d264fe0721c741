"""
billing_services.monthly_charges -- Monthly charge generation.

Responsibility:
    For one billing month, make sure every active student has an Active
    MonthlyCharge for each monthly product they are enrolled in.

Invariants enforced:
    - One charge per (student, product, month, year); an existing row is
      reactivated (status Active, cancellation reason cleared) rather than
      duplicated.
    - The enrollment's scholarship percentage is copied onto the charge.
    - Runs in a single transaction; a failure leaves no partial month.

Failure modes:
    - InvalidBillingPeriodError for month outside 1-12 or year outside
      2000-2100.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_kernel.db.engine import Database
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.values import ChargeStatus, RecordStatus
from billing_kernel.exceptions import BillingKernelError, InvalidBillingPeriodError
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.monthly_charge import MonthlyCharge
from billing_kernel.models.reference import Student, StudentProduct
from billing_services.outcomes import log_failure

logger = get_logger("services.monthly_charges")

MIN_YEAR = 2000
MAX_YEAR = 2100


@dataclass(frozen=True)
class MonthlyChargeRun:
    month: int
    year: int
    processed: int
    created: int
    reactivated: int
    duration_ms: float

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "month": self.month,
            "year": self.year,
            "processed": self.processed,
            "created": self.created,
            "reactivated": self.reactivated,
            "duration_ms": self.duration_ms,
        }


def validate_period(month: int, year: int) -> None:
    if not 1 <= month <= 12:
        raise InvalidBillingPeriodError(month, year, "month must be between 1 and 12")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidBillingPeriodError(
            month, year, f"year must be between {MIN_YEAR} and {MAX_YEAR}"
        )


class MonthlyChargeService:
    def __init__(self, db: Database, clock: Clock | None = None, timezone: str | None = None):
        self._db = db
        self._clock = clock or SystemClock()
        self._timezone = timezone

    def default_period(self) -> tuple[int, int]:
        """Current (month, year) in the configured timezone."""
        today = self._clock.today(self._timezone)
        return today.month, today.year

    def generate(self, month: int | None = None, year: int | None = None) -> MonthlyChargeRun:
        """
        Upsert the month's charges.

        ``month`` and ``year`` default together to the current month when
        either is omitted.
        """
        start = time.monotonic()
        if month is None or year is None:
            month, year = self.default_period()

        with LogContext.bind(operation="generate_monthly_charges"):
            try:
                validate_period(month, year)
                with self._db.session_scope() as session:
                    created, reactivated, processed = self._upsert(session, month, year)
            except BillingKernelError as exc:
                log_failure(logger, "generate_monthly_charges", exc)
                raise

            run = MonthlyChargeRun(
                month=month,
                year=year,
                processed=processed,
                created=created,
                reactivated=reactivated,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            logger.info(
                "monthly_charges_generated",
                extra={
                    "month": month,
                    "year": year,
                    "processed": processed,
                    "charges_created": created,
                    "reactivated": reactivated,
                    "duration_ms": run.duration_ms,
                },
            )
            return run

    def _upsert(self, session: Session, month: int, year: int) -> tuple[int, int, int]:
        enrollments = session.execute(
            select(StudentProduct.student_id, StudentProduct.product_id, StudentProduct.scholarship_pct)
            .join(Student, Student.id == StudentProduct.student_id)
            .where(Student.status == RecordStatus.ACTIVE.value)
            .order_by(StudentProduct.student_id, StudentProduct.product_id)
        ).all()

        existing: dict[tuple[UUID, UUID], MonthlyCharge] = {
            (charge.student_id, charge.product_id): charge
            for charge in session.execute(
                select(MonthlyCharge)
                .where(MonthlyCharge.month == month, MonthlyCharge.year == year)
                .with_for_update()
            ).scalars()
        }

        created = 0
        reactivated = 0
        for student_id, product_id, scholarship_pct in enrollments:
            charge = existing.get((student_id, product_id))
            if charge is None:
                charge = self._insert(session, student_id, product_id, month, year, scholarship_pct)
                if charge is not None:
                    created += 1
                    continue
                charge = session.execute(
                    select(MonthlyCharge)
                    .where(
                        MonthlyCharge.student_id == student_id,
                        MonthlyCharge.product_id == product_id,
                        MonthlyCharge.month == month,
                        MonthlyCharge.year == year,
                    )
                    .with_for_update()
                ).scalar_one()
            if charge.status != ChargeStatus.ACTIVE.value:
                reactivated += 1
            charge.status = ChargeStatus.ACTIVE.value
            charge.cancellation_reason = None
            charge.scholarship_pct = scholarship_pct

        session.flush()
        return created, reactivated, len(enrollments)

    def _insert(self, session, student_id, product_id, month, year, scholarship_pct):
        """Insert under a savepoint; None when a concurrent run inserted first."""
        savepoint = session.begin_nested()
        try:
            charge = MonthlyCharge(
                student_id=student_id,
                product_id=product_id,
                month=month,
                year=year,
                scholarship_pct=scholarship_pct,
                status=ChargeStatus.ACTIVE.value,
            )
            session.add(charge)
            session.flush()
            savepoint.commit()
            return charge
        except IntegrityError:
            logger.debug(
                "monthly_charge_insert_race_retry",
                extra={"student_id": str(student_id), "product_id": str(product_id)},
            )
            savepoint.rollback()
            return None
