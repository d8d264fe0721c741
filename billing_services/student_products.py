"""
billing_services.student_products -- Enrollment synchronization.

Responsibility:
    Align a student's monthly product enrollments with their current campus
    and academic level.

Invariants enforced:
    - The student row is locked for the duration, so concurrent syncs of
      the same student serialize.
    - Enrollments in products of another campus, or in products restricted
      to a level other than the student's, are removed.
    - The campus's active default Monthly products that apply to every
      level are enrolled; so are those for the student's level, if any.
      Existing enrollments (and their scholarships) are left untouched.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, or_, select

from billing_kernel.db.engine import Database
from billing_kernel.domain.values import RecordStatus, Recurrence
from billing_kernel.exceptions import BillingKernelError, StudentNotFoundError
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.reference import Product, Student, StudentProduct
from billing_services.outcomes import log_failure

logger = get_logger("services.student_products")


@dataclass(frozen=True)
class ProductSyncResult:
    student_id: str
    removed: int
    added: int
    duration_ms: float

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "student_id": self.student_id,
            "removed": self.removed,
            "added": self.added,
            "duration_ms": self.duration_ms,
        }


class StudentProductService:
    def __init__(self, db: Database):
        self._db = db

    def synchronize(self, student_id: UUID) -> ProductSyncResult:
        start = time.monotonic()
        with LogContext.bind(operation="sync_student_products"):
            try:
                with self._db.session_scope() as session:
                    student = session.execute(
                        select(Student).where(Student.id == student_id).with_for_update()
                    ).scalar_one_or_none()
                    if student is None:
                        raise StudentNotFoundError(str(student_id))

                    campus_id = student.campus_id
                    level = student.level

                    invalid = select(Product.id).where(
                        or_(
                            Product.campus_id != campus_id,
                            Product.applies_to_level.is_not(None)
                            if level is None
                            else (
                                Product.applies_to_level.is_not(None)
                                & (Product.applies_to_level != level)
                            ),
                        )
                    )
                    removed = session.execute(
                        delete(StudentProduct)
                        .where(
                            StudentProduct.student_id == student_id,
                            StudentProduct.product_id.in_(invalid),
                        )
                        .execution_options(synchronize_session=False)
                    ).rowcount

                    level_filter = Product.applies_to_level.is_(None)
                    if level is not None:
                        level_filter = or_(level_filter, Product.applies_to_level == level)
                    defaults = session.execute(
                        select(Product.id).where(
                            Product.campus_id == campus_id,
                            Product.is_default.is_(True),
                            Product.status == RecordStatus.ACTIVE.value,
                            Product.recurrence == Recurrence.MONTHLY.value,
                            level_filter,
                        )
                    ).scalars().all()

                    enrolled = set(
                        session.execute(
                            select(StudentProduct.product_id).where(
                                StudentProduct.student_id == student_id
                            )
                        ).scalars()
                    )
                    added = 0
                    for product_id in defaults:
                        if product_id in enrolled:
                            continue
                        session.add(StudentProduct(student_id=student_id, product_id=product_id))
                        added += 1
                    session.flush()
            except BillingKernelError as exc:
                log_failure(logger, "sync_student_products", exc)
                raise

            result = ProductSyncResult(
                student_id=str(student_id),
                removed=removed,
                added=added,
                duration_ms=round((time.monotonic() - start) * 1000, 2),
            )
            logger.info(
                "student_products_synchronized",
                extra={
                    "student_id": str(student_id),
                    "removed": removed,
                    "added": added,
                    "level": level,
                },
            )
            return result
