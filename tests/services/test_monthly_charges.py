"""Tests for monthly charge generation and student product synchronization."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from billing_kernel.domain.values import ChargeStatus, RecordStatus, Recurrence
from billing_kernel.exceptions import InvalidBillingPeriodError, StudentNotFoundError
from billing_kernel.models import MonthlyCharge, StudentProduct
from billing_services.monthly_charges import MonthlyChargeService
from billing_services.student_products import StudentProductService


def _charges(db, month=3, year=2024) -> list[MonthlyCharge]:
    with db.session() as session:
        return list(
            session.execute(
                select(MonthlyCharge).where(
                    MonthlyCharge.month == month, MonthlyCharge.year == year
                )
            ).scalars()
        )


def _enrolled(db, student_id) -> set:
    with db.session() as session:
        return set(
            session.execute(
                select(StudentProduct.product_id).where(
                    StudentProduct.student_id == student_id
                )
            ).scalars()
        )


@pytest.fixture
def charges(db, clock):
    return MonthlyChargeService(db, clock=clock, timezone="America/Mexico_City")


class TestMonthlyChargeGeneration:
    def test_creates_one_charge_per_enrollment(self, charges, seed, world, db):
        seed.enroll(world.student_id, world.monthly_product_id, Decimal("0.15"))

        run = charges.generate(3, 2024)

        assert (run.processed, run.created, run.reactivated) == (1, 1, 0)
        [charge] = _charges(db)
        assert charge.status == ChargeStatus.ACTIVE.value
        assert charge.scholarship_pct == Decimal("0.15")

    def test_run_is_logged_with_counts(self, charges, seed, world, captured_logs):
        seed.enroll(world.student_id, world.monthly_product_id)

        charges.generate(3, 2024)

        [entry] = [r for r in captured_logs() if r["message"] == "monthly_charges_generated"]
        assert entry["charges_created"] == 1
        assert entry["processed"] == 1
        assert entry["level"] == "INFO"

    def test_inactive_students_skipped(self, charges, seed, world, db):
        inactive = seed.student(world.campus_id, status=RecordStatus.INACTIVE)
        seed.enroll(inactive, world.monthly_product_id)

        assert charges.generate(3, 2024).processed == 0
        assert _charges(db) == []

    def test_rerun_is_idempotent(self, charges, seed, world, db):
        seed.enroll(world.student_id, world.monthly_product_id)

        charges.generate(3, 2024)
        run = charges.generate(3, 2024)

        assert (run.created, run.reactivated) == (0, 0)
        assert len(_charges(db)) == 1

    def test_cancelled_charge_reactivated(self, charges, seed, world, db):
        seed.enroll(world.student_id, world.monthly_product_id)
        with db.session_scope() as session:
            session.add(
                MonthlyCharge(
                    id=uuid4(),
                    student_id=world.student_id,
                    product_id=world.monthly_product_id,
                    month=3,
                    year=2024,
                    status=ChargeStatus.CANCELLED.value,
                    cancellation_reason="baja temporal",
                )
            )

        run = charges.generate(3, 2024)

        assert run.reactivated == 1
        [charge] = _charges(db)
        assert charge.status == ChargeStatus.ACTIVE.value
        assert charge.cancellation_reason is None

    def test_defaults_to_current_month_in_timezone(self, charges, clock, seed, world, db):
        # 03:00 UTC on April 1st is still March 31st in Mexico City
        clock.set_time(datetime(2024, 4, 1, 3, 0, tzinfo=timezone.utc))
        seed.enroll(world.student_id, world.monthly_product_id)

        run = charges.generate()

        assert (run.month, run.year) == (3, 2024)

    @pytest.mark.parametrize("month,year", [(0, 2024), (13, 2024), (5, 1999), (5, 2101)])
    def test_invalid_period_rejected(self, charges, month, year):
        with pytest.raises(InvalidBillingPeriodError):
            charges.generate(month, year)


class TestStudentProductSync:
    def test_enrolls_defaults_for_campus_and_level(self, db, seed, world):
        general = seed.product(world.campus_id, name="Colegiatura", is_default=True)
        primaria = seed.product(
            world.campus_id, name="Talleres", is_default=True, applies_to_level="primaria"
        )
        seed.product(
            world.campus_id, name="Laboratorio", is_default=True, applies_to_level="secundaria"
        )
        seed.product(
            world.campus_id,
            name="Inscripcion",
            is_default=True,
            recurrence=Recurrence.ONE_TIME,
        )
        seed.product(
            world.campus_id, name="Baja", is_default=True, status=RecordStatus.INACTIVE
        )

        result = StudentProductService(db).synchronize(world.student_id)

        assert result.added == 2
        assert _enrolled(db, world.student_id) == {general, primaria}

    def test_removes_other_campus_and_level(self, db, seed, world):
        other_campus = seed.campus("Campus Sur")
        foreign = seed.product(other_campus, is_default=True)
        wrong_level = seed.product(world.campus_id, applies_to_level="secundaria")
        keep = seed.product(world.campus_id, name="Transporte")
        for product_id in (foreign, wrong_level, keep):
            seed.enroll(world.student_id, product_id)

        result = StudentProductService(db).synchronize(world.student_id)

        assert result.removed == 2
        assert _enrolled(db, world.student_id) == {keep}

    def test_student_without_level_loses_level_products(self, db, seed, world):
        student = seed.student(world.campus_id, level=None)
        leveled = seed.product(world.campus_id, applies_to_level="primaria")
        seed.enroll(student, leveled)

        StudentProductService(db).synchronize(student)

        assert _enrolled(db, student) == set()

    def test_existing_enrollment_keeps_scholarship(self, db, seed, world):
        default = seed.product(world.campus_id, is_default=True)
        seed.enroll(world.student_id, default, Decimal("0.30"))

        result = StudentProductService(db).synchronize(world.student_id)

        assert result.added == 0
        with db.session() as session:
            pct = session.execute(
                select(StudentProduct.scholarship_pct).where(
                    StudentProduct.student_id == world.student_id,
                    StudentProduct.product_id == default,
                )
            ).scalar_one()
        assert pct == Decimal("0.30")

    def test_unknown_student(self, db):
        with pytest.raises(StudentNotFoundError):
            StudentProductService(db).synchronize(uuid4())
