"""Tests for the Database handle and the cash-cut bucket service."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.exceptions import CashCutNotFoundError
from billing_kernel.models import Campus, CashCut
from billing_services.cash_cut_service import CashCutService, cash_cut_bucket_id


class TestDatabase:
    def test_ping(self, db):
        assert db.ping() is True

    def test_session_scope_rolls_back(self, db):
        campus_id = uuid4()

        with pytest.raises(RuntimeError):
            with db.session_scope() as session:
                session.add(Campus(id=campus_id, name="Temporal"))
                session.flush()
                raise RuntimeError("abort")

        with db.session() as session:
            assert session.get(Campus, campus_id) is None


class TestCashCutService:
    def test_bucket_id_format(self):
        cashier, campus = uuid4(), uuid4()

        assert cash_cut_bucket_id(cashier, campus, date(2024, 3, 5)) == (
            f"{cashier}-{campus}-20240305"
        )

    def test_ensure_is_idempotent(self, db, world):
        with db.session_scope() as session:
            first = CashCutService(session).ensure(world.cashier_id, world.campus_id, date(2024, 3, 5))
            first_id = first.id
        with db.session_scope() as session:
            second = CashCutService(session).ensure(world.cashier_id, world.campus_id, date(2024, 3, 5))

            assert second.id == first_id
            assert second.grand_total == Decimal("0")

    def test_recompute_unknown_bucket(self, db):
        with db.session_scope() as session:
            with pytest.raises(CashCutNotFoundError):
                CashCutService(session).recompute("missing")

    def test_recompute_twice_keeps_persisted_totals(self, db, lifecycle, seed, world):
        first = lifecycle.issue(seed.receipt(world))
        other_student = seed.student(world.campus_id)
        second = lifecycle.issue(seed.receipt(world, student_id=other_student))
        assert first.cash_cut_id == second.cash_cut_id

        with db.session_scope() as session:
            once = CashCutService(session).recompute(first.cash_cut_id)
        with db.session_scope() as session:
            twice = CashCutService(session).recompute(first.cash_cut_id)

        assert once == twice
        with db.session() as session:
            cut = session.get(CashCut, first.cash_cut_id)
            assert cut.issued_cash_count == 2
            assert cut.total_cash == Decimal("2000")
            assert cut.grand_total == Decimal("2000")
