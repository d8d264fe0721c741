"""
Tests for DocumentOrchestrator.

Covers:
- Cash-cut publication: recompute, deterministic path, lock release
- Guarded write-back refusing a receipt that changed state
- Token-scoped lock release
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billing_kernel.domain.values import PaymentMethod, ReceiptStatus
from billing_kernel.exceptions import (
    CashCutNotFoundError,
    DocumentGenerationError,
    DocumentLockHeldError,
    DocumentStateChangedError,
)
from billing_kernel.models import CashCut, CashExpense


def _cut(db, cash_cut_id) -> CashCut:
    with db.session() as session:
        return session.get(CashCut, cash_cut_id)


class TestPublishCashCut:
    def test_publishes_recomputed_totals(self, lifecycle, orchestrator, seed, world, db, store):
        issued = lifecycle.issue(seed.receipt(world))
        with db.session_scope() as session:
            session.add(
                CashExpense(
                    id=uuid4(),
                    cash_cut_id=issued.cash_cut_id,
                    amount=Decimal("150"),
                    description="Papeleria",
                )
            )

        publication = orchestrator.publish_cash_cut(issued.cash_cut_id)

        path = f"cuts/{issued.cash_cut_id}.pdf"
        assert publication.artifact_ref == f"mem://billing-test/{path}"
        assert Decimal(publication.net_cash) == Decimal("850")
        assert Decimal(publication.grand_total) == Decimal("1000")
        assert path in store.objects

        cut = _cut(db, issued.cash_cut_id)
        assert cut.artifact_ref == publication.artifact_ref
        assert cut.generating_document is False
        assert cut.printing is False
        assert cut.document_lock_token is None

    def test_republish_overwrites_same_path(self, lifecycle, orchestrator, seed, world, store):
        issued = lifecycle.issue(seed.receipt(world))

        first = orchestrator.publish_cash_cut(issued.cash_cut_id)
        second = orchestrator.publish_cash_cut(issued.cash_cut_id)

        assert first.artifact_ref == second.artifact_ref
        assert len([p for p in store.objects if p.startswith("cuts/")]) == 1

    def test_unknown_cut(self, orchestrator):
        with pytest.raises(CashCutNotFoundError):
            orchestrator.publish_cash_cut("missing-bucket")

    def test_held_lock_is_a_conflict(self, lifecycle, orchestrator, seed, world, db):
        issued = lifecycle.issue(seed.receipt(world))
        with db.session_scope() as session:
            cut = session.get(CashCut, issued.cash_cut_id)
            cut.generating_document = True
            cut.document_lock_token = "someone-else"

        with pytest.raises(DocumentLockHeldError):
            orchestrator.publish_cash_cut(issued.cash_cut_id)

        assert _cut(db, issued.cash_cut_id).document_lock_token == "someone-else"

    def test_render_failure_releases_lock(
        self, lifecycle, orchestrator, seed, world, db, renderer, captured_logs
    ):
        issued = lifecycle.issue(seed.receipt(world))
        renderer.fail_with = RuntimeError("boom")

        with pytest.raises(DocumentGenerationError):
            orchestrator.publish_cash_cut(issued.cash_cut_id)

        cut = _cut(db, issued.cash_cut_id)
        assert cut.generating_document is False
        assert cut.printing is False
        failures = [r for r in captured_logs() if r["message"] == "publish_cash_cut_failed"]
        assert failures[0]["level"] == "ERROR"

    def test_includes_cancelled_receipts(self, lifecycle, orchestrator, seed, world, db):
        receipt_id = seed.receipt(world, payment_method=PaymentMethod.TRANSFER)
        issued = lifecycle.issue(receipt_id)
        seed.set_receipt(receipt_id, cancellation_requested=True)
        lifecycle.cancel(receipt_id)

        orchestrator.publish_cash_cut(issued.cash_cut_id)

        cut = _cut(db, issued.cash_cut_id)
        assert cut.cancelled_transfer_count == 1
        assert cut.total_transfer == Decimal("0")


class TestGuardedWriteBack:
    def test_write_back_requires_lock_token(self, orchestrator, seed, world):
        receipt_id = seed.receipt(world, status=ReceiptStatus.ISSUED)
        seed.set_receipt(receipt_id, generating_document=True, document_lock_token="mine")

        with pytest.raises(DocumentStateChangedError):
            orchestrator.publish_receipt(
                receipt_id, ReceiptStatus.ISSUED.value, "not-mine", "receipts/x.pdf"
            )

    def test_write_back_requires_expected_status(self, orchestrator, seed, world):
        receipt_id = seed.receipt(world, status=ReceiptStatus.ISSUED)
        seed.set_receipt(receipt_id, generating_document=True, document_lock_token="mine")

        with pytest.raises(DocumentStateChangedError):
            orchestrator.publish_receipt(
                receipt_id, ReceiptStatus.CANCELLED.value, "mine", "receipts/x.pdf"
            )

    def test_missing_receipt_cannot_render(self, orchestrator):
        with pytest.raises(DocumentGenerationError):
            orchestrator.publish_receipt(uuid4(), "issued", "t", "receipts/x.pdf")


class TestLockRelease:
    def test_release_matches_token(self, orchestrator, seed, world):
        receipt_id = seed.receipt(world, status=ReceiptStatus.ISSUED)
        seed.set_receipt(receipt_id, generating_document=True, document_lock_token="mine")

        assert orchestrator.release_receipt_lock(receipt_id, "other") is False
        assert seed.get_receipt(receipt_id).generating_document is True

        assert orchestrator.release_receipt_lock(receipt_id, "mine") is True
        receipt = seed.get_receipt(receipt_id)
        assert receipt.generating_document is False
        assert receipt.document_lock_token is None

    def test_release_is_safe_to_repeat(self, orchestrator, seed, world):
        receipt_id = seed.receipt(world)

        assert orchestrator.release_receipt_lock(receipt_id, "mine") is False

    def test_receipt_target_fallback(self, orchestrator):
        receipt_id = uuid4()

        assert orchestrator.receipt_target(receipt_id, None, strict=True) == (
            f"receipts/{receipt_id}.pdf"
        )
        assert orchestrator.receipt_target(
            receipt_id, "mem://billing-test/receipts/custom.pdf", strict=True
        ) == "receipts/custom.pdf"


def test_bucket_date_comes_from_operating_date(lifecycle, seed, world, clock):
    clock.set_time(clock.now().replace(year=2030))

    result = lifecycle.issue(seed.receipt(world, operating_date=date(2024, 3, 5)))

    assert result.cash_cut_id.endswith("-20240305")
