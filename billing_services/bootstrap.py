"""
billing_services.bootstrap -- Production wiring from a validated config.

``build_billing_services`` is the single entrypoint that turns a
``BillingConfig`` into ready-to-use services sharing one ``Database``
handle.  Tests and callers with their own adapters pass ``renderer``,
``store`` or ``clock`` explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass

from billing_config.schema import BillingConfig
from billing_kernel.db.engine import Database
from billing_kernel.domain.clock import Clock, SystemClock
from billing_services.artifact_access import ArtifactAccessService
from billing_services.artifact_store import ArtifactStore, FilesystemArtifactStore
from billing_services.document_orchestrator import DocumentOrchestrator, PublicationSettings
from billing_services.monthly_charges import MonthlyChargeService
from billing_services.receipt_lifecycle import ReceiptLifecycleService
from billing_services.rendering import DocumentRenderer, ReportLabRenderer
from billing_services.student_products import StudentProductService


@dataclass(frozen=True)
class BillingServices:
    db: Database
    lifecycle: ReceiptLifecycleService
    documents: DocumentOrchestrator
    monthly_charges: MonthlyChargeService
    student_products: StudentProductService
    artifact_access: ArtifactAccessService


def build_database(config: BillingConfig) -> Database:
    db_config = config.database
    return Database.from_url(
        db_config.url,
        echo=db_config.echo,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_recycle=db_config.pool_recycle,
    )


def build_billing_services(
    config: BillingConfig,
    *,
    db: Database | None = None,
    renderer: DocumentRenderer | None = None,
    store: ArtifactStore | None = None,
    clock: Clock | None = None,
) -> BillingServices:
    clock = clock or SystemClock()
    db = db or build_database(config)
    store = store or FilesystemArtifactStore(
        root=config.storage.root,
        bucket=config.storage.bucket,
        scheme=config.storage.scheme,
        clock=clock,
    )
    settings = PublicationSettings.from_config(config)
    documents = DocumentOrchestrator(db, renderer or ReportLabRenderer(), store, settings)
    return BillingServices(
        db=db,
        lifecycle=ReceiptLifecycleService(db, documents, clock=clock),
        documents=documents,
        monthly_charges=MonthlyChargeService(db, clock=clock, timezone=config.timezone),
        student_products=StudentProductService(db),
        artifact_access=ArtifactAccessService(
            db,
            store,
            reference_prefix=settings.reference_prefix,
            extension=settings.extension,
            ttl_seconds=config.storage.access_url_ttl_seconds,
        ),
    )
