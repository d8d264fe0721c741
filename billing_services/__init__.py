"""
billing_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure engines (billing_engines/) and the
    kernel's persistence layer.  This is the only layer that holds database
    sessions, talks to the artifact store, or reads the wall clock.

Architecture position:
    Services.

        billing_services/ -> billing_engines/  (allowed)
        billing_services/ -> billing_kernel/   (allowed)
        billing_services/ -> billing_config/   (allowed)
        billing_engines/  -> billing_services/ (FORBIDDEN)
        billing_kernel/   -> billing_services/ (FORBIDDEN)
"""

from billing_services.artifact_access import ArtifactAccess, ArtifactAccessService
from billing_services.artifact_store import ArtifactStore, FilesystemArtifactStore
from billing_services.bootstrap import BillingServices, build_billing_services, build_database
from billing_services.cash_cut_service import CashCutService, cash_cut_bucket_id
from billing_services.document_orchestrator import (
    CashCutPublication,
    DocumentOrchestrator,
    PublicationSettings,
)
from billing_services.monthly_charges import MonthlyChargeRun, MonthlyChargeService
from billing_services.outcomes import LifecycleResult, ReceiptOperation
from billing_services.pricing_service import PricingService
from billing_services.receipt_lifecycle import ReceiptLifecycleService
from billing_services.rendering import DocumentKind, DocumentRenderer, ReportLabRenderer
from billing_services.student_products import ProductSyncResult, StudentProductService

__all__ = [
    "ArtifactAccess",
    "ArtifactAccessService",
    "ArtifactStore",
    "BillingServices",
    "CashCutPublication",
    "CashCutService",
    "DocumentKind",
    "DocumentOrchestrator",
    "DocumentRenderer",
    "FilesystemArtifactStore",
    "LifecycleResult",
    "MonthlyChargeRun",
    "MonthlyChargeService",
    "PricingService",
    "ProductSyncResult",
    "PublicationSettings",
    "ReceiptLifecycleService",
    "ReceiptOperation",
    "ReportLabRenderer",
    "StudentProductService",
    "build_billing_services",
    "build_database",
    "cash_cut_bucket_id",
]
