"""
Module: billing_kernel.models.reference
Responsibility: ORM persistence for the read-mostly reference entities the
    billing engine hydrates documents from and generates charges against:
    campuses, students, cashiers, products and product enrollments.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - One enrollment per (student, product) (uq_student_product).
    - Scholarship percentages are fractions in [0, 1].

Audit relevance:
    Campus legal name, tax id and location are printed on every receipt and
    cash-cut document; they are read at render time, never snapshotted.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.values import RecordStatus, Recurrence


class Campus(TrackedBase):
    """A campus (billing entity) that owns students, products and cash cuts."""

    __tablename__ = "campuses"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    legal_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    tax_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    location: Mapped[str | None] = mapped_column(String(300), nullable=True)

    def __repr__(self) -> str:
        return f"<Campus {self.name}>"


class Cashier(TrackedBase):
    """A staff user who collects payments and owns cash-cut buckets."""

    __tablename__ = "cashiers"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Student(TrackedBase):
    """A student billed by receipts.  ``level`` is the academic level of the student's group."""

    __tablename__ = "students"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    paternal_surname: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    maternal_surname: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    campus_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("campuses.id"), nullable=False
    )
    level: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[RecordStatus] = mapped_column(
        String(20), default=RecordStatus.ACTIVE.value, nullable=False
    )

    @property
    def full_name(self) -> str:
        """Surnames first, the way receipts print it."""
        parts = (self.paternal_surname, self.maternal_surname, self.first_name)
        return " ".join(p for p in parts if p)


class Product(TrackedBase):
    """A billable product offered by one campus."""

    __tablename__ = "products"

    campus_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("campuses.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    recurrence: Mapped[Recurrence] = mapped_column(String(20), nullable=False)
    status: Mapped[RecordStatus] = mapped_column(
        String(20), default=RecordStatus.ACTIVE.value, nullable=False
    )

    # Enrolled automatically by product synchronization
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # NULL applies to every academic level
    applies_to_level: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Product {self.name} ({self.recurrence})>"


class StudentProduct(TrackedBase):
    """
    Enrollment of a student in a monthly product.

    Contract:
        Source rows for monthly charge generation.  ``scholarship_pct`` is the
        standing scholarship for this student and product; it is copied onto
        each generated MonthlyCharge.
    """

    __tablename__ = "student_products"

    __table_args__ = (
        UniqueConstraint("student_id", "product_id", name="uq_student_product"),
    )

    student_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("students.id"), nullable=False
    )
    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )
    scholarship_pct: Mapped[Decimal] = mapped_column(
        Numeric(12, 6), default=Decimal("0"), nullable=False
    )
