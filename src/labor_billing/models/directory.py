"""Customer, project, vendor, personnel and rate bracket models."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labor_billing.models.base import Base, TimestampMixin


class Customer(Base, TimestampMixin):
    """Billable customer."""

    __tablename__ = "customer"

    customer_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    company: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)

    # Relationships
    projects: Mapped[list[Project]] = relationship(back_populates="customer")

    @property
    def display_name(self) -> str:
        return self.company or self.name


class Project(Base, TimestampMixin):
    """Project that time is logged against."""

    __tablename__ = "project"

    project_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    customer_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("customer.customer_id", ondelete="SET NULL"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)

    # Relationships
    customer: Mapped[Customer | None] = relationship(back_populates="projects")
    rate_brackets: Mapped[list[RateBracket]] = relationship(back_populates="project")


class Vendor(Base, TimestampMixin):
    """Payee for vendor bills (staffing agency, contractor or the person themself)."""

    __tablename__ = "vendor"

    vendor_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    company: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    vendor_type: Mapped[str] = mapped_column(String, nullable=False, default="personnel")

    __table_args__ = (
        CheckConstraint(
            "vendor_type IN ('personnel', 'contractor', 'staffing_agency', 'supplier')",
            name="vendor_type_check",
        ),
    )

    @property
    def display_name(self) -> str:
        return self.company or self.name


class Personnel(Base, TimestampMixin):
    """A person who logs time. Carries the cost-side pay profile."""

    __tablename__ = "personnel"

    personnel_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)

    # Pay profile
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    overtime_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(6, 4), nullable=True)
    staffing_vendor_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("vendor.vendor_id", ondelete="SET NULL"),
        nullable=True,
    )
    linked_vendor_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("vendor.vendor_id", ondelete="SET NULL"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("hourly_rate IS NULL OR hourly_rate >= 0", name="personnel_rate_check"),
        CheckConstraint(
            "overtime_multiplier IS NULL OR overtime_multiplier >= 1",
            name="personnel_ot_multiplier_check",
        ),
    )

    # Relationships
    staffing_vendor: Mapped[Vendor | None] = relationship(foreign_keys=[staffing_vendor_id])
    linked_vendor: Mapped[Vendor | None] = relationship(foreign_keys=[linked_vendor_id])
    assignments: Mapped[list[PersonnelProjectAssignment]] = relationship(
        back_populates="personnel"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class RateBracket(Base, TimestampMixin):
    """Customer-facing billing tier for a project."""

    __tablename__ = "project_rate_bracket"

    rate_bracket_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    bill_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    overtime_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), nullable=False, default=Decimal("1.5")
    )
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("bill_rate >= 0", name="rate_bracket_bill_rate_check"),
        CheckConstraint("overtime_multiplier >= 1", name="rate_bracket_ot_multiplier_check"),
    )

    # Relationships
    project: Mapped[Project] = relationship(back_populates="rate_brackets")


class PersonnelProjectAssignment(Base, TimestampMixin):
    """Person-to-project assignment with an optional rate bracket."""

    __tablename__ = "personnel_project_assignment"

    assignment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    rate_bracket_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project_rate_bracket.rate_bracket_id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'inactive')", name="assignment_status_check"),
    )

    # Relationships
    personnel: Mapped[Personnel] = relationship(back_populates="assignments")
    project: Mapped[Project] = relationship()
    rate_bracket: Mapped[RateBracket | None] = relationship()
