"""Time entry, invoice and vendor bill models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from labor_billing.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from labor_billing.models.directory import Customer, Personnel, Project, Vendor


class TimeEntry(Base, TimestampMixin):
    """Hours logged by a person against a project on a date.

    ``invoice_id`` and ``vendor_bill_id`` are independent; each is set once
    by the linkage step and never overwritten.
    """

    __tablename__ = "time_entry"

    time_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    personnel_id: Mapped[UUID] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="RESTRICT"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="RESTRICT"),
        nullable=False,
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Linkage
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="RESTRICT"),
        nullable=True,
    )
    invoiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vendor_bill_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("vendor_bill.vendor_bill_id", ondelete="RESTRICT"),
        nullable=True,
    )
    billed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("hours >= 0", name="time_entry_hours_check"),
        Index("time_entry_unbilled_invoice_idx", "invoice_id", "entry_date"),
        Index("time_entry_unbilled_bill_idx", "vendor_bill_id", "entry_date"),
    )

    # Relationships
    personnel: Mapped[Personnel] = relationship()
    project: Mapped[Project] = relationship()


# ===== Invoices =====


class Invoice(Base, TimestampMixin):
    """Customer invoice."""

    __tablename__ = "invoice"

    invoice_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    customer_id: Mapped[UUID] = mapped_column(
        ForeignKey("customer.customer_id", ondelete="RESTRICT"),
        nullable=False,
    )
    customer_name: Mapped[str] = mapped_column(String, nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project.project_id", ondelete="SET NULL"),
        nullable=True,
    )
    project_name: Mapped[str | None] = mapped_column(String, nullable=True)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fingerprint: Mapped[str] = mapped_column(String, nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'sent', 'paid', 'void')",
            name="invoice_status_check",
        ),
        CheckConstraint("due_date >= invoice_date", name="invoice_dates_check"),
    )

    # Relationships
    customer: Mapped[Customer] = relationship()
    line_items: Mapped[list[InvoiceLineItem]] = relationship(
        back_populates="invoice",
        order_by="InvoiceLineItem.position",
        cascade="all, delete-orphan",
    )


class InvoiceLineItem(Base):
    """Invoice line; quantity x unit_price == total."""

    __tablename__ = "invoice_line_item"

    line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoice.invoice_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    product_name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    rate_bracket_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project_rate_bracket.rate_bracket_id", ondelete="SET NULL"),
        nullable=True,
    )
    entry_ids: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("kind IN ('regular', 'overtime')", name="invoice_line_kind_check"),
    )

    # Relationships
    invoice: Mapped[Invoice] = relationship(back_populates="line_items")


# ===== Vendor Bills =====


class VendorBill(Base, TimestampMixin):
    """Labor cost payable to a vendor for one person's hours."""

    __tablename__ = "vendor_bill"

    vendor_bill_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    bill_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    vendor_id: Mapped[UUID] = mapped_column(
        ForeignKey("vendor.vendor_id", ondelete="RESTRICT"),
        nullable=False,
    )
    vendor_name: Mapped[str] = mapped_column(String, nullable=False)
    personnel_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("personnel.personnel_id", ondelete="SET NULL"),
        nullable=True,
    )
    bill_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="open")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fingerprint: Mapped[str] = mapped_column(String, nullable=False)
    external_ref: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('open', 'paid', 'void')", name="vendor_bill_status_check"),
        CheckConstraint("due_date >= bill_date", name="vendor_bill_dates_check"),
    )

    # Relationships
    vendor: Mapped[Vendor] = relationship()
    line_items: Mapped[list[VendorBillLineItem]] = relationship(
        back_populates="vendor_bill",
        order_by="VendorBillLineItem.position",
        cascade="all, delete-orphan",
    )


class VendorBillLineItem(Base):
    """Vendor bill line; quantity x unit_cost == total."""

    __tablename__ = "vendor_bill_line_item"

    line_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    vendor_bill_id: Mapped[UUID] = mapped_column(
        ForeignKey("vendor_bill.vendor_bill_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    product_name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(14, 6), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    project_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("project.project_id", ondelete="SET NULL"),
        nullable=True,
    )
    entry_ids: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("kind IN ('regular', 'overtime')", name="vendor_bill_line_kind_check"),
    )

    # Relationships
    vendor_bill: Mapped[VendorBill] = relationship(back_populates="line_items")
