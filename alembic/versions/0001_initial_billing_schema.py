"""Initial billing schema: tenants, customers, delivery ledger, bills,
payments, invoices, payment logs and document sequences.

Revision ID: 0001_initial_billing
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_initial_billing"
down_revision = None
branch_labels = None
depends_on = None

DELIVERY_TYPES = ("delivered", "received")
PAYMENT_EVENT_TYPES = (
    "bill_generated",
    "bill_updated",
    "bill_deleted",
    "payment_received",
    "partial_payment",
    "invoice_generated",
    "invoice_downloaded",
    "invoice_deleted",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    delivery_type_enum = postgresql.ENUM(*DELIVERY_TYPES, name="deliverytype")
    event_type_enum = postgresql.ENUM(*PAYMENT_EVENT_TYPES, name="paymenteventtype")
    delivery_type_enum.create(op.get_bind(), checkfirst=True)
    event_type_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "tenants",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "customers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column("customer_code", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "customer_code", name="uq_customers_tenant_code"),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])
    op.create_index("ix_customers_name", "customers", ["name"])

    op.create_table(
        "delivery_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column(
            "customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=True
        ),
        sa.Column("customer_name", sa.String(length=200), nullable=False),
        sa.Column(
            "delivery_type",
            postgresql.ENUM(*DELIVERY_TYPES, name="deliverytype", create_type=False),
            nullable=False,
        ),
        sa.Column("delivery_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cylinder_label", sa.String(length=80), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_delivery_entries_tenant_id", "delivery_entries", ["tenant_id"])
    op.create_index("ix_delivery_entries_customer_id", "delivery_entries", ["customer_id"])
    op.create_index("ix_delivery_entries_delivery_date", "delivery_entries", ["delivery_date"])

    op.create_table(
        "bills",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column(
            "customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("prior_balance", sa.Integer(), nullable=False),
        sa.Column("period_charge", sa.Integer(), nullable=False),
        sa.Column("cylinder_count", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "tenant_id",
            "customer_id",
            "period_start",
            "period_end",
            name="uq_bills_tenant_customer_period",
        ),
    )
    op.create_index("ix_bills_tenant_id", "bills", ["tenant_id"])
    op.create_index("ix_bills_customer_id", "bills", ["customer_id"])

    op.create_table(
        "payments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column(
            "bill_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bills.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("paid_on", sa.DateTime(timezone=True), nullable=False),
        sa.Column("method", sa.String(length=60), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_payments_tenant_id", "payments", ["tenant_id"])
    op.create_index("ix_payments_bill_id", "payments", ["bill_id"])

    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column(
            "bill_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("bills.id"), nullable=False
        ),
        sa.Column(
            "customer_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("customers.id"), nullable=False
        ),
        sa.Column("invoice_number", sa.String(length=80), nullable=False),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("customer_code", sa.Integer(), nullable=True),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_due", sa.Integer(), nullable=False),
        sa.Column("paid_amount", sa.Integer(), nullable=False),
        sa.Column("remaining_amount", sa.Integer(), nullable=False),
        sa.Column("issued_by", sa.String(length=120), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("bill_id", name="uq_invoices_bill_id"),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_number"),
    )
    op.create_index("ix_invoices_tenant_id", "invoices", ["tenant_id"])

    op.create_table(
        "payment_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column(
            "event_type",
            postgresql.ENUM(*PAYMENT_EVENT_TYPES, name="paymenteventtype", create_type=False),
            nullable=False,
        ),
        sa.Column("bill_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("payment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("customer_name", sa.String(length=160), nullable=False),
        sa.Column("customer_code", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("bill_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("bill_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_payment_logs_tenant_id", "payment_logs", ["tenant_id"])
    op.create_index("ix_payment_logs_event_type", "payment_logs", ["event_type"])
    op.create_index("ix_payment_logs_bill_id", "payment_logs", ["bill_id"])
    op.create_index("ix_payment_logs_customer_name", "payment_logs", ["customer_name"])
    op.create_index("ix_payment_logs_performed_at", "payment_logs", ["performed_at"])

    op.create_table(
        "document_sequences",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "tenant_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("tenants.id"), nullable=False
        ),
        sa.Column("key", sa.String(length=80), nullable=False),
        sa.Column("next_value", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "key", name="uq_document_sequences_tenant_key"),
    )
    op.create_index("ix_document_sequences_tenant_id", "document_sequences", ["tenant_id"])


def downgrade() -> None:
    op.drop_table("document_sequences")
    op.drop_table("payment_logs")
    op.drop_table("invoices")
    op.drop_table("payments")
    op.drop_table("bills")
    op.drop_table("delivery_entries")
    op.drop_table("customers")
    op.drop_table("tenants")
    postgresql.ENUM(name="paymenteventtype").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(name="deliverytype").drop(op.get_bind(), checkfirst=True)
