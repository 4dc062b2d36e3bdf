"""Create customers, bonus ledger, prize wheel and voucher tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


transaction_kind = sa.Enum("accrual", "redemption", name="bonus_transaction_kind")
voucher_status = sa.Enum("active", "used", name="voucher_status")


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("external_id", sa.BigInteger(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=False),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="customer"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_customers_external_id", "customers", ["external_id"], unique=True)
    op.create_index("ix_customers_phone", "customers", ["phone"], unique=True)

    op.create_table(
        "bonus_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "counterparty_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("kind", transaction_kind, nullable=False),
        sa.Column("purchase_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("bonus_delta", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_bonus_transactions_customer_created",
        "bonus_transactions",
        ["customer_id", "created_at"],
    )

    op.create_table(
        "bonus_batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount_issued", sa.Integer(), nullable=False),
        sa.Column("amount_remaining", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "source_transaction_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bonus_transactions.id"),
            nullable=True,
        ),
        sa.CheckConstraint(
            "amount_remaining >= 0 AND amount_remaining <= amount_issued",
            name="ck_bonus_batches_remaining_bounds",
        ),
    )
    op.create_index(
        "ix_bonus_batches_customer_expiry",
        "bonus_batches",
        ["customer_id", "expires_at", "created_at"],
    )

    op.create_table(
        "prizes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("wheel_type", sa.String(length=16), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("expiry_days", sa.Integer(), nullable=False, server_default="14"),
        sa.Column("bonus_points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("wheel_type", "code", name="uq_prizes_wheel_code"),
        sa.CheckConstraint("weight > 0", name="ck_prizes_weight_positive"),
        sa.CheckConstraint("expiry_days >= 0", name="ck_prizes_expiry_days_non_negative"),
    )
    op.create_index("ix_prizes_wheel_position", "prizes", ["wheel_type", "position"])

    op.create_table(
        "wheel_spins",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("wheel_type", sa.String(length=16), nullable=False),
        sa.Column("prize_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("prizes.id"), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ux_wheel_spins_welcome_once",
        "wheel_spins",
        ["customer_id", "wheel_type"],
        unique=True,
        sqlite_where=sa.text("wheel_type = 'welcome'"),
        postgresql_where=sa.text("wheel_type = 'welcome'"),
    )
    op.create_index(
        "ux_wheel_spins_birthday_once_per_year",
        "wheel_spins",
        ["customer_id", "wheel_type", "year"],
        unique=True,
        sqlite_where=sa.text("wheel_type = 'birthday'"),
        postgresql_where=sa.text("wheel_type = 'birthday'"),
    )

    op.create_table(
        "vouchers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("prize_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("prizes.id"), nullable=False),
        sa.Column("status", voucher_status, nullable=False, server_default="active"),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "used_by_operator_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index("ix_vouchers_customer_status", "vouchers", ["customer_id", "status"])


def downgrade() -> None:
    op.drop_index("ix_vouchers_customer_status", table_name="vouchers")
    op.drop_table("vouchers")
    op.drop_index("ux_wheel_spins_birthday_once_per_year", table_name="wheel_spins")
    op.drop_index("ux_wheel_spins_welcome_once", table_name="wheel_spins")
    op.drop_table("wheel_spins")
    op.drop_index("ix_prizes_wheel_position", table_name="prizes")
    op.drop_table("prizes")
    op.drop_index("ix_bonus_batches_customer_expiry", table_name="bonus_batches")
    op.drop_table("bonus_batches")
    op.drop_index("ix_bonus_transactions_customer_created", table_name="bonus_transactions")
    op.drop_table("bonus_transactions")
    op.drop_index("ix_customers_phone", table_name="customers")
    op.drop_index("ix_customers_external_id", table_name="customers")
    op.drop_table("customers")

    bind = op.get_bind()
    voucher_status.drop(bind, checkfirst=True)
    transaction_kind.drop(bind, checkfirst=True)
