"""Initial ledger schema

Revision ID: 20261019_initial_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_categories_section", "categories", ["section"], unique=False)

    op.create_table(
        "items",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("sell_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("category_id", sa.String(36), nullable=True),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("current_amount >= 0", name="ck_items_current_amount_nonneg"),
        sa.CheckConstraint("sell_price_cents >= 0", name="ck_items_sell_price_nonneg"),
        sa.CheckConstraint("cost_price_cents >= 0", name="ck_items_cost_price_nonneg"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("items", schema=None) as batch_op:
        batch_op.create_index("ix_items_section", ["section"], unique=False)
        batch_op.create_index("ix_items_section_category", ["section", "category_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customers_section", "customers", ["section"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("operator_id", sa.String(64), nullable=False),
        sa.Column("operator_name", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("final_cash_cents", sa.Integer(), nullable=True),
        sa.Column("final_inventory", sa.JSON(), nullable=True),
        sa.Column("discrepancies", sa.JSON(), nullable=True),
        sa.Column("close_reason", sa.Text(), nullable=True),
        sa.Column("closed_by", sa.String(128), nullable=True),
        sa.Column("validation_status", sa.String(16), nullable=False, server_default="balanced"),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("shifts", schema=None) as batch_op:
        batch_op.create_index("ix_shifts_section", ["section"], unique=False)
        batch_op.create_index("ix_shifts_status", ["status"], unique=False)
        batch_op.create_index("ix_shifts_section_start", ["section", "start_time"], unique=False)
        # One active shift per section, enforced by the store
        batch_op.create_index(
            "uq_shifts_one_active_per_section",
            ["section"],
            unique=True,
            sqlite_where=sa.text("status = 'active'"),
            postgresql_where=sa.text("status = 'active'"),
        )

    op.create_table(
        "shift_sales",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("shift_id", sa.String(36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("customer_purchase_id", sa.String(36), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("shift_sales", schema=None) as batch_op:
        batch_op.create_index("ix_shift_sales_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_shift_sales_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_shift_sales_shift_position", ["shift_id", "position"], unique=False)

    for table in ("expenses", "external_money"):
        op.create_table(
            table,
            sa.Column("id", sa.String(36), nullable=False),
            sa.Column("amount_cents", sa.Integer(), nullable=False),
            sa.Column("reason", sa.String(255), nullable=False),
            sa.Column("shift_id", sa.String(36), nullable=False),
            sa.Column("section", sa.String(16), nullable=False),
            sa.Column("timestamp", sa.DateTime(), nullable=False),
            sa.Column("created_by", sa.String(128), nullable=False),
            sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(f"ix_{table}_shift_id", table, ["shift_id"], unique=False)
        op.create_index(f"ix_{table}_section", table, ["section"], unique=False)

    op.create_table(
        "supplies",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shift_id", sa.String(36), nullable=True),
        sa.Column("on_credit", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_supplies_section", "supplies", ["section"], unique=False)
    op.create_index("ix_supplies_shift_id", "supplies", ["shift_id"], unique=False)

    op.create_table(
        "customer_purchases",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("customer_id", sa.String(36), nullable=False),
        sa.Column("customer_name", sa.String(128), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("original_amount_cents", sa.Integer(), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("shift_id", sa.String(36), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("customer_purchases", schema=None) as batch_op:
        batch_op.create_index("ix_customer_purchases_shift_id", ["shift_id"], unique=False)
        batch_op.create_index(
            "ix_customer_purchases_customer_paid", ["customer_id", "is_paid", "timestamp"], unique=False
        )
        batch_op.create_index("ix_customer_purchases_section_paid", ["section", "is_paid"], unique=False)

    op.create_table(
        "customer_payments",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("customer_id", sa.String(36), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("purchase_ids", sa.JSON(), nullable=False),
        sa.Column("reduced_purchase_id", sa.String(36), nullable=True),
        sa.Column("shift_id", sa.String(36), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("customer_payments", schema=None) as batch_op:
        batch_op.create_index("ix_customer_payments_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_customer_payments_shift_id", ["shift_id"], unique=False)
        batch_op.create_index("ix_customer_payments_section", ["section"], unique=False)

    op.create_table(
        "supplement_debt",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_updated", sa.DateTime(), nullable=False),
        sa.Column("updated_by", sa.String(128), nullable=False, server_default="system"),
        sa.Column("next_sequence", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("amount_cents >= 0", name="ck_supplement_debt_nonneg"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "supplement_debt_transactions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("applied_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_supplement_txn_positive"),
        sa.UniqueConstraint("sequence", name="uq_supplement_txn_sequence"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_supplement_debt_transactions_timestamp", "supplement_debt_transactions", ["timestamp"], unique=False
    )

    op.create_table(
        "admin_logs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("action_type", sa.String(64), nullable=False),
        sa.Column("affected", sa.String(255), nullable=False),
        sa.Column("details", sa.Text(), nullable=False, server_default=""),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("section", sa.String(16), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("admin_logs", schema=None) as batch_op:
        batch_op.create_index("ix_admin_logs_action_type", ["action_type"], unique=False)
        batch_op.create_index("ix_admin_logs_section_timestamp", ["section", "timestamp"], unique=False)

    op.create_table(
        "monthly_archives",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("section", sa.String(16), nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("total_revenue_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_profit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_expenses_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_external_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("shifts_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("items_sold", sa.JSON(), nullable=False),
        sa.Column("archived_at", sa.DateTime(), nullable=False),
        sa.Column("archived_by", sa.String(128), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("section", "month", name="uq_monthly_archives_section_month"),
    )
    op.create_index("ix_monthly_archives_section", "monthly_archives", ["section"], unique=False)


def downgrade():
    op.drop_table("monthly_archives")
    op.drop_table("admin_logs")
    op.drop_table("supplement_debt_transactions")
    op.drop_table("supplement_debt")
    op.drop_table("customer_payments")
    op.drop_table("customer_purchases")
    op.drop_table("supplies")
    op.drop_table("external_money")
    op.drop_table("expenses")
    op.drop_table("shift_sales")
    op.drop_table("shifts")
    op.drop_table("customers")
    op.drop_table("items")
    op.drop_table("categories")
