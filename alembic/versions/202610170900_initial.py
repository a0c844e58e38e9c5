"""initial schema

Revision ID: 202610170900
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None

RECURRING_INTERVALS = (
    "daily",
    "weekly",
    "fortnightly",
    "biweekly",
    "monthly",
    "quarterly",
    "yearly",
    "annual",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=100), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=128), nullable=False),
        sa.Column("last_login_at", sa.DateTime()),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column(
            "type",
            sa.Enum("income", "expense", "both", name="categorytype"),
            nullable=False,
        ),
        sa.Column("icon", sa.String(length=40), nullable=False),
        sa.Column("color", sa.String(length=9), nullable=False),
        sa.Column("description", sa.String(length=100)),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "type",
            sa.Enum("income", "expense", name="transactiontype"),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
        ),
        sa.Column("subcategory", sa.String(length=60)),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("payee", sa.String(length=120)),
        sa.Column("description", sa.Text()),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "recurring_interval",
            sa.Enum(*RECURRING_INTERVALS, name="recurringinterval"),
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
    )
    op.create_index(
        "ix_transactions_user_occurred", "transactions", ["user_id", "occurred_at"]
    )
    op.create_index(
        "ix_transactions_user_type_occurred",
        "transactions",
        ["user_id", "type", "occurred_at"],
    )
    op.create_index(
        "ix_transactions_user_category_occurred",
        "transactions",
        ["user_id", "category_id", "occurred_at"],
    )

    op.create_table(
        "reminders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("due_date", sa.DateTime(), nullable=False),
        sa.Column(
            "category",
            sa.Enum(
                "bill",
                "subscription",
                "tax",
                "investment",
                "insurance",
                "other",
                name="remindercategory",
            ),
            nullable=False,
        ),
        sa.Column("amount_cents", sa.Integer()),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "recurring_interval",
            postgresql.ENUM(
                *RECURRING_INTERVALS, name="recurringinterval", create_type=False
            ),
        ),
        sa.Column(
            "status",
            sa.Enum("pending", "overdue", "completed", name="reminderstatus"),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "amount_cents IS NULL OR amount_cents >= 0",
            name="ck_reminders_amount_positive",
        ),
    )
    op.create_index("ix_reminders_user_status", "reminders", ["user_id", "status"])
    op.create_index("ix_reminders_user_due", "reminders", ["user_id", "due_date"])

    op.create_table(
        "rate_limit_windows",
        sa.Column("key", sa.String(length=120), primary_key=True),
        sa.Column("window_start", sa.Integer(), primary_key=True),
        sa.Column("count", sa.Integer(), nullable=False),
        sa.Column("expires_at", sa.Integer(), nullable=False),
    )
    op.create_index("ix_rate_limit_expires", "rate_limit_windows", ["expires_at"])


def downgrade():
    op.drop_index("ix_rate_limit_expires", table_name="rate_limit_windows")
    op.drop_table("rate_limit_windows")
    op.drop_index("ix_reminders_user_due", table_name="reminders")
    op.drop_index("ix_reminders_user_status", table_name="reminders")
    op.drop_table("reminders")
    op.drop_index("ix_transactions_user_category_occurred", table_name="transactions")
    op.drop_index("ix_transactions_user_type_occurred", table_name="transactions")
    op.drop_index("ix_transactions_user_occurred", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_table("users")
    sa.Enum(name="reminderstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="remindercategory").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="recurringinterval").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transactiontype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="categorytype").drop(op.get_bind(), checkfirst=True)
