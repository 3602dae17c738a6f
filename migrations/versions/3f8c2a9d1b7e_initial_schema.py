"""initial schema

Revision ID: 3f8c2a9d1b7e
Revises:
Create Date: 2026-10-17 10:12:31.204118

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3f8c2a9d1b7e'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())
    created_tables = set()

    def _log(message: str):
        print(f"[MIGRATION] {message}")

    def _ensure_table(name: str, create_fn):
        if name in tables:
            _log(f"{name} already exists; skipping create_table")
            return False
        create_fn()
        tables.add(name)
        created_tables.add(name)
        _log(f"{name} created")
        return True

    def _ensure_indexes(table_name: str, index_specs: list[tuple[str, list[str]]]):
        if table_name not in tables:
            return
        existing = set() if table_name in created_tables else {
            idx.get("name") for idx in inspector.get_indexes(table_name)
        }
        for index_name, columns in index_specs:
            if index_name in existing:
                _log(f"{table_name}.{index_name} already exists; skipping index")
                continue
            op.create_index(index_name, table_name, columns, unique=False)
            _log(f"{table_name}.{index_name} created")

    _ensure_table(
        "ip_rate_limit",
        lambda: op.create_table(
            "ip_rate_limit",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("ip", sa.String(length=64), nullable=False),
            sa.Column("window_start", sa.DateTime(), nullable=False),
            sa.Column("count", sa.Integer(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("ip", "window_start", name="uq_ip_window"),
        ),
    )
    _ensure_indexes(
        "ip_rate_limit",
        [
            (op.f("ix_ip_rate_limit_ip"), ["ip"]),
            (op.f("ix_ip_rate_limit_window_start"), ["window_start"]),
            ("ix_ip_window", ["ip", "window_start"]),
        ],
    )

    _ensure_table(
        "user",
        lambda: op.create_table(
            "user",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=120), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("last_name", sa.String(length=100), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="user"),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint("role IN ('user', 'sales')", name="ck_user_role"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        ),
    )

    _ensure_table(
        "user_profile",
        lambda: op.create_table(
            "user_profile",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("gross_monthly_income", sa.Integer(), nullable=True),
            sa.Column("other_monthly_income", sa.Integer(), nullable=True),
            sa.Column("fixed_monthly_expenses", sa.Integer(), nullable=True),
            sa.Column("liquid_savings", sa.Integer(), nullable=True),
            sa.Column("credit_score", sa.String(length=32), nullable=True),
            sa.Column("ownership_horizon", sa.String(length=64), nullable=True),
            sa.Column("annual_mileage", sa.String(length=64), nullable=True),
            sa.Column("passenger_needs", sa.String(length=64), nullable=True),
            sa.Column("commute_profile", sa.String(length=128), nullable=True),
            sa.Column("down_payment", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id"),
        ),
    )

    _ensure_table(
        "document",
        lambda: op.create_table(
            "document",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("filename", sa.String(length=255), nullable=False),
            sa.Column("original_name", sa.String(length=255), nullable=False),
            sa.Column("file_path", sa.String(length=1024), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=False),
            sa.Column("mime_type", sa.String(length=128), nullable=False),
            sa.Column("uploaded_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        ),
    )
    _ensure_indexes(
        "document",
        [
            (op.f("ix_document_user_id"), ["user_id"]),
            (op.f("ix_document_uploaded_at"), ["uploaded_at"]),
        ],
    )

    _ensure_table(
        "car_recommendation",
        lambda: op.create_table(
            "car_recommendation",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("profile_id", sa.Integer(), nullable=True),
            sa.Column("budget_car", sa.String(length=255), nullable=False),
            sa.Column("balanced_car", sa.String(length=255), nullable=False),
            sa.Column("premium_car", sa.String(length=255), nullable=False),
            sa.Column(
                "recommendation_data",
                sa.Text().with_variant(postgresql.JSONB(), "postgresql"),
                nullable=False,
            ),
            sa.Column("model_name", sa.String(length=64), nullable=True),
            sa.Column("duration_ms", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["profile_id"], ["user_profile.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        ),
    )
    if "car_recommendation" in created_tables:
        op.create_index(
            "ix_car_recommendation_user_created",
            "car_recommendation",
            ["user_id", sa.text("created_at DESC")],
            unique=False,
        )
        _log("car_recommendation.ix_car_recommendation_user_created created")

    _ensure_table(
        "dealer_referral",
        lambda: op.create_table(
            "dealer_referral",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("dealer_id", sa.String(length=32), nullable=False),
            sa.Column("recommendation_id", sa.Integer(), nullable=True),
            sa.Column("selected_tier", sa.String(length=16), nullable=True),
            sa.Column("payment_mode", sa.String(length=16), nullable=False, server_default="finance"),
            sa.Column("note", sa.String(length=500), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["user_id"], ["user.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["recommendation_id"], ["car_recommendation.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        ),
    )
    _ensure_indexes(
        "dealer_referral",
        [
            (op.f("ix_dealer_referral_user_id"), ["user_id"]),
            (op.f("ix_dealer_referral_dealer_id"), ["dealer_id"]),
        ],
    )


def downgrade():
    with op.batch_alter_table('dealer_referral', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_dealer_referral_dealer_id'))
        batch_op.drop_index(batch_op.f('ix_dealer_referral_user_id'))
    op.drop_table('dealer_referral')

    with op.batch_alter_table('car_recommendation', schema=None) as batch_op:
        batch_op.drop_index('ix_car_recommendation_user_created')
    op.drop_table('car_recommendation')

    with op.batch_alter_table('document', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_document_uploaded_at'))
        batch_op.drop_index(batch_op.f('ix_document_user_id'))
    op.drop_table('document')

    op.drop_table('user_profile')
    op.drop_table('user')

    with op.batch_alter_table('ip_rate_limit', schema=None) as batch_op:
        batch_op.drop_index('ix_ip_window')
        batch_op.drop_index(batch_op.f('ix_ip_rate_limit_window_start'))
        batch_op.drop_index(batch_op.f('ix_ip_rate_limit_ip'))
    op.drop_table('ip_rate_limit')
