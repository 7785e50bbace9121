"""Initial schema for the SQL-backed ride ledger.

Revision ID: 001
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("provider_id", sa.String(64), nullable=True),
        sa.Column("pickup_location", sa.Text, nullable=False),
        sa.Column("dropoff_location", sa.Text, nullable=False),
        sa.Column("amount", sa.Numeric(36, 18), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "CREATED",
                "ACCEPTED",
                "ONGOING",
                "COMPLETED",
                "CANCELLED",
                name="ridestatus",
            ),
            default="CREATED",
            nullable=False,
        ),
        sa.Column("is_rated", sa.Boolean, default=False, nullable=False),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("amount >= 0", name="ck_rides_amount_non_negative"),
        sa.CheckConstraint(
            "rating IS NULL OR rating BETWEEN 1 AND 5", name="ck_rides_rating_range"
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_requester", "rides", ["requester_id"])
    op.create_index("idx_rides_provider", "rides", ["provider_id"])

    # ── escrow_entries ────────────────────────────────────────────────
    op.create_table(
        "escrow_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "ride_id", sa.Integer, sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column(
            "disposition",
            sa.Enum("HELD", "RELEASED", "REFUNDED", name="escrowdisposition"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(36, 18), nullable=False),
        sa.Column("beneficiary", sa.String(64), nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_escrow_ride", "escrow_entries", ["ride_id"])


def downgrade() -> None:
    op.drop_table("escrow_entries")
    op.drop_table("rides")
    op.execute("DROP TYPE IF EXISTS escrowdisposition")
    op.execute("DROP TYPE IF EXISTS ridestatus")
