"""initial raffle schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("avatar_url", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_users")),
        sa.UniqueConstraint("email", name=op.f("uq_users_email")),
    )
    op.create_table(
        "raffles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("qr_code_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft', 'active', 'drawing', 'completed')",
            name=op.f("ck_raffles_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["created_by"],
            ["users.id"],
            name=op.f("fk_raffles_created_by_users"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_raffles")),
    )
    op.create_index("ix_raffles_status", "raffles", ["status"], unique=False)

    op.create_table(
        "prizes",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("raffle_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False),
        sa.Column("awarded_to", sa.String(length=36), nullable=True),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["awarded_to"],
            ["users.id"],
            name=op.f("fk_prizes_awarded_to_users"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_prizes_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prizes")),
    )
    op.create_index(
        "ix_prizes_raffle_sort_order", "prizes", ["raffle_id", "sort_order"], unique=False
    )

    op.create_table(
        "participants",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("raffle_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("ticket_count", sa.Integer(), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "ticket_count >= 1", name=op.f("ck_participants_ticket_count_positive")
        ),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_participants_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_participants_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_participants")),
        sa.UniqueConstraint("raffle_id", "user_id", name="uq_participants_raffle_user"),
    )
    op.create_index(
        "ix_participants_user_joined_at",
        "participants",
        ["user_id", "joined_at"],
        unique=False,
    )

    op.create_table(
        "winners",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("raffle_id", sa.String(length=36), nullable=False),
        sa.Column("prize_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("tickets_at_win", sa.Integer(), nullable=False),
        sa.Column("won_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["prize_id"],
            ["prizes.id"],
            name=op.f("fk_winners_prize_id_prizes"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["raffle_id"],
            ["raffles.id"],
            name=op.f("fk_winners_raffle_id_raffles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name=op.f("fk_winners_user_id_users"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_winners")),
        sa.UniqueConstraint("raffle_id", "prize_id", name="uq_winners_raffle_prize"),
    )
    op.create_index("ix_winners_raffle_id", "winners", ["raffle_id"], unique=False)
    op.create_index(
        "ix_winners_user_won_at", "winners", ["user_id", "won_at"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_winners_user_won_at", table_name="winners")
    op.drop_index("ix_winners_raffle_id", table_name="winners")
    op.drop_table("winners")
    op.drop_index("ix_participants_user_joined_at", table_name="participants")
    op.drop_table("participants")
    op.drop_index("ix_prizes_raffle_sort_order", table_name="prizes")
    op.drop_table("prizes")
    op.drop_index("ix_raffles_status", table_name="raffles")
    op.drop_table("raffles")
    op.drop_table("users")
