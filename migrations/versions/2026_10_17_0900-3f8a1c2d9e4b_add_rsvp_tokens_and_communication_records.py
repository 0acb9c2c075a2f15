"""add_rsvp_tokens_and_communication_records

Revision ID: 3f8a1c2d9e4b
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "3f8a1c2d9e4b"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # guests is owned by the guest management service and must already exist
    op.create_table(
        "rsvp_tokens",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("guest_id", sa.UUID(), nullable=False),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index("ix_rsvp_tokens_token", "rsvp_tokens", ["token"], unique=True)
    op.create_index("ix_rsvp_tokens_guest_id", "rsvp_tokens", ["guest_id"])
    op.create_index("ix_rsvp_tokens_is_active", "rsvp_tokens", ["is_active"])
    # At most one active token per guest
    op.create_index(
        "uq_rsvp_tokens_active_guest",
        "rsvp_tokens",
        ["guest_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "communication_records",
        sa.Column("uuid", sa.UUID(), nullable=False),
        sa.Column("event_id", sa.UUID(), nullable=False),
        sa.Column("guest_id", sa.UUID(), nullable=True),
        sa.Column("channel", sa.String(length=20), nullable=False, server_default="email"),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=500), nullable=True),
        sa.Column("template_id", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("message_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("uuid"),
    )
    op.create_index(
        "ix_communication_records_event_id", "communication_records", ["event_id"]
    )
    op.create_index(
        "ix_communication_records_guest_id", "communication_records", ["guest_id"]
    )
    op.create_index("ix_communication_records_status", "communication_records", ["status"])
    op.create_index(
        "ix_communication_records_message_id", "communication_records", ["message_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_communication_records_message_id", table_name="communication_records")
    op.drop_index("ix_communication_records_status", table_name="communication_records")
    op.drop_index("ix_communication_records_guest_id", table_name="communication_records")
    op.drop_index("ix_communication_records_event_id", table_name="communication_records")
    op.drop_table("communication_records")
    op.drop_index("uq_rsvp_tokens_active_guest", table_name="rsvp_tokens")
    op.drop_index("ix_rsvp_tokens_is_active", table_name="rsvp_tokens")
    op.drop_index("ix_rsvp_tokens_guest_id", table_name="rsvp_tokens")
    op.drop_index("ix_rsvp_tokens_token", table_name="rsvp_tokens")
    op.drop_table("rsvp_tokens")
