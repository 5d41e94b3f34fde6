"""Create users table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `users` table read by the getUsers procedure and written
       by signup.

Rollback: downgrade() drops the table (all accounts are lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),

        # Stored lower-cased; the sign-in identifier
        sa.Column(
            "email",
            sa.String(255),
            nullable=False,
            comment="Sign-in identifier, stored lower-cased",
        ),
        sa.Column("name", sa.String(255), nullable=True, comment="Display name"),

        # NULL for users created outside the signup flow
        sa.Column(
            "password_hash",
            sa.String(255),
            nullable=True,
            comment="passlib hash of the password",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )


def downgrade() -> None:
    op.drop_table("users")
