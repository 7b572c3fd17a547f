"""seed_admin

Revision ID: 0002_seed_admin
Revises: 0001_initial_schema
Create Date: 2026-10-19 09:05:00.000000

Seeds the first administrator (username: admin, password: admin).
Change the password after the first login.
"""
from typing import Sequence, Union
from datetime import datetime, timezone

from alembic import op
from sqlalchemy.sql import text
from passlib.context import CryptContext


# revision identifiers, used by Alembic.
revision: str = '0002_seed_admin'
down_revision: Union[str, None] = '0001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Password hashing for seeding
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def upgrade() -> None:
    """Create the admin account if it does not exist."""
    conn = op.get_bind()
    now = datetime.now(timezone.utc)

    existing = conn.execute(text("SELECT id FROM users WHERE username = 'admin'")).fetchone()
    if existing:
        print("   Admin user already exists, skipping")
        return

    print("   Creating Admin user (username: admin, password: admin)...")
    conn.execute(text("""
        INSERT INTO users (name, username, password_hash, role, is_active, created_at, updated_at)
        VALUES ('System Administrator', 'admin', :password_hash, 'admin', true, :now, :now)
    """), {"password_hash": pwd_context.hash("admin"), "now": now})


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DELETE FROM users WHERE username = 'admin'"))
