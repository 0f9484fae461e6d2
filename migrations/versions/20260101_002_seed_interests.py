"""Seed profile interests

Revision ID: 20260101_002
Revises: 20260101_001
Create Date: 2026-01-01 10:30:00

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.sql import column, table

# revision identifiers, used by Alembic.
revision: str = "20260101_002"
down_revision: str | None = "20260101_001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

INTERESTS = {
    "Entertainment": ["Music", "Movies", "Gaming"],
    "Sports": ["Sports", "Fitness", "Yoga"],
    "Lifestyle": ["Travel", "Cooking", "Nature", "Fashion", "Food", "Coffee", "Wine", "Adventure", "Meditation"],
    "Arts": ["Photography", "Dancing", "Art"],
    "Education": ["Reading", "Technology", "Career", "Business", "Science", "History", "Languages"],
    "Social": ["Volunteering", "Politics", "Religion", "Family", "Culture"],
}


def upgrade() -> None:
    interests_table = table("interests", column("name", sa.String), column("category", sa.String))

    op.bulk_insert(
        interests_table,
        [{"name": name, "category": category} for category, names in INTERESTS.items() for name in names],
    )


def downgrade() -> None:
    names = [name for names in INTERESTS.values() for name in names]
    interests_table = table("interests", column("name", sa.String))
    op.execute(interests_table.delete().where(interests_table.c.name.in_(names)))
