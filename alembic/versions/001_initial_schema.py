"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "settings" in existing_tables:
        # Tables already exist, skip migration
        return

    # Key-value settings (holds the generation run record)
    op.create_table(
        "settings",
        sa.Column("key", sa.Text, primary_key=True),
        sa.Column("value", sa.Text),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )

    # Create locations table
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("city", sa.Text),
        sa.Column("lat", sa.Float),
        sa.Column("lng", sa.Float),
        sa.Column("external_id", sa.Text),
        sa.Column("location_type", sa.Text),
        sa.Column("budget", sa.Text),
        sa.Column("website", sa.Text),
        sa.Column("phone", sa.Text),
        sa.Column("email", sa.Text),
        sa.Column("tags", sa.JSON),
        sa.Column("suitable_experiences", sa.JSON),
        sa.Column("practical_info", sa.JSON),
        sa.Column("ai_generated", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_locations_coordinates", "locations", ["lat", "lng"])
    op.create_index("idx_locations_city", "locations", ["city"])
    op.create_index("idx_locations_external_id", "locations", ["external_id"])

    # Create experiences table
    op.create_table(
        "experiences",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("category_key", sa.Text),
        sa.Column("estimated_duration", sa.Integer),
        sa.Column("seasons", sa.JSON),
        sa.Column("ai_generated", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    # Create experience_locations table
    op.create_table(
        "experience_locations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("experience_id", sa.Integer, sa.ForeignKey("experiences.id", ondelete="CASCADE"), nullable=False),
        sa.Column("location_id", sa.Integer, sa.ForeignKey("locations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer, server_default="1"),
        sa.UniqueConstraint("experience_id", "location_id", name="uq_experience_location"),
    )

    # Create plans table
    op.create_table(
        "plans",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("city_name", sa.Text),
        sa.Column("tourist_profile", sa.Text),
        sa.Column("duration_days", sa.Integer, server_default="1"),
        sa.Column("preferences", sa.JSON),
        sa.Column("ai_generated", sa.Boolean, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_plans_city_name", "plans", ["city_name"])

    # Create plan_experiences table
    op.create_table(
        "plan_experiences",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.Integer, sa.ForeignKey("plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("experience_id", sa.Integer, sa.ForeignKey("experiences.id", ondelete="CASCADE"), nullable=False),
        sa.Column("day_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("position", sa.Integer, server_default="1"),
        sa.UniqueConstraint("plan_id", "experience_id", "day_number", name="uq_plan_experience_day"),
    )

    # Create translations table
    op.create_table(
        "translations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("resource_type", sa.Text, nullable=False),
        sa.Column("resource_id", sa.Integer, nullable=False),
        sa.Column("locale", sa.Text, nullable=False),
        sa.Column("field", sa.Text, nullable=False),
        sa.Column("value", sa.Text),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("resource_type", "resource_id", "locale", "field", name="uq_translation_key"),
    )


def downgrade() -> None:
    op.drop_table("translations")
    op.drop_table("plan_experiences")
    op.drop_index("idx_plans_city_name", table_name="plans")
    op.drop_table("plans")
    op.drop_table("experience_locations")
    op.drop_table("experiences")
    op.drop_index("idx_locations_external_id", table_name="locations")
    op.drop_index("idx_locations_city", table_name="locations")
    op.drop_index("idx_locations_coordinates", table_name="locations")
    op.drop_table("locations")
    op.drop_table("settings")
