"""initial import schema: projects, user profiles and imported entities

Revision ID: a0c1e2d3f4b5
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "a0c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


def _provenance() -> list[sa.Column]:
    return [
        sa.Column("imported_from", sa.String(length=32), nullable=True),
        sa.Column("imported_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _project_fk() -> sa.Column:
    return sa.Column(
        "project_id",
        sa.String(length=64),
        sa.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_projects_user_id", "projects", ["user_id"])

    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("subscription_status", sa.String(length=32), nullable=True),
        sa.Column("trial_expires_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "characters",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("age", sa.Integer(), nullable=True),
        sa.Column("race", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("background", sa.Text(), nullable=False),
        sa.Column("physical_description", sa.Text(), nullable=False),
        sa.Column("fantasy_class", sa.String(length=200), nullable=False),
        sa.Column("traits", sa.JSON(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_provenance(),
    )
    op.create_index("ix_characters_project_id", "characters", ["project_id"])
    op.create_index("ix_characters_name", "characters", ["name"])

    op.create_table(
        "plot_threads",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("color", sa.String(length=16), nullable=False),
        sa.Column("completion_percentage", sa.Integer(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_provenance(),
    )
    op.create_index("ix_plot_threads_project_id", "plot_threads", ["project_id"])

    op.create_table(
        "chapters",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("chapter_number", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("word_count", sa.Integer(), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("book", sa.String(length=200), nullable=False),
        *_provenance(),
    )
    op.create_index("ix_chapters_project_id", "chapters", ["project_id"])

    op.create_table(
        "locations",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("geography", sa.Text(), nullable=False),
        sa.Column("culture", sa.Text(), nullable=False),
        sa.Column("climate", sa.Text(), nullable=False),
        sa.Column("population", sa.Text(), nullable=False),
        sa.Column("government", sa.Text(), nullable=False),
        sa.Column("economy", sa.Text(), nullable=False),
        sa.Column("notable_features", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_provenance(),
    )
    op.create_index("ix_locations_project_id", "locations", ["project_id"])

    op.create_table(
        "world_elements",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        *_provenance(),
    )
    op.create_index("ix_world_elements_project_id", "world_elements", ["project_id"])

    op.create_table(
        "outline_nodes",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column(
            "parent_id",
            sa.String(length=200),
            sa.ForeignKey("outline_nodes.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        *_provenance(),
    )
    op.create_index("ix_outline_nodes_project_id", "outline_nodes", ["project_id"])
    op.create_index("ix_outline_nodes_parent_id", "outline_nodes", ["parent_id"])

    op.create_table(
        "imported_items",
        sa.Column("id", sa.String(length=200), primary_key=True),
        _project_fk(),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("word_count", sa.Integer(), nullable=False),
        sa.Column("chapter_number", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=True),
        *_provenance(),
    )
    op.create_index("ix_imported_items_project_id", "imported_items", ["project_id"])
    op.create_index("ix_imported_items_user_id", "imported_items", ["user_id"])


def downgrade() -> None:
    for table in (
        "imported_items",
        "outline_nodes",
        "world_elements",
        "locations",
        "chapters",
        "plot_threads",
        "characters",
        "user_profiles",
        "projects",
    ):
        op.drop_table(table)
