"""add company lifecycle columns

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-09-28
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "companies",
        sa.Column(
            "operational_profile",
            sa.String(length=20),
            nullable=False,
            server_default=sa.text("'GENERIC'"),
        ),
    )
    op.add_column("companies", sa.Column("evolution_url", sa.String(length=500), nullable=True))
    op.add_column("companies", sa.Column("seed_completed_at", sa.DateTime(timezone=True), nullable=True))

    # Backfill profiles for existing companies (same priority as the API)
    op.execute(
        """
        UPDATE companies SET operational_profile = CASE
            WHEN operation_type = 'pacientes' OR lower(category) = 'clinica' THEN 'CLINICA'
            WHEN operation_type = 'loja' OR lower(category) = 'loja' THEN 'LOJA'
            WHEN operation_type = 'restaurante' OR lower(category) = 'restaurante' THEN 'RESTAURANTE'
            WHEN operation_type = 'lavajato' OR lower(category) = 'lavajato' THEN 'LAVAJATO'
            WHEN operation_type = 'motoristas' OR lower(category) = 'transporte' THEN 'TRANSPORTE'
            ELSE 'GENERIC'
        END
        """
    )

    # Companies created before this migration already have their baseline data
    op.execute("UPDATE companies SET seed_completed_at = created_at WHERE seed_completed_at IS NULL")

    op.alter_column("companies", "operational_profile", server_default=None)


def downgrade() -> None:
    op.drop_column("companies", "seed_completed_at")
    op.drop_column("companies", "evolution_url")
    op.drop_column("companies", "operational_profile")
