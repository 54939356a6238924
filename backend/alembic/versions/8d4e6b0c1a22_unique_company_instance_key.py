"""enforce globally unique company instance keys

Revision ID: 8d4e6b0c1a22
Revises: 3f1c2a9d7b10
Create Date: 2026-09-28
"""

from alembic import op
from sqlalchemy import text

# revision identifiers, used by Alembic.
revision = "8d4e6b0c1a22"
down_revision = "3f1c2a9d7b10"
branch_labels = None
depends_on = None

INDEX_NAME = "ix_company_instances_instance_key"


def upgrade() -> None:
    # Keep the oldest holder of a duplicated key; rename the others so the
    # unique index can be built.
    op.execute(
        text(
            """
            UPDATE company_instances AS ci
            SET instance_key = ci.instance_key || '_' || ci.company_id || '_' || ci.id
            WHERE EXISTS (
                SELECT 1 FROM company_instances AS older
                WHERE older.instance_key = ci.instance_key
                  AND older.id < ci.id
            )
            """
        )
    )

    op.execute(text(f"DROP INDEX IF EXISTS {INDEX_NAME}"))
    op.create_index(INDEX_NAME, "company_instances", ["instance_key"], unique=True)


def downgrade() -> None:
    op.drop_index(INDEX_NAME, table_name="company_instances")
    op.create_index(INDEX_NAME, "company_instances", ["instance_key"], unique=False)
