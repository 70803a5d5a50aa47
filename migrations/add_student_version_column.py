"""
Add optimistic concurrency support to the students table

Migration to add:
- version (row version used by SQLAlchemy's version_id_col)
- board_id index

Existing rows start at version 1.

Run with: python migrations/add_student_version_column.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect, text

from projecthub.database import engine


def upgrade():
    """Add version column and board index"""
    inspector = inspect(engine)
    if "students" not in inspector.get_table_names():
        print("ℹ️  students table does not exist yet, create_all will build it")
        return

    existing_columns = {col["name"] for col in inspector.get_columns("students")}
    existing_indexes = {idx["name"] for idx in inspector.get_indexes("students")}

    with engine.begin() as conn:
        if "version" not in existing_columns:
            conn.execute(text("ALTER TABLE students ADD COLUMN version INTEGER NOT NULL DEFAULT 1"))
            print("✅ Added version column")
        else:
            print("ℹ️  version column already exists")

        if "ix_students_board_id" not in existing_indexes:
            conn.execute(text("CREATE INDEX ix_students_board_id ON students (board_id)"))
            print("✅ Added ix_students_board_id index")
        else:
            print("ℹ️  ix_students_board_id index already exists")

    print("✅ Migration completed successfully")


def downgrade():
    """Remove version column and board index"""
    with engine.begin() as conn:
        conn.execute(text("DROP INDEX IF EXISTS ix_students_board_id"))
        conn.execute(text("ALTER TABLE students DROP COLUMN IF EXISTS version"))
        print("✅ Removed version column and board index")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "downgrade":
        downgrade()
    else:
        upgrade()
