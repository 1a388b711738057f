"""
Automatic database migration system.
Compares SQLAlchemy models with the live schema and adds missing columns.
"""
import logging
from typing import Optional
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from points_tracker.database import engine, Base
from points_tracker import models  # noqa: F401  register models with Base

logger = logging.getLogger("points_tracker.migrations")


def sqlalchemy_type_to_sqlite(sa_type) -> str:
    """Convert SQLAlchemy type to SQLite type"""
    sa_type_upper = str(sa_type).upper()

    if 'INTEGER' in sa_type_upper or 'BIGINT' in sa_type_upper:
        return 'INTEGER'
    elif 'VARCHAR' in sa_type_upper or 'TEXT' in sa_type_upper or 'STRING' in sa_type_upper:
        return 'TEXT'
    elif 'NUMERIC' in sa_type_upper or 'DECIMAL' in sa_type_upper:
        return 'NUMERIC'
    elif 'FLOAT' in sa_type_upper or 'REAL' in sa_type_upper:
        return 'REAL'
    elif 'BOOLEAN' in sa_type_upper:
        return 'INTEGER'  # SQLite stores booleans as integers
    elif 'DATE' in sa_type_upper or 'TIME' in sa_type_upper:
        return 'TEXT'  # SQLite stores dates as text
    else:
        return 'TEXT'


def get_default_value(column) -> str:
    """Get default value for a column in SQL format"""
    default = column.default
    if default is None or not hasattr(default, 'arg'):
        return 'NULL'

    value = default.arg

    # Callable defaults (datetime.now) are applied by the ORM on insert;
    # SQLite rejects non-constant defaults in ALTER TABLE
    if callable(value):
        return 'NULL'

    if isinstance(value, bool):
        return '1' if value else '0'
    elif isinstance(value, (int, float)):
        return str(value)
    elif isinstance(value, str):
        escaped = value.replace("'", "''")
        return f"'{escaped}'"
    elif hasattr(value, 'is_finite'):
        return str(value)  # Decimal
    return 'NULL'


def build_add_column_sql(table_name: str, column) -> str:
    """ALTER TABLE statement for one missing column"""
    default_value = get_default_value(column)
    alter_sql = (
        f"ALTER TABLE {table_name} ADD COLUMN {column.name} "
        f"{sqlalchemy_type_to_sqlite(column.type)}"
    )

    if default_value != 'NULL':
        alter_sql += f" DEFAULT {default_value}"

        # SQLite requires a default for NOT NULL columns in ALTER TABLE
        if not column.nullable:
            alter_sql += " NOT NULL"

    return alter_sql


def auto_migrate(bind: Optional[Engine] = None) -> int:
    """
    Add columns that exist in the models but not in the database.

    Tables that don't exist yet are skipped; create them with init_db().

    Returns:
        Number of columns added
    """
    bind = bind or engine
    logger.info("Starting automatic schema migration...")

    inspector = inspect(bind)
    existing_tables = inspector.get_table_names()

    # Collect missing columns before changing anything
    missing = []
    for table_name, table in Base.metadata.tables.items():
        if table_name not in existing_tables:
            logger.warning(f"Table '{table_name}' doesn't exist. Run init_db() first.")
            continue

        existing_columns = {col['name'] for col in inspector.get_columns(table_name)}
        missing.extend(
            (table_name, column) for column in table.columns
            if column.name not in existing_columns
        )

    migrations_applied = 0
    with bind.begin() as conn:
        for table_name, column in missing:
            alter_sql = build_add_column_sql(table_name, column)
            logger.info(f"Adding column '{column.name}' to table '{table_name}'")
            logger.debug(f"SQL: {alter_sql}")

            try:
                conn.execute(text(alter_sql))
            except SQLAlchemyError as e:
                logger.error(f"Failed to add column {table_name}.{column.name}: {e}")
                raise
            migrations_applied += 1

    if migrations_applied > 0:
        logger.info(f"Migration completed: {migrations_applied} column(s) added")
    else:
        logger.info("Schema is up to date - no migrations needed")

    return migrations_applied


if __name__ == "__main__":
    # Allow running as standalone script
    logging.basicConfig(level=logging.INFO)
    auto_migrate()
