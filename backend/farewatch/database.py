from sqlalchemy import create_engine, text, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from farewatch.config import get_settings
import logging
import os

logger = logging.getLogger(__name__)
settings = get_settings()

db_url = settings.database_url

if db_url.startswith("postgres://"):
    db_url = db_url.replace("postgres://", "postgresql+psycopg2://", 1)

_is_sqlite = db_url.startswith("sqlite")

if _is_sqlite:
    _db_path = make_url(db_url).database
    if _db_path and _db_path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(_db_path)), exist_ok=True)

engine = create_engine(
    db_url,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    pool_pre_ping=not _is_sqlite,
)


# Without this, ON DELETE CASCADE doesn't work on SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if not _is_sqlite:
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _sqlite_col_type(col) -> str:
    """Convert a SQLAlchemy column type to a SQLite type string."""
    type_name = type(col.type).__name__
    type_map = {
        "Integer": "INTEGER",
        "Float": "REAL",
        "Numeric": "NUMERIC",
        "Boolean": "BOOLEAN",
        "Date": "DATE",
        "DateTime": "DATETIME",
        "Text": "TEXT",
        "String": f"VARCHAR({col.type.length})" if getattr(col.type, "length", None) else "TEXT",
        "Enum": "VARCHAR(50)",
    }
    return type_map.get(type_name, "TEXT")


def _sqlite_default(col) -> str:
    """Extract a DEFAULT clause from a SQLAlchemy column, or empty string."""
    if col.default is not None and col.default.arg is not None:
        val = col.default.arg
        if callable(val):
            return ""
        if isinstance(val, bool):
            return f" DEFAULT {1 if val else 0}"
        if isinstance(val, (int, float)):
            return f" DEFAULT {val}"
        if isinstance(val, str):
            escaped = val.replace("'", "''")
            return f" DEFAULT '{escaped}'"
        if hasattr(val, "value"):
            escaped = str(val.value).replace("'", "''")
            return f" DEFAULT '{escaped}'"
    return ""


def _sqlite_default_for_type(col_type: str) -> str:
    """Provide a safe default for NOT NULL columns without explicit defaults."""
    if "INT" in col_type:
        return " DEFAULT 0"
    if col_type in ("REAL", "NUMERIC"):
        return " DEFAULT 0"
    if col_type == "BOOLEAN":
        return " DEFAULT 0"
    return " DEFAULT ''"


def ensure_sqlite_columns(bind=None):
    """Add any missing columns to SQLite tables.

    Compares the live tables against model metadata and issues
    ALTER TABLE ADD COLUMN for anything new. Only additive changes are handled.
    """
    bind = bind or engine
    added = 0
    with bind.connect() as conn:
        for table in Base.metadata.sorted_tables:
            result = conn.execute(text(f"PRAGMA table_info({table.name})")).fetchall()
            existing_cols = {r[1] for r in result}
            if not existing_cols:
                continue

            for col in table.columns:
                if col.name in existing_cols:
                    continue

                col_type = _sqlite_col_type(col)
                nullable = "" if col.nullable else " NOT NULL"
                default = _sqlite_default(col)

                # NOT NULL without DEFAULT is invalid for ALTER TABLE ADD COLUMN in SQLite
                if nullable == " NOT NULL" and not default:
                    default = _sqlite_default_for_type(col_type)

                ddl = f"ALTER TABLE {table.name} ADD COLUMN {col.name} {col_type}{nullable}{default}"
                conn.execute(text(ddl))
                logger.info(f"Added column {table.name}.{col.name}")
                added += 1

        conn.commit()

    if added:
        logger.info(f"Schema migration: added {added} column(s)")
