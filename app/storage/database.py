"""
Database engine, session factory and start-up initialisation.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Tuple

from sqlalchemy import create_engine, event, inspect, text, update
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from .orm import Base, KnowledgePoint

logger = logging.getLogger(__name__)

# Columns added after the first release: (table, column, DDL type + default)
ADDITIVE_COLUMNS: List[Tuple[str, str, str]] = [
    ("learning_topics", "is_demo", "BOOLEAN DEFAULT 0"),
    ("knowledge_points", "is_demo", "BOOLEAN DEFAULT 0"),
    ("tags", "is_demo", "BOOLEAN DEFAULT 0"),
    ("knowledge_points", "summary", "TEXT"),
    ("learning_topics", "ai_summary", "TEXT"),
    ("learning_topics", "total_learning_minutes", "INTEGER DEFAULT 0"),
    ("learning_topics", "first_study_at", "TIMESTAMP"),
    ("learning_topics", "last_study_at", "TIMESTAMP"),
    ("knowledge_points", "study_duration_minutes", "INTEGER DEFAULT 0"),
    ("knowledge_points", "tag_ids", "JSON"),
]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # ON DELETE SET NULL / CASCADE are ignored by SQLite without this
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the SQLAlchemy engine and hands out sessions."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        connect_args = {}
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            # Sessions are used from request threads and analysis threads
            connect_args["check_same_thread"] = False
            if parsed.database and parsed.database != ":memory:":
                Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
        if parsed.get_backend_name() == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self) -> None:
        """Create missing tables, add missing columns and recover stale jobs."""
        Base.metadata.create_all(self.engine)
        added = self._add_missing_columns()
        recovered = self.recover_interrupted_jobs()
        logger.info(
            "Database ready at %s (added columns: %d, recovered jobs: %d)",
            self.engine.url.render_as_string(hide_password=True), added, recovered,
        )

    def _add_missing_columns(self) -> int:
        inspector = inspect(self.engine)
        tables = set(inspector.get_table_names())
        added = 0
        with self.engine.begin() as conn:
            for table, column, ddl in ADDITIVE_COLUMNS:
                if table not in tables:
                    continue
                existing = {c["name"] for c in inspector.get_columns(table)}
                if column in existing:
                    continue
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
                logger.info("Added column %s.%s", table, column)
                added += 1
        return added

    def recover_interrupted_jobs(self) -> int:
        """Mark notes left in ``processing`` by a previous run as ``failed``."""
        with self.session_scope() as session:
            result = session.execute(
                update(KnowledgePoint)
                .where(KnowledgePoint.processing_status == "processing")
                .values(processing_status="failed")
            )
            count = result.rowcount or 0
        if count:
            logger.warning("Marked %d interrupted analysis jobs as failed", count)
        return count

    def dispose(self) -> None:
        self.engine.dispose()
