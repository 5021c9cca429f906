"""
SQLite-based template store.

Provides persistent storage of learned counterparty templates.
"""

import sqlite3
import json
from datetime import datetime, UTC
from typing import Optional
from loguru import logger

from ...models.invoice import PositionedFragment, Template
from ..template_learner import learn_template
from .template_store_base import TemplateStoreBase


class SQLiteTemplateStore(TemplateStoreBase):
    """
    SQLite-backed template store with persistent storage.

    Learning runs inside a ``BEGIN IMMEDIATE`` transaction, so concurrent
    learners on the same database file are serialized by SQLite's write lock.
    """

    def __init__(self, db_path: str = "templates.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: templates.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create templates table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS templates (
                key TEXT PRIMARY KEY,
                template TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _read(cursor: sqlite3.Cursor, key: str) -> Optional[Template]:
        cursor.execute("SELECT template FROM templates WHERE key = ?", (key,))
        row = cursor.fetchone()
        if row is None:
            return None
        return Template.from_record(json.loads(row["template"]))

    @staticmethod
    def _write(cursor: sqlite3.Cursor, key: str, template: Template) -> None:
        cursor.execute("""
            INSERT INTO templates (key, template, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                template = excluded.template,
                updated_at = excluded.updated_at
        """, (key, json.dumps(template.to_record()), datetime.now(UTC).isoformat()))

    def get(self, key: str) -> Optional[Template]:
        conn = self._get_connection()
        try:
            return self._read(conn.cursor(), key)
        finally:
            conn.close()

    def save(self, key: str, template: Template) -> None:
        conn = self._get_connection()
        try:
            self._write(conn.cursor(), key, template)
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("DELETE FROM templates WHERE key = ?", (key,))

        rows_affected = cursor.rowcount
        conn.commit()
        conn.close()

        return rows_affected > 0

    def list_keys(self) -> list:
        """
        List all identity keys, alphabetically.

        Returns:
            List of key strings
        """
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT key FROM templates ORDER BY key")

        rows = cursor.fetchall()
        conn.close()

        return [row["key"] for row in rows]

    def learn(
        self,
        fragments: list[PositionedFragment],
        image_width: int,
        image_height: int,
        confirmed: dict,
        identity_keys: list[str],
    ) -> Optional[dict[str, Template]]:
        conn = self._get_connection()
        conn.isolation_level = None
        cursor = conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            existing = None
            for key in identity_keys:
                if key and key.strip():
                    existing = self._read(cursor, key.strip())
                    if existing is not None:
                        break

            learned = learn_template(
                fragments, image_width, image_height, confirmed, identity_keys, existing
            )
            if learned is None:
                cursor.execute("ROLLBACK")
                return None

            for key, template in learned.items():
                self._write(cursor, key, template)
            cursor.execute("COMMIT")
            logger.debug("Templates persisted", keys=list(learned))
            return learned
        except Exception:
            if conn.in_transaction:
                cursor.execute("ROLLBACK")
            raise
        finally:
            conn.close()
