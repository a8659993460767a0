"""
Saved item store using SQLite.

The item store is the source of truth for:
- Item identity (integer ids, assigned here, never reused)
- Page metadata (url, title, note, timestamps)
- Enrichment output (summary, tags, intent, entities)
- User edits (rating, tags, summary)

Secondary lookups (url, title, tag, saved_at) are indexed but the
retrieval pipeline does not use them: it loads every item and filters
in memory. A store holds at most a few thousand items.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from .errors import NotFoundOrStorageFailure, StorageFailure
from .types import SavedItem, Summary

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

_ITEM_COLUMNS = (
    "id, url, title, saved_at, tldr, key_points, tags_json, "
    "intent, entities_json, note, rating, enhanced_at"
)


def _row_to_item(row: sqlite3.Row) -> SavedItem:
    return SavedItem(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        saved_at=row["saved_at"],
        summary=Summary(tldr=row["tldr"], key_points=row["key_points"]),
        tags=json.loads(row["tags_json"]),
        intent=row["intent"],
        entities=json.loads(row["entities_json"]),
        note=row["note"],
        rating=row["rating"],
        enhanced_at=row["enhanced_at"],
    )


def _item_values(item: SavedItem) -> tuple[Any, ...]:
    """Column values for an item, excluding id."""
    return (
        item.url,
        item.title or "",
        int(item.saved_at),
        item.summary.tldr or "",
        item.summary.key_points or "",
        json.dumps(list(item.tags), ensure_ascii=False),
        item.intent or "",
        json.dumps(list(item.entities), ensure_ascii=False),
        item.note or "",
        float(item.rating),
        int(item.enhanced_at),
    )


class ItemStore:
    """
    SQLite-backed store for saved items.

    Each mutation (add, update, remove) is one transaction touching one
    record and its tag index rows. There are no multi-record transactions
    and no write guard: two writers on the same id are last-write-wins.

    The connection is shared across threads (``asyncio.to_thread`` workers)
    and serialized with a lock.
    """

    def __init__(self, store_path: Path):
        """
        Args:
            store_path: Path to SQLite database file

        Raises:
            StorageFailure: If the database cannot be opened or was
                written by a newer schema version.
        """
        self._db_path = Path(store_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        try:
            self._init_db()
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise StorageFailure(f"Cannot open item store at {self._db_path}: {e}") from e

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        version = self._conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise sqlite3.DatabaseError(
                f"schema version {version} is newer than supported ({SCHEMA_VERSION})"
            )

        # AUTOINCREMENT so ids of deleted items are never handed out again
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                url TEXT NOT NULL,
                title TEXT NOT NULL DEFAULT '',
                saved_at INTEGER NOT NULL,
                tldr TEXT NOT NULL DEFAULT '',
                key_points TEXT NOT NULL DEFAULT '',
                tags_json TEXT NOT NULL DEFAULT '[]',
                intent TEXT NOT NULL DEFAULT '',
                entities_json TEXT NOT NULL DEFAULT '[]',
                note TEXT NOT NULL DEFAULT '',
                rating REAL NOT NULL DEFAULT 0,
                enhanced_at INTEGER NOT NULL DEFAULT 0
            )
        """)

        # Multi-valued tag index
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS item_tags (
                item_id INTEGER NOT NULL,
                position INTEGER NOT NULL,
                tag TEXT NOT NULL,
                PRIMARY KEY (item_id, position)
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS preferences (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL
            )
        """)

        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_items_url ON items(url)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_items_title ON items(title)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_items_saved_at ON items(saved_at)")
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_item_tags_tag ON item_tags(tag)")

        self._conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        self._conn.commit()

    @property
    def path(self) -> Path:
        return self._db_path

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageFailure("Item store is closed")
        return self._conn

    def _write_tags(self, conn: sqlite3.Connection, item_id: int, tags: list[str]) -> None:
        conn.execute("DELETE FROM item_tags WHERE item_id = ?", (item_id,))
        conn.executemany(
            "INSERT INTO item_tags (item_id, position, tag) VALUES (?, ?, ?)",
            [(item_id, i, tag) for i, tag in enumerate(tags)],
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add(self, item: SavedItem) -> SavedItem:
        """
        Insert a new item and assign its id.

        Any id already on ``item`` is ignored.

        Returns:
            A copy of the item carrying the assigned id

        Raises:
            StorageFailure: If the write is rejected
        """
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute("""
                        INSERT INTO items
                        (url, title, saved_at, tldr, key_points, tags_json,
                         intent, entities_json, note, rating, enhanced_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, _item_values(item))
                    new_id = cursor.lastrowid
                    self._write_tags(conn, new_id, list(item.tags))
            except sqlite3.Error as e:
                raise StorageFailure(f"Failed to add item for {item.url}: {e}") from e

        logger.info("Added item %d: %s", new_id, item.url)
        return item.copy(id=new_id)

    def update(self, item: SavedItem) -> SavedItem:
        """
        Replace the full record stored under ``item.id``.

        This is a whole-record overwrite, not a merge: every field of the
        stored record takes the value on ``item``. Used with an id that
        does not exist yet it creates the record.

        Raises:
            NotFoundOrStorageFailure: If the item has no id or the write
                is rejected
        """
        if item.id is None:
            raise NotFoundOrStorageFailure("Cannot update an item without an id")

        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute("""
                        INSERT OR REPLACE INTO items
                        (id, url, title, saved_at, tldr, key_points, tags_json,
                         intent, entities_json, note, rating, enhanced_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """, (item.id, *_item_values(item)))
                    self._write_tags(conn, item.id, list(item.tags))
            except sqlite3.Error as e:
                raise NotFoundOrStorageFailure(
                    f"Failed to update item {item.id}: {e}"
                ) from e

        logger.debug("Updated item %d", item.id)
        return item

    def remove(self, id: int) -> bool:
        """
        Delete an item and its tag index rows.

        Idempotent: removing an unknown id is a no-op.

        Returns:
            True if an item existed and was deleted

        Raises:
            StorageFailure: If the write is rejected
        """
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute("DELETE FROM items WHERE id = ?", (id,))
                    conn.execute("DELETE FROM item_tags WHERE item_id = ?", (id,))
            except sqlite3.Error as e:
                raise StorageFailure(f"Failed to remove item {id}: {e}") from e

        removed = cursor.rowcount > 0
        if removed:
            logger.info("Removed item %d", id)
        return removed

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def _query(self, sql: str, params: tuple = ()) -> list[SavedItem]:
        with self._lock:
            conn = self._connection()
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise StorageFailure(f"Item store read failed: {e}") from e
        return [_row_to_item(row) for row in rows]

    def get_all(self) -> list[SavedItem]:
        """Return every stored item. Callers must not rely on the order."""
        return self._query(f"SELECT {_ITEM_COLUMNS} FROM items")

    def get(self, id: int) -> Optional[SavedItem]:
        """Get an item by id, or None."""
        items = self._query(f"SELECT {_ITEM_COLUMNS} FROM items WHERE id = ?", (id,))
        return items[0] if items else None

    def find_by_url(self, url: str) -> list[SavedItem]:
        """Items saved from exactly this URL."""
        return self._query(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE url = ? ORDER BY id", (url,)
        )

    def find_by_title(self, title: str) -> list[SavedItem]:
        """Items whose title is exactly ``title``."""
        return self._query(
            f"SELECT {_ITEM_COLUMNS} FROM items WHERE title = ? ORDER BY id", (title,)
        )

    def find_by_tag(self, tag: str) -> list[SavedItem]:
        """Items carrying ``tag`` (matched case-insensitively)."""
        return self._query(f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE id IN (SELECT item_id FROM item_tags WHERE tag = ?)
            ORDER BY id
        """, (tag.strip().lower(),))

    def find_saved_between(self, start_ms: int, end_ms: int) -> list[SavedItem]:
        """Items with ``start_ms <= saved_at < end_ms``, oldest first."""
        return self._query(f"""
            SELECT {_ITEM_COLUMNS} FROM items
            WHERE saved_at >= ? AND saved_at < ?
            ORDER BY saved_at, id
        """, (start_ms, end_ms))

    def count(self) -> int:
        """Number of stored items."""
        with self._lock:
            conn = self._connection()
            try:
                return conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
            except sqlite3.Error as e:
                raise StorageFailure(f"Item store read failed: {e}") from e

    # -------------------------------------------------------------------------
    # Keyed settings (used by PreferenceStore)
    # -------------------------------------------------------------------------

    def read_setting(self, key: str) -> Optional[str]:
        """Raw JSON text stored under ``key``, or None."""
        with self._lock:
            conn = self._connection()
            try:
                row = conn.execute(
                    "SELECT value_json FROM preferences WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageFailure(f"Settings read failed: {e}") from e
        return row["value_json"] if row else None

    def write_setting(self, key: str, value_json: str) -> None:
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        "INSERT OR REPLACE INTO preferences (key, value_json) VALUES (?, ?)",
                        (key, value_json),
                    )
            except sqlite3.Error as e:
                raise StorageFailure(f"Settings write failed: {e}") from e

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        try:
            self.close()
        except Exception:
            pass  # Suppress errors during garbage collection
