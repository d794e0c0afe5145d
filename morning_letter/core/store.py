"""SQLite datastore for news items, letters and subscribers.

Every call is a whole-row read, insert or update on its own connection; there
are no multi-statement transactions, so concurrent edits are last-write-wins.
The one exception is the dispatch claim, which is a single conditional UPDATE.
"""

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import DatabaseError
from ..models.content import (
    NewsItem,
    Newsletter,
    NewsletterStatus,
    Subscriber,
    SubscriberStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS news_items (
    id TEXT PRIMARY KEY,
    source_url TEXT UNIQUE NOT NULL,
    source_name TEXT NOT NULL,
    title TEXT NOT NULL,
    original_summary TEXT,
    ai_summary TEXT,
    thumbnail_url TEXT,
    category TEXT NOT NULL,
    published_at TEXT,
    newsletter_id TEXT,
    is_selected INTEGER NOT NULL DEFAULT 0,
    display_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_news_newsletter ON news_items(newsletter_id);
CREATE INDEX IF NOT EXISTS idx_news_created ON news_items(created_at);

CREATE TABLE IF NOT EXISTS newsletters (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    letter_body TEXT NOT NULL DEFAULT '',
    curator_note TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    scheduled_at TEXT,
    sent_at TEXT,
    delivery_id TEXT,
    published_date TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    claim_token TEXT,
    claimed_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_newsletters_due ON newsletters(status, scheduled_at);

CREATE TABLE IF NOT EXISTS subscribers (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    name TEXT,
    phone TEXT,
    company TEXT,
    position TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    privacy_agreed INTEGER NOT NULL DEFAULT 0,
    privacy_agreed_at TEXT,
    subscribed_at TEXT NOT NULL,
    updated_at TEXT
);
"""

NEWS_COLUMNS = set(NewsItem.model_fields)
NEWSLETTER_COLUMNS = set(Newsletter.model_fields)
SUBSCRIBER_COLUMNS = set(Subscriber.model_fields)


def to_db(value: Any) -> Any:
    """Convert python values to their stored representation.

    Datetimes are stored as fixed-width UTC ISO strings so that string
    comparison in SQL matches time order. Naive datetimes are read as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if hasattr(value, "value"):
        return value.value
    return value


def new_id() -> str:
    return str(uuid.uuid4())


class Datastore:
    """Synchronous, authoritative store used by every service."""

    def __init__(self, db_path: str = "morning_letter.db"):
        self.db_path = Path(db_path)
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Database error on {self.db_path}: {e}")
            raise DatabaseError(f"Database error: {e}") from e
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: Tuple = ()) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    def _fetch_all(self, sql: str, params: Tuple = ()) -> List[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def _insert(self, table: str, values: Dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        with self._connect() as conn:
            conn.execute(
                f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
                tuple(to_db(v) for v in values.values()),
            )

    def _update(
        self, table: str, row_id: str, values: Dict[str, Any], allowed: set
    ) -> int:
        unknown = set(values) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")
        if not values:
            return 0
        assignments = ", ".join(f"{column} = ?" for column in values)
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                tuple(to_db(v) for v in values.values()) + (row_id,),
            )
            return cursor.rowcount

    @staticmethod
    def _where(filters: Dict[str, Any]) -> Tuple[str, Tuple]:
        clauses = []
        params: List[Any] = []
        for column, value in filters.items():
            if value is None:
                continue
            clauses.append(f"{column} = ?")
            params.append(to_db(value))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, tuple(params)

    # News items

    def insert_news_item(self, **fields: Any) -> Optional[NewsItem]:
        """Insert an item; returns None when its source_url is already stored."""
        values = {
            "id": new_id(),
            "is_selected": False,
            "display_order": 0,
            "created_at": utcnow(),
            **fields,
        }
        try:
            self._insert("news_items", values)
        except sqlite3.IntegrityError:
            logger.debug(f"Duplicate news item skipped: {fields.get('source_url')}")
            return None
        return NewsItem.model_validate(values)

    def get_news_item(self, item_id: str) -> Optional[NewsItem]:
        row = self._fetch_one("SELECT * FROM news_items WHERE id = ?", (item_id,))
        return NewsItem.model_validate(row) if row else None

    def get_news_item_by_url(self, source_url: str) -> Optional[NewsItem]:
        row = self._fetch_one(
            "SELECT * FROM news_items WHERE source_url = ?", (source_url,)
        )
        return NewsItem.model_validate(row) if row else None

    def list_news_items(
        self,
        category: Optional[str] = None,
        newsletter_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[NewsItem], int]:
        where, params = self._where(
            {"category": category, "newsletter_id": newsletter_id}
        )
        rows = self._fetch_all(
            f"SELECT * FROM news_items {where} "
            "ORDER BY created_at DESC LIMIT ? OFFSET ?",
            params + (limit, offset),
        )
        total = self._fetch_one(f"SELECT COUNT(*) AS n FROM news_items {where}", params)
        return [NewsItem.model_validate(r) for r in rows], total["n"]

    def recent_news_titles(self, limit: int = 5) -> List[str]:
        rows = self._fetch_all(
            "SELECT title FROM news_items ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [row["title"] for row in rows]

    def selected_news_items(self, newsletter_id: str) -> List[NewsItem]:
        rows = self._fetch_all(
            "SELECT * FROM news_items WHERE newsletter_id = ? AND is_selected = 1 "
            "ORDER BY display_order ASC, created_at ASC",
            (newsletter_id,),
        )
        return [NewsItem.model_validate(r) for r in rows]

    def news_items_for_newsletter(self, newsletter_id: str) -> List[NewsItem]:
        rows = self._fetch_all(
            "SELECT * FROM news_items WHERE newsletter_id = ? "
            "ORDER BY display_order ASC, created_at ASC",
            (newsletter_id,),
        )
        return [NewsItem.model_validate(r) for r in rows]

    def update_news_item(self, item_id: str, **fields: Any) -> Optional[NewsItem]:
        if not self._update("news_items", item_id, fields, NEWS_COLUMNS - {"id"}):
            return None
        return self.get_news_item(item_id)

    def clear_newsletter_links(self, newsletter_id: str) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE news_items SET newsletter_id = NULL, is_selected = 0 "
                "WHERE newsletter_id = ?",
                (newsletter_id,),
            )
            return cursor.rowcount

    def delete_news_item(self, item_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM news_items WHERE id = ?", (item_id,))
            return cursor.rowcount > 0

    # Newsletters

    def insert_newsletter(
        self,
        title: str,
        letter_body: str = "",
        curator_note: Optional[str] = None,
        published_date: Optional[date] = None,
    ) -> Newsletter:
        now = utcnow()
        values = {
            "id": new_id(),
            "title": title,
            "letter_body": letter_body or "",
            "curator_note": curator_note,
            "status": NewsletterStatus.DRAFT.value,
            "published_date": published_date or now.date(),
            "created_at": now,
            "updated_at": now,
        }
        self._insert("newsletters", values)
        return Newsletter.model_validate(values)

    def get_newsletter(self, newsletter_id: str) -> Optional[Newsletter]:
        row = self._fetch_one(
            "SELECT * FROM newsletters WHERE id = ?", (newsletter_id,)
        )
        return Newsletter.model_validate(row) if row else None

    def list_newsletters(
        self, status: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> Tuple[List[Newsletter], int]:
        where, params = self._where({"status": status})
        rows = self._fetch_all(
            f"SELECT * FROM newsletters {where} "
            "ORDER BY created_at DESC LIMIT ? OFFSET ?",
            params + (limit, offset),
        )
        total = self._fetch_one(
            f"SELECT COUNT(*) AS n FROM newsletters {where}", params
        )
        return [Newsletter.model_validate(r) for r in rows], total["n"]

    def update_newsletter(
        self, newsletter_id: str, **fields: Any
    ) -> Optional[Newsletter]:
        fields.setdefault("updated_at", utcnow())
        if not self._update(
            "newsletters", newsletter_id, fields, NEWSLETTER_COLUMNS - {"id"}
        ):
            return None
        return self.get_newsletter(newsletter_id)

    def delete_newsletter(self, newsletter_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM newsletters WHERE id = ?", (newsletter_id,)
            )
            return cursor.rowcount > 0

    def due_newsletters(self, now: datetime) -> List[Newsletter]:
        rows = self._fetch_all(
            "SELECT * FROM newsletters WHERE status = ? AND scheduled_at IS NOT NULL "
            "AND scheduled_at <= ? ORDER BY scheduled_at ASC",
            (NewsletterStatus.SCHEDULED.value, to_db(now)),
        )
        return [Newsletter.model_validate(r) for r in rows]

    def newsletter_status_counts(self) -> Dict[str, int]:
        rows = self._fetch_all(
            "SELECT status, COUNT(*) AS n FROM newsletters GROUP BY status"
        )
        return {row["status"]: row["n"] for row in rows}

    def claim_newsletter(
        self,
        newsletter_id: str,
        token: str,
        now: datetime,
        ttl_seconds: int,
        due_before: Optional[datetime] = None,
    ) -> bool:
        """Mark a letter as being dispatched unless someone else holds it.

        With ``due_before`` the letter must also still be scheduled at or
        before that time.
        """
        sql = (
            "UPDATE newsletters SET claim_token = ?, claimed_at = ? "
            "WHERE id = ? AND status != ? "
            "AND (claim_token IS NULL OR claimed_at < ?)"
        )
        params: Tuple = (
            token,
            to_db(now),
            newsletter_id,
            NewsletterStatus.SENT.value,
            to_db(now - timedelta(seconds=ttl_seconds)),
        )
        if due_before is not None:
            sql += " AND status = ? AND scheduled_at IS NOT NULL AND scheduled_at <= ?"
            params += (NewsletterStatus.SCHEDULED.value, to_db(due_before))
        with self._connect() as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount == 1

    def release_newsletter(self, newsletter_id: str, token: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE newsletters SET claim_token = NULL, claimed_at = NULL "
                "WHERE id = ? AND claim_token = ?",
                (newsletter_id, token),
            )

    def mark_newsletter_sent(
        self,
        newsletter_id: str,
        token: str,
        sent_at: datetime,
        delivery_id: Optional[str],
    ) -> Optional[Newsletter]:
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE newsletters SET status = ?, sent_at = ?, delivery_id = ?, "
                "scheduled_at = NULL, claim_token = NULL, claimed_at = NULL, "
                "updated_at = ? WHERE id = ? AND claim_token = ?",
                (
                    NewsletterStatus.SENT.value,
                    to_db(sent_at),
                    delivery_id,
                    to_db(utcnow()),
                    newsletter_id,
                    token,
                ),
            )
            if cursor.rowcount != 1:
                return None
        return self.get_newsletter(newsletter_id)

    # Subscribers

    def insert_subscriber(self, email: str, **fields: Any) -> Subscriber:
        values = {
            "id": new_id(),
            "email": email,
            "status": SubscriberStatus.ACTIVE.value,
            "privacy_agreed": False,
            "subscribed_at": utcnow(),
            **fields,
        }
        self._insert("subscribers", values)
        return Subscriber.model_validate(values)

    def get_subscriber(self, subscriber_id: str) -> Optional[Subscriber]:
        row = self._fetch_one(
            "SELECT * FROM subscribers WHERE id = ?", (subscriber_id,)
        )
        return Subscriber.model_validate(row) if row else None

    def get_subscriber_by_email(self, email: str) -> Optional[Subscriber]:
        row = self._fetch_one("SELECT * FROM subscribers WHERE email = ?", (email,))
        return Subscriber.model_validate(row) if row else None

    def update_subscriber(
        self, subscriber_id: str, **fields: Any
    ) -> Optional[Subscriber]:
        fields.setdefault("updated_at", utcnow())
        if not self._update(
            "subscribers", subscriber_id, fields, SUBSCRIBER_COLUMNS - {"id"}
        ):
            return None
        return self.get_subscriber(subscriber_id)

    def delete_subscriber(self, subscriber_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM subscribers WHERE id = ?", (subscriber_id,)
            )
            return cursor.rowcount > 0

    def list_subscribers(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Subscriber], int]:
        where, params = self._where({"status": status})
        if search:
            clause = "(email LIKE ? OR name LIKE ? OR company LIKE ?)"
            where = f"{where} AND {clause}" if where else f"WHERE {clause}"
            params = params + (f"%{search}%",) * 3
        rows = self._fetch_all(
            f"SELECT * FROM subscribers {where} "
            "ORDER BY subscribed_at DESC LIMIT ? OFFSET ?",
            params + (limit, offset),
        )
        total = self._fetch_one(
            f"SELECT COUNT(*) AS n FROM subscribers {where}", params
        )
        return [Subscriber.model_validate(r) for r in rows], total["n"]

    def active_subscribers(self) -> List[Subscriber]:
        rows = self._fetch_all(
            "SELECT * FROM subscribers WHERE status = ? "
            "ORDER BY subscribed_at ASC, rowid ASC",
            (SubscriberStatus.ACTIVE.value,),
        )
        return [Subscriber.model_validate(r) for r in rows]

    def subscriber_status_counts(self) -> Dict[str, int]:
        rows = self._fetch_all(
            "SELECT status, COUNT(*) AS n FROM subscribers GROUP BY status"
        )
        return {row["status"]: row["n"] for row in rows}
