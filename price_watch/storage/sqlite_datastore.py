# price_watch/storage/sqlite_datastore.py

"""SQLite-backed datastore for tracked products, price history and alerts."""

import logging
import re
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from price_watch.config.settings import Settings
from price_watch.errors import DatastoreError
from price_watch.models.alert import Alert
from price_watch.models.price_point import PricePoint
from price_watch.models.product import Product
from price_watch.storage.datastore import Datastore

logger = logging.getLogger("price_watch.datastore")

# Amazon tracking params that vary per session
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "ref", "ref_", "dib", "dib_tag", "qid", "sr", "spc",
    "sp_csd", "xpid", "aref", "sp_cr", "psc", "crid",
    "keywords", "pd_rd_i", "pd_rd_r", "pd_rd_w",
    "pd_rd_wg", "pf_rd_i", "pf_rd_m", "pf_rd_p",
    "pf_rd_r", "pf_rd_s", "pf_rd_t", "th", "tag",
    "linkcode", "camp", "creative", "sprefix",
})

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS products (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    asin            TEXT    NOT NULL UNIQUE,
    url             TEXT    NOT NULL,
    title           TEXT    NOT NULL,
    current_price   REAL,
    image_url       TEXT,
    is_active       INTEGER NOT NULL DEFAULT 1,
    last_checked_at TEXT,
    created_at      TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS price_history (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL
               REFERENCES products(id) ON DELETE CASCADE,
    price      REAL    NOT NULL,
    checked_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_product_date
    ON price_history(product_id, checked_at);

CREATE TABLE IF NOT EXISTS alerts (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id      INTEGER NOT NULL
                    REFERENCES products(id) ON DELETE CASCADE,
    user_email      TEXT    NOT NULL,
    target_price    REAL,
    use_prediction  INTEGER NOT NULL DEFAULT 0,
    predicted_price REAL,
    is_active       INTEGER NOT NULL DEFAULT 1,
    notified_at     TEXT,
    created_at      TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_alerts_product
    ON alerts(product_id, is_active);
"""

_PRODUCT_COLUMNS = (
    "id, asin, url, title, current_price, image_url, "
    "is_active, last_checked_at, created_at"
)

_ALERT_COLUMNS = (
    "id, product_id, user_email, target_price, use_prediction, "
    "predicted_price, is_active, notified_at, created_at"
)


def normalize_url(raw_url: str) -> str:
    """Strip tracking/session query params to get a stable product URL."""
    parsed = urlparse(raw_url)

    # Strip Amazon path-based tracking (e.g. /ref=sr_1_243)
    path = re.sub(r"/ref=[^/]*", "", parsed.path)

    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    return urlunparse((
        parsed.scheme,
        parsed.netloc,
        path,
        parsed.params,
        new_query,
        "",  # drop fragment
    ))


def _to_db_time(value: datetime) -> str:
    """Serialise a datetime as sortable UTC ISO-8601 text."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(
        timespec="microseconds"
    )


def _from_db_time(value: str | None) -> datetime | None:
    """Parse text written by :func:`_to_db_time`."""
    return datetime.fromisoformat(value) if value else None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=row["id"],
        asin=row["asin"],
        url=row["url"],
        title=row["title"],
        current_price=row["current_price"],
        image_url=row["image_url"],
        is_active=bool(row["is_active"]),
        last_checked_at=_from_db_time(row["last_checked_at"]),
        created_at=_from_db_time(row["created_at"]),
    )


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        id=row["id"],
        product_id=row["product_id"],
        user_email=row["user_email"],
        target_price=row["target_price"],
        use_prediction=bool(row["use_prediction"]),
        predicted_price=row["predicted_price"],
        is_active=bool(row["is_active"]),
        notified_at=_from_db_time(row["notified_at"]),
        created_at=_from_db_time(row["created_at"]),
    )


class SqliteDatastore(Datastore):
    """SQLite-backed store for products, price points and alerts."""

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = sqlite3.connect(
                str(path), check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise DatastoreError(
                f"Cannot open datastore at {path}: {exc}"
            ) from exc
        logger.debug("SqliteDatastore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Commit on success; roll back and wrap sqlite errors."""
        try:
            yield self._conn
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            logger.error(
                "Datastore %s failed: %s", operation, exc,
            )
            raise DatastoreError(f"{operation} failed: {exc}") from exc

    # ── Check-cycle operations ───────────────────────────

    def list_active_products(self) -> list[Product]:
        with self._guard("list_active_products") as conn:
            rows = conn.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products "
                "WHERE is_active = 1 ORDER BY id ASC",
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    def append_price_point(
        self, product_id: int, price: float, when: datetime,
    ) -> PricePoint:
        with self._guard("append_price_point") as conn:
            cur = conn.execute(
                "INSERT INTO price_history "
                "(product_id, price, checked_at) VALUES (?, ?, ?)",
                (product_id, price, _to_db_time(when)),
            )
        return PricePoint(
            id=cur.lastrowid,
            product_id=product_id,
            price=price,
            checked_at=when,
        )

    def update_product(
        self,
        product_id: int,
        current_price: float,
        last_checked_at: datetime,
    ) -> None:
        with self._guard("update_product") as conn:
            cur = conn.execute(
                "UPDATE products SET current_price = ?, "
                "last_checked_at = ? WHERE id = ?",
                (current_price, _to_db_time(last_checked_at), product_id),
            )
        if cur.rowcount == 0:
            raise KeyError(product_id)

    def list_price_history(self, product_id: int) -> list[PricePoint]:
        with self._guard("list_price_history") as conn:
            rows = conn.execute(
                "SELECT id, product_id, price, checked_at "
                "FROM price_history WHERE product_id = ? "
                "ORDER BY checked_at ASC, id ASC",
                (product_id,),
            ).fetchall()
        return [
            PricePoint(
                id=r["id"],
                product_id=r["product_id"],
                price=r["price"],
                checked_at=datetime.fromisoformat(r["checked_at"]),
            )
            for r in rows
        ]

    def list_active_alerts(self, product_id: int) -> list[Alert]:
        with self._guard("list_active_alerts") as conn:
            rows = conn.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts "
                "WHERE product_id = ? AND is_active = 1 "
                "ORDER BY id ASC",
                (product_id,),
            ).fetchall()
        return [_row_to_alert(r) for r in rows]

    def update_alert(
        self,
        alert_id: int,
        predicted_price: float | None = None,
        notified_at: datetime | None = None,
    ) -> None:
        assignments: list[str] = []
        values: list[object] = []
        if predicted_price is not None:
            assignments.append("predicted_price = ?")
            values.append(predicted_price)
        if notified_at is not None:
            assignments.append("notified_at = ?")
            values.append(_to_db_time(notified_at))
        if not assignments:
            return

        with self._guard("update_alert") as conn:
            cur = conn.execute(
                f"UPDATE alerts SET {', '.join(assignments)} "
                "WHERE id = ?",
                (*values, alert_id),
            )
        if cur.rowcount == 0:
            raise KeyError(alert_id)

    # ── Registration / read side ─────────────────────────

    def add_product(
        self,
        asin: str,
        url: str,
        title: str,
        current_price: float | None,
        image_url: str | None,
        last_checked_at: datetime | None,
    ) -> Product:
        created_at = _utcnow()
        with self._guard("add_product") as conn:
            cur = conn.execute(
                "INSERT INTO products "
                "(asin, url, title, current_price, image_url, "
                " last_checked_at, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    asin,
                    normalize_url(url),
                    title,
                    current_price,
                    image_url,
                    _to_db_time(last_checked_at) if last_checked_at else None,
                    _to_db_time(created_at),
                ),
            )
        product = (
            self.get_product(cur.lastrowid)
            if cur.lastrowid is not None
            else None
        )
        if product is None:
            raise DatastoreError(f"add_product could not read back {asin}")
        logger.info("Added product %s (id=%d)", asin, product.id)
        return product

    def add_alert(
        self,
        product_id: int,
        user_email: str,
        target_price: float | None,
        use_prediction: bool,
    ) -> Alert:
        created_at = _utcnow()
        with self._guard("add_alert") as conn:
            cur = conn.execute(
                "INSERT INTO alerts "
                "(product_id, user_email, target_price, "
                " use_prediction, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    product_id,
                    user_email,
                    target_price,
                    int(use_prediction),
                    _to_db_time(created_at),
                ),
            )
        if cur.lastrowid is None:
            raise DatastoreError(
                f"add_alert got no row id for product {product_id}"
            )
        logger.info(
            "Added alert for product %d -> %s", product_id, user_email,
        )
        return Alert(
            id=cur.lastrowid,
            product_id=product_id,
            user_email=user_email,
            target_price=target_price,
            use_prediction=use_prediction,
            created_at=created_at,
        )

    def get_product(self, product_id: int) -> Product | None:
        with self._guard("get_product") as conn:
            row = conn.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?",
                (product_id,),
            ).fetchone()
        return _row_to_product(row) if row else None

    def get_product_by_asin(self, asin: str) -> Product | None:
        with self._guard("get_product_by_asin") as conn:
            row = conn.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE asin = ?",
                (asin,),
            ).fetchone()
        return _row_to_product(row) if row else None

    def list_products(self) -> list[Product]:
        with self._guard("list_products") as conn:
            rows = conn.execute(
                f"SELECT {_PRODUCT_COLUMNS} FROM products "
                "ORDER BY created_at DESC, id DESC",
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    def list_alerts(self, product_id: int) -> list[Alert]:
        with self._guard("list_alerts") as conn:
            rows = conn.execute(
                f"SELECT {_ALERT_COLUMNS} FROM alerts "
                "WHERE product_id = ? ORDER BY id ASC",
                (product_id,),
            ).fetchall()
        return [_row_to_alert(r) for r in rows]

    def set_product_active(self, product_id: int, active: bool) -> None:
        with self._guard("set_product_active") as conn:
            cur = conn.execute(
                "UPDATE products SET is_active = ? WHERE id = ?",
                (int(active), product_id),
            )
        if cur.rowcount == 0:
            raise KeyError(product_id)

    def set_alert_active(self, alert_id: int, active: bool) -> None:
        with self._guard("set_alert_active") as conn:
            cur = conn.execute(
                "UPDATE alerts SET is_active = ? WHERE id = ?",
                (int(active), alert_id),
            )
        if cur.rowcount == 0:
            raise KeyError(alert_id)
