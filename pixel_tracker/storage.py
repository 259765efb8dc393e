import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_PIXEL_NAME = "Untitled Pixel"


@dataclass(frozen=True)
class Pixel:
    id: str
    name: str
    created_at: int


@dataclass(frozen=True)
class LogEntry:
    id: int
    pixel_id: str
    timestamp: int
    ip: str
    user_agent: str


def now_ms():
    return int(time.time() * 1000)


def _connect(db_path):
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def ensure_schema(db_path):
    conn = _connect(db_path)
    try:
        c = conn.cursor()
        c.execute("""
            CREATE TABLE IF NOT EXISTS pixels (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at INTEGER NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                pixel_id TEXT NOT NULL REFERENCES pixels(id),
                timestamp INTEGER NOT NULL,
                ip TEXT,
                user_agent TEXT
            )
        """)
        c.execute("CREATE INDEX IF NOT EXISTS logs_timestamp ON logs (timestamp)")
        c.execute("CREATE INDEX IF NOT EXISTS logs_pixel_id ON logs (pixel_id)")
        conn.commit()
    finally:
        conn.close()
    logger.debug("schema ready in %s", db_path)


class PixelRegistry:
    """Pixel identity and display names."""

    def __init__(self, db_path, clock=now_ms):
        self.db_path = db_path
        self._clock = clock

    def create(self, name=None):
        pixel = Pixel(
            id=str(uuid.uuid4()),
            name=(name or "").strip() or DEFAULT_PIXEL_NAME,
            created_at=self._clock(),
        )
        conn = _connect(self.db_path)
        try:
            conn.execute(
                "INSERT INTO pixels (id, name, created_at) VALUES (?, ?, ?)",
                (pixel.id, pixel.name, pixel.created_at),
            )
            conn.commit()
        finally:
            conn.close()
        logger.info("created pixel %s (%s)", pixel.id, pixel.name)
        return pixel

    def exists(self, pixel_id):
        conn = _connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT 1 FROM pixels WHERE id = ?", (pixel_id.lower(),)
            ).fetchone()
        finally:
            conn.close()
        return row is not None

    def get(self, pixel_id):
        conn = _connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT id, name, created_at FROM pixels WHERE id = ?",
                (pixel_id.lower(),),
            ).fetchone()
        finally:
            conn.close()
        return Pixel(*row) if row else None

    def list_all(self):
        conn = _connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT id, name, created_at FROM pixels ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        finally:
            conn.close()
        return [Pixel(*r) for r in rows]


class EventLog:
    """Append-only store of open events.

    Every append is a single INSERT committed on its own, so a failed write
    leaves no partial row. Deduplication happens upstream.
    """

    def __init__(self, db_path):
        self.db_path = db_path

    def append(self, pixel_id, timestamp, origin, user_agent):
        conn = _connect(self.db_path)
        try:
            c = conn.execute(
                "INSERT INTO logs (pixel_id, timestamp, ip, user_agent) VALUES (?, ?, ?, ?)",
                (pixel_id.lower(), timestamp, origin, user_agent),
            )
            conn.commit()
            return c.lastrowid
        finally:
            conn.close()

    def list_by_pixel(self, pixel_id):
        conn = _connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT id, pixel_id, timestamp, ip, user_agent FROM logs"
                " WHERE pixel_id = ? ORDER BY id",
                (pixel_id.lower(),),
            ).fetchall()
        finally:
            conn.close()
        return [LogEntry(*r) for r in rows]

    def list_since(self, since):
        """Rows with timestamp strictly after `since` (epoch millis)."""
        conn = _connect(self.db_path)
        try:
            rows = conn.execute(
                "SELECT pixel_id, ip, timestamp FROM logs"
                " WHERE timestamp > ? ORDER BY pixel_id, timestamp, id",
                (since,),
            ).fetchall()
        finally:
            conn.close()
        return rows

    def count(self):
        conn = _connect(self.db_path)
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM logs").fetchone()
        finally:
            conn.close()
        return n
