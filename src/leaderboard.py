# leaderboard.py
# Score submission and ranking behind one contract, with a JSON file store
# and a SQL database store as interchangeable persistence backends.

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import json
import logging
import os
import tempfile
import threading

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, insert, select
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# Largest value a signed 64-bit database column holds.
MAX_STORED_INT = 2 ** 63 - 1


class LeaderboardError(Exception):
    """Base class for leaderboard failures."""


class ValidationError(LeaderboardError):
    """Submitted data is malformed. Not worth retrying."""


class BackendError(LeaderboardError):
    """The store could not be read or written. May succeed on retry."""


@dataclass
class ScoreRecord:
    nickname: str
    score: int
    time_taken: Optional[int]
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nickname": self.nickname,
            "score": self.score,
            "time_taken": self.time_taken,
            "timestamp": self.timestamp.isoformat(),
        }


def normalize_timestamp(raw) -> datetime:
    """
    Converts a stored timestamp to an aware UTC datetime. The file store keeps
    epoch milliseconds, the database store ISO-8601 strings.
    Raises:
        ValueError: If the value is neither.
    """
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
    if isinstance(raw, str):
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unrecognised timestamp {raw!r}")


def _as_non_negative_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{name} must be a whole number")
        value = int(value)
    if value < 0:
        raise ValidationError(f"{name} must not be negative")
    if value > MAX_STORED_INT:
        raise ValidationError(f"{name} is too large")
    return value


def _sort_key(record: ScoreRecord):
    # Highest score first, then fastest time; missing times go last.
    no_time = record.time_taken is None
    return (-record.score, no_time, record.time_taken or 0)

# --- Stores ---

class ScoreStore:
    """Persistence contract shared by every backend."""

    def fetch_all(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError


class JsonFileStore(ScoreStore):
    """Keeps every record in one JSON array on disk, timestamps in epoch millis."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise BackendError(f"Could not read {self.path}: {e}") from e
        if not isinstance(data, list):
            raise BackendError(f"{self.path} does not hold a list of scores")
        return data

    def fetch_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read()

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(row)
        stored["timestamp"] = int(row["timestamp"].timestamp() * 1000)
        with self._lock:
            rows = self._read()
            rows.append(stored)
            directory = os.path.dirname(os.path.abspath(self.path))
            try:
                fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            except OSError as e:
                raise BackendError(f"Could not write {self.path}: {e}") from e
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(rows, fh, indent=2)
                os.replace(tmp_path, self.path)
            except (OSError, TypeError, ValueError) as e:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise BackendError(f"Could not write {self.path}: {e}") from e
        return stored


metadata = MetaData()

leaderboard_table = Table(
    "leaderboard",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("nickname", String(100), nullable=False),
    Column("score", Integer, nullable=False),
    Column("time_taken", Integer, nullable=True),
    Column("timestamp", String(40), nullable=False),
)


class SqlScoreStore(ScoreStore):
    """Database backend through SQLAlchemy Core, timestamps as ISO-8601 text."""

    def __init__(self, url: str, **engine_kwargs):
        self.engine = create_engine(url, **engine_kwargs)
        self._schema_ready = False

    def _ensure_schema(self):
        if not self._schema_ready:
            metadata.create_all(self.engine)
            self._schema_ready = True

    def fetch_all(self) -> List[Dict[str, Any]]:
        query = select(
            leaderboard_table.c.nickname,
            leaderboard_table.c.score,
            leaderboard_table.c.time_taken,
            leaderboard_table.c.timestamp,
        )
        try:
            self._ensure_schema()
            with self.engine.connect() as conn:
                return [dict(row._mapping) for row in conn.execute(query)]
        except SQLAlchemyError as e:
            raise BackendError(f"Could not read leaderboard: {e}") from e

    def insert(self, row: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(row)
        stored["timestamp"] = row["timestamp"].isoformat()
        try:
            self._ensure_schema()
            with self.engine.begin() as conn:
                conn.execute(insert(leaderboard_table).values(**stored))
        except SQLAlchemyError as e:
            raise BackendError(f"Could not save score: {e}") from e
        return stored


def create_store(settings) -> ScoreStore:
    """Builds the store named by settings.LEADERBOARD_BACKEND."""
    backend = settings.LEADERBOARD_BACKEND.lower()
    if backend == "file":
        return JsonFileStore(settings.LEADERBOARD_FILE)
    if backend == "database":
        return SqlScoreStore(settings.DATABASE_URL)
    raise ValueError(f"Unknown leaderboard backend {settings.LEADERBOARD_BACKEND!r}")

# --- Collaborator ---

class Leaderboard:

    def __init__(self, store: ScoreStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def submit_score(self, nickname, score, time_taken=None) -> ScoreRecord:
        """
        Validates and stores one result.
        Args:
            nickname: Non-empty string, stored trimmed.
            score: Non-negative whole number.
            time_taken: Seconds needed to win, or None for a loss.
        Returns:
            ScoreRecord: The record as stored.
        Raises:
            ValidationError: If any field is malformed.
            BackendError: If the store write fails.
        """
        if not isinstance(nickname, str) or not nickname.strip():
            raise ValidationError("nickname must be a non-empty string")
        score = _as_non_negative_int(score, "score")
        if time_taken is not None:
            time_taken = _as_non_negative_int(time_taken, "time_taken")

        record = ScoreRecord(nickname.strip(), score, time_taken, self._clock())
        self.store.insert({
            "nickname": record.nickname,
            "score": record.score,
            "time_taken": record.time_taken,
            "timestamp": record.timestamp,
        })
        logger.info("Saved score %d for %s", record.score, record.nickname)
        return record

    def list_scores(self, limit: Optional[int] = None) -> List[ScoreRecord]:
        """
        Ranked records, best first. A failed read yields an empty list so
        the game keeps working without a leaderboard.
        """
        try:
            rows = self.store.fetch_all()
        except BackendError:
            logger.warning("Leaderboard read failed, returning no scores", exc_info=True)
            return []

        records = []
        for row in rows:
            try:
                nickname = row["nickname"]
                if not isinstance(nickname, str):
                    raise TypeError("nickname is not a string")
                time_taken = row.get("time_taken")
                records.append(ScoreRecord(
                    nickname=nickname,
                    score=_as_non_negative_int(row["score"], "score"),
                    time_taken=None if time_taken is None else _as_non_negative_int(time_taken, "time_taken"),
                    timestamp=normalize_timestamp(row["timestamp"]),
                ))
            except (AttributeError, KeyError, TypeError, ValueError,
                    OverflowError, OSError, ValidationError):
                logger.warning("Skipping malformed leaderboard row %r", row)

        records.sort(key=_sort_key)
        if limit:
            records = records[:limit]
        return records
