"""Snapshot persistence for the statistics store.

The snapshot is a JSON object mapping each user to its counters. Saves
go to a sibling ``.tmp`` file which is fsync'd and then moved over the
snapshot with ``os.replace``, so the snapshot path always holds a
complete file.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Dict, Optional

import aiofiles
import aiofiles.os
from pydantic import (
    BaseModel,
    ConfigDict,
    NonNegativeInt,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from sastatd.utils.errors import CorruptSnapshotError, SnapshotWriteError
from sastatd.utils.logging import async_log_call, get_logger, log_event

from .stats import StatStore, UserStats

logger = get_logger(__name__)


class SnapshotRecord(BaseModel):
    """Pydantic model for one persisted user entry."""

    model_config = ConfigDict(extra="ignore")

    clean: NonNegativeInt = 0
    spam: NonNegativeInt = 0
    score: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def validate_score_range(self) -> "SnapshotRecord":
        """Extremes exist only once a message was counted, and min <= max."""

        if self.clean + self.spam == 0 and (self.min is not None or self.max is not None):
            raise ValueError("min/max recorded without any messages")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min {self.min} exceeds max {self.max}")
        return self

    def to_stats(self) -> UserStats:
        return UserStats(
            clean=self.clean, spam=self.spam, score=self.score, min=self.min, max=self.max
        )


_SNAPSHOT_ADAPTER = TypeAdapter(Dict[str, SnapshotRecord])


def serialize(store: StatStore) -> str:
    """Deterministic text form; unchanged stores serialize identically."""
    return json.dumps(store.to_dict(), indent=2, sort_keys=True, ensure_ascii=False) + "\n"


def deserialize(text: str) -> StatStore:
    """Parse snapshot text, raising CorruptSnapshotError on any defect."""

    try:
        records = _SNAPSHOT_ADAPTER.validate_json(text)
    except ValidationError as e:
        raise CorruptSnapshotError(f"Snapshot does not match expected schema: {e}") from e

    return StatStore({user: record.to_stats() for user, record in records.items()})


class PersistenceManager:
    """Loads and atomically rewrites the snapshot file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        self._lock = asyncio.Lock()

    async def load(self) -> StatStore:
        """Read the snapshot; a missing file yields an empty store."""

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                text = await f.read()
        except FileNotFoundError:
            logger.info(f"No snapshot at {self.path}, starting empty")
            return StatStore()
        except (OSError, UnicodeDecodeError) as e:
            raise CorruptSnapshotError(
                f"Cannot read snapshot {self.path}: {e}", details={"path": str(self.path)}
            ) from e

        try:
            store = deserialize(text)
        except CorruptSnapshotError as e:
            e.details["path"] = str(self.path)
            raise

        logger.info(f"Loaded {len(store)} user(s) from {self.path}")
        return store

    @async_log_call
    async def save(self, store: StatStore) -> None:
        """Write ``store`` to a temp file, then atomically replace the snapshot.

        Raises:
            SnapshotWriteError: the temp write or the replace failed. The
                previous snapshot is left untouched in either case.
        """

        # Serialized before the first await: the file reflects the store at call time.
        payload = serialize(store)
        users = len(store)

        async with self._lock:
            try:
                await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
                async with aiofiles.open(self.tmp_path, "w", encoding="utf-8") as f:
                    await f.write(payload)
                    await f.flush()
                    await asyncio.to_thread(os.fsync, f.fileno())
            except OSError as e:
                await self._discard_tmp()
                raise SnapshotWriteError(
                    f"Failed to write {self.tmp_path}: {e}",
                    details={"path": str(self.tmp_path)},
                ) from e

            try:
                await aiofiles.os.replace(self.tmp_path, self.path)
            except OSError as e:
                await self._discard_tmp()
                raise SnapshotWriteError(
                    f"Failed to replace {self.path}: {e}",
                    details={"path": str(self.path)},
                ) from e

        logger.debug(f"Snapshot saved to {self.path} ({users} users)")
        log_event("snapshot_saved", "Snapshot saved", path=str(self.path), users=users)

    async def _discard_tmp(self) -> None:
        try:
            await aiofiles.os.remove(self.tmp_path)
        except OSError:
            logger.debug(f"No temp snapshot to remove at {self.tmp_path}")
