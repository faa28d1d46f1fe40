# managers/metadata.py
"""Persistence of cache usage metadata between sessions.

Only access counts and last-access times are stored, never image data.  The
file is a small JSON document::

    {"access_count": [[path, n], ...],
     "last_access": [[path, t], ...],
     "timestamp": t}

Saving merges with what is already on disk, so files seen in earlier
directories keep their history.  Every failure is logged and swallowed:
losing usage hints only costs a slightly worse eviction choice.
"""

from __future__ import annotations

import json
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Dict, Union

from .. import config

LOGGER = logging.getLogger(__name__)

UsageRecords = Dict[str, Dict[str, float]]


class CacheMetadataStore:
    """Read and write usage metadata for a :class:`PriorityCache`."""

    def __init__(
        self,
        path: Union[str, Path] = config.METADATA_PATH,
        max_records: int = config.METADATA_MAX_RECORDS,
    ):
        if max_records <= 0:
            raise ValueError("max_records must be greater than zero")
        self.path = Path(path)
        self.max_records = max_records

    def read(self) -> UsageRecords:
        """Return the stored records, or an empty mapping when unavailable."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError) as exc:
            LOGGER.warning(
                "Failed to restore cache metadata",
                extra={"path": str(self.path), "error": str(exc)},
            )
            return {}
        return _decode(payload)

    def load(self, cache) -> int:
        """Restore stored usage into *cache*; return the number of records."""
        records = self.read()
        if not records:
            return 0
        restored = cache.restore_usage(records)
        LOGGER.info(
            "Restored cache metadata",
            extra={"path": str(self.path), "records": restored},
        )
        return restored

    def save(self, cache) -> bool:
        """Merge the usage of *cache* into the metadata file."""
        cid = uuid.uuid4().hex
        log = logging.LoggerAdapter(LOGGER, {"cid": cid})

        records = self.read()
        for key, values in cache.usage_snapshot().items():
            previous = records.get(key)
            if previous is None:
                records[key] = dict(values)
                continue
            previous["access_count"] = max(previous["access_count"], values["access_count"])
            previous["last_accessed_at"] = max(
                previous["last_accessed_at"], values["last_accessed_at"]
            )

        if len(records) > self.max_records:
            newest = sorted(
                records.items(), key=lambda item: item[1]["last_accessed_at"], reverse=True
            )
            records = dict(newest[: self.max_records])

        payload = _encode(records)
        tmp_path = self.path.with_name(f"{self.path.name}.{cid}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            log.warning(
                "Failed to persist cache metadata",  # Runbook: verify file permissions
                extra={"path": str(self.path), "error": str(exc)},
            )
            _remove_quietly(tmp_path)
            return False
        log.info("cache metadata saved", extra={"path": str(self.path), "records": len(records)})
        return True


def _encode(records: UsageRecords) -> Dict[str, Any]:
    return {
        "access_count": [[key, values["access_count"]] for key, values in records.items()],
        "last_access": [[key, values["last_accessed_at"]] for key, values in records.items()],
        "timestamp": time.time(),
    }


def _decode(payload: Any) -> UsageRecords:
    if not isinstance(payload, dict):
        LOGGER.warning("Ignoring cache metadata with unexpected layout")
        return {}
    records: UsageRecords = {}
    try:
        for key, count in payload.get("access_count", []):
            records.setdefault(str(key), {"access_count": 0, "last_accessed_at": 0.0})
            records[str(key)]["access_count"] = int(count)
        for key, last in payload.get("last_access", []):
            records.setdefault(str(key), {"access_count": 0, "last_accessed_at": 0.0})
            records[str(key)]["last_accessed_at"] = float(last)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Ignoring malformed cache metadata", extra={"error": str(exc)})
        return {}
    return records


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        LOGGER.warning("cleanup failed", extra={"file": str(path), "error": str(exc)})
