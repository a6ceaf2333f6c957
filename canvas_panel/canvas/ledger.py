"""
Deletion Ledger
===============

Append-only log of delete-macro snapshots with JSON persistence.
Oldest records are evicted once the retention cap is exceeded.
"""

import asyncio
import json
import logging
import os
import tempfile
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..models.errors import LedgerCorruptError
from ..models.macro_models import DeletionRecord, RecordSummary

logger = logging.getLogger(__name__)

MAX_DELETED_RECORDS = 50


class DeletionLedger:
    """Ordered deletion records backed by a single JSON array file."""

    def __init__(self, records_file: Optional[Path] = None, max_records: int = MAX_DELETED_RECORDS):
        self.records_file = Path(records_file or "macros-deleted-records.json")
        self.records_file.parent.mkdir(parents=True, exist_ok=True)
        self.max_records = max_records
        self._cache: Optional[List[Dict[str, Any]]] = None
        self._lock = asyncio.Lock()
        logger.info(f"[LEDGER] Initialized with records_file={self.records_file}, cap={max_records}")

    def _load(self) -> List[Dict[str, Any]]:
        """Read the store into the cache on first use."""
        if self._cache is None:
            if self.records_file.exists():
                try:
                    with open(self.records_file) as f:
                        records = json.load(f)
                except json.JSONDecodeError as e:
                    logger.error(f"[LEDGER-ERROR] {self.records_file} is not valid JSON: {e}")
                    raise LedgerCorruptError(f"Deleted-records store is unreadable: {e.msg}")
                if not isinstance(records, list):
                    raise LedgerCorruptError("Deleted-records store is not a JSON array")
                self._cache = records
            else:
                self._cache = []
        return self._cache

    def _save(self, records: List[Dict[str, Any]]):
        """Write the store through a temp file so readers never see a partial array."""
        fd, tmp_path = tempfile.mkstemp(dir=self.records_file.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(records, f, indent=2)
            os.replace(tmp_path, self.records_file)
        except BaseException:
            os.unlink(tmp_path)
            raise
        self._cache = records

    async def append(self, record: DeletionRecord) -> List[str]:
        """Add a record; returns the ids evicted to stay within the cap."""
        async with self._lock:
            records = list(self._load())
            records.append(record.to_json())
            evicted = []
            if len(records) > self.max_records:
                overflow = len(records) - self.max_records
                evicted = [r.get("recordId") for r in records[:overflow]]
                records = records[overflow:]
                logger.info(f"[LEDGER] Cap of {self.max_records} exceeded, evicted {evicted}")
            self._save(records)
        logger.info(f"[LEDGER] Appended {record.record_id} with {len(record.widgets)} widget(s)")
        return evicted

    def find(self, record_id: str) -> Optional[DeletionRecord]:
        for raw in self._load():
            if raw.get("recordId") == record_id:
                return DeletionRecord(**raw)
        return None

    def list_records(self) -> List[Dict[str, str]]:
        """Minimal listing: recordId and timestamp, oldest first."""
        return [
            {"recordId": r.get("recordId"), "timestamp": r.get("timestamp")}
            for r in self._load()
        ]

    async def remove(self, record_id: str) -> bool:
        """Manually prune one record."""
        async with self._lock:
            records = self._load()
            kept = [r for r in records if r.get("recordId") != record_id]
            if len(kept) == len(records):
                return False
            self._save(kept)
        logger.info(f"[LEDGER] Removed {record_id}")
        return True

    @staticmethod
    def summarize(record: DeletionRecord) -> RecordSummary:
        counts = Counter(w.get("widget_type") or "Unknown" for w in record.widgets)
        return RecordSummary(count=len(record.widgets), types=dict(counts))
