from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Set

from .types import BatchResult
from .validate import dedupe_key

log = logging.getLogger("bookmap.store")


class BookingStore(Protocol):
    def create_booking(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Return {"status": "success", "data": {...}} or {"status": "error", "message": "..."}."""

    def find_existing_keys(self, user_id: str) -> Set[str]:
        """Normalized dedupe keys of the bookings already stored for `user_id`."""


class JsonlBookingStore:
    """
    Bookings kept one JSON object per line:

        {"id": "bk_000001", "user_id": "u1", "booking": {...payload...}}
    """

    def __init__(self, path: Path, user_id: str, key_field: Optional[str] = "guest_email"):
        self.path = Path(path)
        self.user_id = user_id
        self.key_field = key_field

    def _entries(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def create_booking(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not payload:
            return {"status": "error", "message": "Empty booking payload"}
        entry = {
            "id": f"bk_{len(self._entries()) + 1:06d}",
            "user_id": self.user_id,
            "booking": payload,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
        return {"status": "success", "data": entry}

    def find_existing_keys(self, user_id: str) -> Set[str]:
        if not self.key_field:
            return set()
        keys = set()
        for e in self._entries():
            if e.get("user_id") != user_id:
                continue
            k = dedupe_key((e.get("booking") or {}).get(self.key_field))
            if k:
                keys.add(k)
        return keys


@dataclass
class CommitResult:
    created: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    # set when the batch was refused before any store call
    rejected: bool = False


def commit_batch(result: BatchResult, store: BookingStore) -> CommitResult:
    """
    Send every committable payload to the store, one call per booking.
    A batch with nothing committable is returned as rejected without
    touching the store.
    """
    if not result.committable:
        log.warning("refusing to commit an empty batch")
        return CommitResult(
            rejected=True,
            errors=["Nothing to import: the batch has no valid, non-duplicate rows"],
        )
    out = CommitResult()
    for i, payload in enumerate(result.committable, start=1):
        response = store.create_booking(payload)
        if response.get("status") == "success":
            out.created += 1
        else:
            out.failed += 1
            out.errors.append(f"booking {i}: {response.get('message', 'unknown error')}")
    log.info("committed %d booking(s), %d failed", out.created, out.failed)
    return out
