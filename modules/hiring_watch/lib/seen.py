from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from collections.abc import Iterable

from .models import Listing

LOG = logging.getLogger(__name__)


class SeenSet:
    """
    Bounded, insertion-ordered set of listing ids.

    Policies:
      - "trim": record() moves every fetched id to the most-recent end, then
        prunes to the newest `retain` ids once size exceeds `capacity`.
      - "clear": no pruning; an external timer calls clear().
    """

    def __init__(self, policy: str = "trim", capacity: int = 1000, retain: int = 500):
        if policy not in ("trim", "clear"):
            raise ValueError(f"unknown seen policy: {policy!r}")
        if not 1 <= retain <= capacity:
            raise ValueError("retain must be between 1 and capacity")
        self.policy = policy
        self.capacity = capacity
        self.retain = retain
        self._ids: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._ids

    def filter_new(self, batch: Iterable[Listing]) -> list[Listing]:
        """Listings whose id is not yet seen, in batch order, duplicates collapsed."""
        out: list[Listing] = []
        taken: set[str] = set()
        with self._lock:
            for listing in batch:
                if listing.job_id in self._ids or listing.job_id in taken:
                    continue
                taken.add(listing.job_id)
                out.append(listing)
        return out

    def record(self, batch: Iterable[Listing]) -> None:
        """Mark every listing in the batch as seen and apply the policy."""
        with self._lock:
            for listing in batch:
                self._ids[listing.job_id] = None
                self._ids.move_to_end(listing.job_id)
            if self.policy == "trim" and len(self._ids) > self.capacity:
                drop = len(self._ids) - self.retain
                for _ in range(drop):
                    self._ids.popitem(last=False)
                LOG.info("Seen set trimmed to %d ids (dropped %d)", len(self._ids), drop)

    def clear(self) -> int:
        with self._lock:
            n = len(self._ids)
            self._ids.clear()
        LOG.debug("Seen set cleared (%d ids)", n)
        return n
