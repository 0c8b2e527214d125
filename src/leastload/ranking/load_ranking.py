"""Load ranking - workers ordered by in-flight request count."""

import logging
import threading
from typing import Callable, Optional

from leastload.models.load import WorkerLoad

logger = logging.getLogger(__name__)


class LoadRanking:
    """
    Thread-safe indexed min-heap of (count, worker_id) entries.

    The heap is a list of mutable [count, worker_id] pairs; _index maps each
    worker_id to the position of its pair in the heap so arbitrary entries
    can be re-sorted or removed in O(log n). Lists compare element-wise, so
    ties on count fall back to the worker id.

    Invariant: _index.keys() is exactly the set of worker ids in _heap, and
    _index[w] is the position of w's pair. Every public method runs under a
    single lock so no caller sees the two halves disagree.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._heap: list[list] = []
        self._index: dict[str, int] = {}

    # Public API

    def add_worker(self, worker_id: str, count: int = 0) -> bool:
        """
        Start tracking a worker.

        Adding a worker that is already tracked is ignored and leaves its
        count untouched.

        Returns:
            True if the worker was inserted, False if it was already present
        """
        with self._lock:
            if worker_id in self._index:
                logger.debug(f"Ignoring duplicate add for worker {worker_id}")
                return False
            self._insert(worker_id, count)
            return True

    def update_count(self, worker_id: str, delta: int) -> int:
        """
        Apply delta to a worker's count and restore heap order.

        An untracked worker is inserted with count=delta. Counts are not
        clamped, so a release that races ahead of its dispatch can leave a
        transiently negative value.

        Returns:
            The worker's new count
        """
        with self._lock:
            pos = self._index.get(worker_id)
            if pos is None:
                self._insert(worker_id, delta)
                return delta
            entry = self._heap[pos]
            entry[0] += delta
            if delta < 0:
                self._sift_up(pos)
            elif delta > 0:
                self._sift_down(pos)
            return entry[0]

    def pop_minimum(self) -> Optional[WorkerLoad]:
        """
        Remove and return the least-loaded worker.

        Returns:
            The entry with the smallest (count, worker_id), or None when empty
        """
        with self._lock:
            if not self._heap:
                return None
            count, worker_id = self._remove_at(0)
            return WorkerLoad(worker_id=worker_id, count=count)

    def claim_minimum(
        self, is_eligible: Callable[[str], bool]
    ) -> tuple[Optional[WorkerLoad], list[WorkerLoad]]:
        """
        Claim the least-loaded eligible worker in one step.

        Entries at the top that fail is_eligible are removed for good. The
        first eligible one keeps its slot and has its count raised by one
        before the lock is released.

        Returns:
            (claimed entry with its new count or None, discarded entries)
        """
        discarded: list[WorkerLoad] = []
        with self._lock:
            while self._heap:
                count, worker_id = self._heap[0]
                if not is_eligible(worker_id):
                    self._remove_at(0)
                    discarded.append(WorkerLoad(worker_id=worker_id, count=count))
                    continue
                self._heap[0][0] += 1
                self._sift_down(0)
                return WorkerLoad(worker_id=worker_id, count=count + 1), discarded
        return None, discarded

    def peek_minimum(self) -> Optional[WorkerLoad]:
        """Return the least-loaded worker without removing it."""
        with self._lock:
            if not self._heap:
                return None
            count, worker_id = self._heap[0]
            return WorkerLoad(worker_id=worker_id, count=count)

    def remove_worker(self, worker_id: str) -> bool:
        """
        Stop tracking a worker. Unknown ids are a no-op.

        Returns:
            True if the worker was removed
        """
        with self._lock:
            pos = self._index.get(worker_id)
            if pos is None:
                return False
            self._remove_at(pos)
            return True

    def count_of(self, worker_id: str) -> Optional[int]:
        """Current count for a worker, or None if untracked."""
        with self._lock:
            pos = self._index.get(worker_id)
            return None if pos is None else self._heap[pos][0]

    def snapshot(self) -> dict[str, int]:
        """Copy of worker_id -> count."""
        with self._lock:
            return {worker_id: count for count, worker_id in self._heap}

    def loads(self) -> list[WorkerLoad]:
        """All entries in ranking order."""
        with self._lock:
            pairs = sorted((count, worker_id) for count, worker_id in self._heap)
        return [WorkerLoad(worker_id=worker_id, count=count) for count, worker_id in pairs]

    def is_empty(self) -> bool:
        with self._lock:
            return not self._heap

    def check_consistency(self) -> bool:
        """
        Verify the heap and its index describe the same entries.

        Checks that both hold the same worker ids, that every index position
        points at its own pair, and that the heap property holds.
        """
        with self._lock:
            if len(self._heap) != len(self._index):
                return False
            for pos, (_, worker_id) in enumerate(self._heap):
                if self._index.get(worker_id) != pos:
                    return False
            for pos in range(1, len(self._heap)):
                if self._heap[pos] < self._heap[(pos - 1) // 2]:
                    return False
            return True

    def __contains__(self, worker_id: object) -> bool:
        with self._lock:
            return worker_id in self._index

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)

    def __repr__(self) -> str:
        body = "; ".join(
            f"server={load.worker_id}, active connections={load.count}" for load in self.loads()
        )
        return f"LoadRanking [{body}]"

    # Heap internals, caller holds _lock

    def _insert(self, worker_id: str, count: int) -> None:
        self._heap.append([count, worker_id])
        pos = len(self._heap) - 1
        self._index[worker_id] = pos
        self._sift_up(pos)

    def _remove_at(self, pos: int) -> list:
        last = len(self._heap) - 1
        if pos != last:
            self._swap(pos, last)
        entry = self._heap.pop()
        del self._index[entry[1]]
        if pos < len(self._heap):
            # the moved entry may belong above or below its new slot
            if self._sift_up(pos) == pos:
                self._sift_down(pos)
        return entry

    def _swap(self, i: int, j: int) -> None:
        heap = self._heap
        heap[i], heap[j] = heap[j], heap[i]
        self._index[heap[i][1]] = i
        self._index[heap[j][1]] = j

    def _sift_up(self, pos: int) -> int:
        heap = self._heap
        while pos > 0:
            parent = (pos - 1) // 2
            if heap[pos] < heap[parent]:
                self._swap(pos, parent)
                pos = parent
            else:
                break
        return pos

    def _sift_down(self, pos: int) -> int:
        heap = self._heap
        size = len(heap)
        while True:
            left = 2 * pos + 1
            if left >= size:
                break
            smallest = left
            right = left + 1
            if right < size and heap[right] < heap[left]:
                smallest = right
            if heap[smallest] < heap[pos]:
                self._swap(pos, smallest)
                pos = smallest
            else:
                break
        return pos
