from __future__ import annotations

from dataclasses import dataclass
import threading


@dataclass(frozen=True)
class InFlight:
    photo_id: str
    detect_faces: bool
    generation: int


class BatchTracker:
    """In-flight analysis requests for one coordinator.

    Overlapping batches share the tracker, so their progress and done state
    merge: the counters only reset once nothing is pending.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: dict[str, InFlight] = {}
        self._sent = 0
        self._completed = 0
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def is_busy(self) -> bool:
        return self.pending_count > 0

    @property
    def progress(self) -> float:
        with self._lock:
            if not self._sent:
                return 100.0
            return self._completed / self._sent * 100

    def start(self, request_id: str, photo_id: str, detect_faces: bool, generation: int) -> None:
        with self._lock:
            self._in_flight[request_id] = InFlight(photo_id, detect_faces, generation)
            self._sent += 1

    def finish(self, request_id: str) -> bool:
        with self._lock:
            entry = self._in_flight.pop(request_id, None)
            if entry is None:
                return False
            self._completed += 1
            if not self._in_flight:
                self._sent = 0
                self._completed = 0
            return entry.generation == self._generation

    def in_flight(self, photo_id: str, detect_faces: bool) -> bool:
        with self._lock:
            return any(
                entry.photo_id == photo_id and (entry.detect_faces or not detect_faces)
                for entry in self._in_flight.values()
            )

    def next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            self._in_flight.clear()
            self._sent = 0
            self._completed = 0
            return self._generation
