# scripts/tot/store.py
import logging
import threading
from typing import Callable, Dict, Optional

from scripts.tot import persistence

logger = logging.getLogger(__name__)


def _check_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise ValueError(f"key must be a non-empty string, got {key!r}")


class Store:
    """Durable per-key counters.

    Every mutation is written to disk before it is committed in memory, so a
    caller never sees a number that was not recorded and a failed write does
    not advance the counter.
    """

    def __init__(self, storage_path: str, fallback: Optional[Callable[[str], int]] = None):
        self.storage_path = str(storage_path)
        self.fallback = fallback
        self._numbers: Dict[str, int] = persistence.load(self.storage_path)
        self._lock = threading.Lock()

    def _commit(self, key: str, value: int) -> None:
        # Caller holds self._lock.
        staged = dict(self._numbers)
        staged[key] = value
        persistence.save(self.storage_path, staged)
        self._numbers = staged

    def vend(self, key: str) -> int:
        """Increment key's counter and return the new value."""
        _check_key(key)
        seed = 0
        if self.fallback is not None and key not in self._numbers:
            # Remote lookup runs unlocked; a racing vend may beat us to the key.
            seed = self.fallback(key)
        with self._lock:
            if key in self._numbers:
                current = self._numbers[key]
            else:
                current = seed
                if self.fallback is not None:
                    logger.info(f"Seeded {key} from fallback at {current}")
            n = current + 1
            self._commit(key, n)
            return n

    def peek(self, key: str) -> int:
        """Return key's current value without changing it. 0 if never seen."""
        # _commit swaps in a whole new dict, so no lock is needed to read.
        return self._numbers.get(key, 0)

    def set(self, key: str, value: int) -> None:
        """Overwrite key's counter, even with a lower value."""
        _check_key(key)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"value must be a non-negative integer, got {value!r}")
        with self._lock:
            self._commit(key, value)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._numbers)
