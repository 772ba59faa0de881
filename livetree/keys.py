"""Auto keys for new children.

Keys are 20 characters: 8 encode the millisecond timestamp, 12 are random.
The alphabet is in ASCII order so a plain string sort orders keys by creation time.
"""
import random
import threading
import time
from typing import Callable, List, Optional

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushKeyGenerator:
    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock or time.time
        self._rng = rng or random.SystemRandom()
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_rand: List[int] = [0] * 12

    def next_key(self) -> str:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            if now_ms == self._last_ms:
                # same millisecond: bump the random suffix so keys stay strictly increasing
                i = 11
                while i >= 0 and self._last_rand[i] == 63:
                    self._last_rand[i] = 0
                    i -= 1
                if i >= 0:
                    self._last_rand[i] += 1
            else:
                self._last_ms = now_ms
                self._last_rand = [self._rng.randrange(64) for _ in range(12)]

            ts_chars = []
            ts = now_ms
            for _ in range(8):
                ts_chars.append(PUSH_CHARS[ts % 64])
                ts //= 64
            prefix = "".join(reversed(ts_chars))
            suffix = "".join(PUSH_CHARS[i] for i in self._last_rand)
            return prefix + suffix
