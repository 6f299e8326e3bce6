"""Opt-in LRU cache for tone classifications.

Callers create and own an instance and pass it to ``classify_tone``; nothing
here is module state.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from skintonex.engine.constants import ToneConfig
    from skintonex.engine.types import LabColor
    from skintonex.schemas import ToneClassification

logger = logging.getLogger(__name__)

CacheKey = tuple[float, float, float, "ToneConfig"]


@dataclass
class _CachedClassification:
    classification: ToneClassification
    stored_at: float


class ClassificationCache:
    """Thread-safe LRU keyed by Lab rounded to ``precision`` decimals.

    A hit returns the stored tone and scores with ``lab`` set to the queried
    color.

    Entries older than ``ttl`` seconds are treated as misses. A ``ttl`` of 0
    disables expiry.
    """

    def __init__(self, max_size: int = 256, ttl: float = 300.0, precision: int = 1) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        if ttl < 0:
            raise ValueError(f"ttl must be non-negative, got {ttl}")
        self._max_size = max_size
        self._ttl = ttl
        self._precision = precision
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, _CachedClassification] = OrderedDict()
        self._hits = 0
        self._misses = 0

    # -- Public API ---------------------------------------------------------

    def get(self, lab: LabColor, config: ToneConfig) -> ToneClassification | None:
        key = self._key(lab, config)
        now = time.monotonic()
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                self._misses += 1
                return None
            if self._ttl and (now - cached.stored_at) > self._ttl:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            # Nearby colors share an entry; report the color that was asked about
            return cached.classification.model_copy(update={"lab": lab})

    def put(self, lab: LabColor, config: ToneConfig, classification: ToneClassification) -> None:
        key = self._key(lab, config)
        with self._lock:
            self._entries[key] = _CachedClassification(classification=classification, stored_at=time.monotonic())
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cached classification for %s", evicted[:3])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    # -- Internal -----------------------------------------------------------

    def _key(self, lab: LabColor, config: ToneConfig) -> CacheKey:
        # ToneConfig is frozen and hashable; results depend on it as well as the color
        return (round(lab.L, self._precision), round(lab.a, self._precision), round(lab.b, self._precision), config)
