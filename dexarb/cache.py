# dexarb/cache.py
import threading
import time
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from .models import PriceQuote, TokenPair

CacheKey = Tuple[str, str, str, str]


@dataclass(slots=True)
class CacheEntry:
    quote: PriceQuote
    expiry: float  # epoch seconds


class QuoteCache:
    """
    Time-boxed quote cache shared by every source handler of a collector.
    Keyed by (source, from, to, amount). The lock is never held across an
    await, so the same instance is safe from the event loop and from threads.
    """
    def __init__(self, clock=time.time):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    @staticmethod
    def make_key(source: str, pair: TokenPair) -> CacheKey:
        return (source, pair.from_symbol.upper(), pair.to_symbol.upper(), str(pair.amount.normalize()))

    def get(self, source: str, pair: TokenPair) -> Optional[PriceQuote]:
        """
        Returns the stored quote with a refreshed timestamp, or None.
        An expired entry is purged on the way out.
        """
        key = self.make_key(source, pair)
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expiry <= now:
                del self._entries[key]
                return None
            return replace(entry.quote, timestamp=now)

    def put(self, source: str, pair: TokenPair, quote: PriceQuote, ttl_ms: float):
        with self._lock:
            self._entries[self.make_key(source, pair)] = CacheEntry(quote, self._clock() + ttl_ms / 1000.0)

    def clear_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expiry <= now]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        with self._lock:
            expired = sum(1 for e in self._entries.values() if e.expiry <= now)
            return {"size": len(self._entries), "expired": expired}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
