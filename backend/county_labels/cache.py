import time


class SimpleCache:
    """In-memory TTL cache for decoded Overpass responses, keyed by query text."""

    def __init__(self, ttl=300):
        self.store = {}
        self.ttl = ttl

    def get(self, key):
        item = self.store.get(key)
        if item is None:
            return None
        value, expiry = item
        if time.monotonic() > expiry:
            del self.store[key]
            return None
        return value

    def set(self, key, value):
        if self.ttl <= 0:
            return
        now = time.monotonic()
        # queries are keyed per point, so stale keys are rarely read again
        for stale in [k for k, (_, expiry) in self.store.items() if now > expiry]:
            del self.store[stale]
        self.store[key] = (value, now + self.ttl)

    def clear(self):
        self.store.clear()
