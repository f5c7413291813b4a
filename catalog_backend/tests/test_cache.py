import unittest
from types import SimpleNamespace

from catalog_backend.cache import ResponseCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def fake_request(path, query="", method="GET"):
    return SimpleNamespace(method=method, url=SimpleNamespace(path=path, query=query))


class ResponseCacheTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = ResponseCache(clock=self.clock)
        self.calls = 0

    def produce(self):
        self.calls += 1
        return {"n": self.calls}

    def test_key_includes_method_and_query(self):
        request = fake_request("/api/v1/product", "page=2")
        self.assertEqual(ResponseCache.key_for(request), "GET:/api/v1/product?page=2")

    def test_fetch_reuses_entry_until_ttl_expires(self):
        request = fake_request("/api/v1/product/all")
        self.assertEqual(self.cache.fetch(request, self.produce, ttl=60), {"n": 1})
        self.clock.now += 59
        self.assertEqual(self.cache.fetch(request, self.produce, ttl=60), {"n": 1})
        self.clock.now += 2
        self.assertEqual(self.cache.fetch(request, self.produce, ttl=60), {"n": 2})

    def test_expired_entries_are_evicted_on_lookup(self):
        for q in ("saw", "drill", "hammer"):
            self.cache.fetch(fake_request("/api/v1/product/user-search", f"q={q}"), self.produce, ttl=60)
        self.assertEqual(self.cache.stats()["size"], 3)

        self.clock.now += 61
        self.assertIsNone(self.cache.get("GET:/api/v1/product/user-search?q=saw", ttl=60))
        self.assertEqual(self.cache.stats()["size"], 2)

        self.cache.fetch(fake_request("/api/v1/product/user-search", "q=drill"), self.produce, ttl=60)
        self.assertEqual(
            sorted(self.cache.stats()["keys"]),
            [
                "GET:/api/v1/product/user-search?q=drill",
                "GET:/api/v1/product/user-search?q=hammer",
            ],
        )

    def test_non_success_status_is_not_stored(self):
        self.cache.set("GET:/x", {"error": True}, status=404)
        self.assertIsNone(self.cache.get("GET:/x"))
        self.cache.set("GET:/x", {"ok": True}, status=201)
        self.assertEqual(self.cache.get("GET:/x").data, {"ok": True})

    def test_producer_errors_are_not_cached(self):
        request = fake_request("/api/v1/product/product/missing")

        def failing():
            raise ValueError("boom")

        with self.assertRaises(ValueError):
            self.cache.fetch(request, failing)
        self.assertEqual(self.cache.stats()["size"], 0)

    def test_clear_by_pattern_and_clear_all(self):
        self.cache.set("GET:/api/v1/product/all", 1)
        self.cache.set("GET:/api/v1/product/search?q=a", 2)
        self.cache.set("GET:/api/v1/category", 3)

        self.assertEqual(self.cache.clear("/product"), 2)
        self.assertEqual(self.cache.stats(), {"size": 1, "keys": ["GET:/api/v1/category"]})

        self.cache.clear_all()
        self.assertEqual(self.cache.stats()["size"], 0)


if __name__ == "__main__":
    unittest.main()
