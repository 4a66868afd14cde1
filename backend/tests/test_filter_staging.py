"""Tests for backend/services/filter_staging.py"""

from __future__ import annotations

from backend.models.order import OrderFilter, OrderStatus
from backend.services.filter_staging import FilterStagingCache

TTL_MS = 300_000


class TestStageAndResolve:
    def test_default_ttl_is_five_minutes(self):
        assert FilterStagingCache().ttl_ms == TTL_MS

    def test_resolve_returns_staged_filter(self, staging):
        f = OrderFilter(status=OrderStatus.PAID, customer="Smith")
        token = staging.stage(f)
        assert staging.resolve(token) == f

    def test_resolve_can_be_repeated(self, staging):
        f = OrderFilter(delivery_address="City 3")
        token = staging.stage(f)
        assert staging.resolve(token) == f
        assert staging.resolve(token) == f

    def test_unknown_token_is_absent(self, staging):
        assert staging.resolve("never-staged") is None

    def test_tokens_are_unique_and_opaque(self, staging):
        f = OrderFilter()
        tokens = {staging.stage(f) for _ in range(100)}
        assert len(tokens) == 100
        assert all(len(t) >= 32 for t in tokens)

    def test_empty_filter_can_be_staged(self, staging):
        token = staging.stage(OrderFilter())
        assert staging.resolve(token) == OrderFilter()


class TestExpiry:
    def test_still_valid_exactly_at_ttl(self, staging, clock):
        f = OrderFilter(status=OrderStatus.NEW)
        token = staging.stage(f)
        clock.advance(TTL_MS)
        assert staging.resolve(token) == f

    def test_absent_just_after_ttl(self, staging, clock):
        token = staging.stage(OrderFilter(status=OrderStatus.NEW))
        clock.advance(TTL_MS + 1)
        assert staging.resolve(token) is None

    def test_expired_entry_is_evicted_on_lookup(self, staging, clock):
        token = staging.stage(OrderFilter())
        clock.advance(TTL_MS + 1)
        assert len(staging) == 1
        staging.resolve(token)
        assert len(staging) == 0

    def test_expired_and_unknown_look_the_same(self, staging, clock):
        token = staging.stage(OrderFilter())
        clock.advance(TTL_MS + 1)
        assert staging.resolve(token) == staging.resolve("unknown")

    def test_ttl_is_measured_from_staging_not_last_read(self, staging, clock):
        token = staging.stage(OrderFilter())
        clock.advance(TTL_MS - 10)
        assert staging.resolve(token) is not None
        clock.advance(20)
        assert staging.resolve(token) is None


class TestCleanupExpired:
    def test_removes_only_expired_entries(self, staging, clock):
        old = staging.stage(OrderFilter(customer="old"))
        clock.advance(TTL_MS // 2)
        fresh = staging.stage(OrderFilter(customer="fresh"))
        clock.advance(TTL_MS // 2 + 1)

        removed = staging.cleanup_expired()

        assert removed == 1
        assert staging.resolve(old) is None
        assert staging.resolve(fresh) == OrderFilter(customer="fresh")

    def test_nothing_to_remove(self, staging):
        staging.stage(OrderFilter())
        assert staging.cleanup_expired() == 0
        assert len(staging) == 1
