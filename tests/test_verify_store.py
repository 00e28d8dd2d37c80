"""Tests for webapp.auth.verify_store."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now += timedelta(**kw)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    from webapp.auth.verify_store import VerifyStore
    return VerifyStore(clock=clock)


class TestVerifyStore:
    def test_put_and_get(self, store, clock):
        entry = store.put("tok", b"zip", {"files": []}, 60)
        assert entry.expires_at == clock.now + timedelta(minutes=60)
        got = store.get("tok")
        assert got is entry
        assert got.zip_bytes == b"zip"
        assert len(store) == 1

    def test_unknown_token(self, store):
        assert store.get("nope") is None

    def test_expired_entry_dropped_on_read(self, store, clock):
        store.put("tok", b"zip", {}, 1)
        clock.advance(seconds=59)
        assert store.get("tok") is not None
        clock.advance(seconds=1)
        assert store.get("tok") is None
        assert len(store) == 0

    def test_purge_expired(self, store, clock):
        store.put("short", b"a", {}, 1)
        store.put("long", b"b", {}, 60)
        clock.advance(minutes=5)
        assert store.purge_expired() == 1
        assert len(store) == 1
        assert store.get("long") is not None

    def test_put_sweeps_unread_expired(self, store, clock):
        for i in range(50):
            store.put(f"old{i}", b"z", {}, 60)
        clock.advance(days=30)
        store.put("fresh", b"z", {}, 60)
        assert len(store) == 1
        assert store.get("fresh") is not None

    def test_put_overwrites(self, store):
        store.put("tok", b"a", {}, 5)
        store.put("tok", b"b", {}, 5)
        assert store.get("tok").zip_bytes == b"b"
        assert len(store) == 1


class TestTokens:
    def test_new_token_format(self):
        from webapp.auth.verify_store import new_token
        tok = new_token()
        assert len(tok) == 32
        int(tok, 16)

    def test_new_token_unique(self):
        from webapp.auth.verify_store import new_token
        assert len({new_token() for _ in range(100)}) == 100
