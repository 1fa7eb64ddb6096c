"""Unit tests for SessionStore and the background sweeper."""

import asyncio
import threading

import pytest

from filejail_backend.errors import PathViolation
from filejail_backend.sessions import SessionStore, run_sweeper


class TestSessionStore:
    def test_resolve_without_token_creates(self, store, root):
        session, created = store.resolve(None)
        assert created
        assert session.current_dir == root
        assert len(session.token) == 32
        assert session.token in store

    def test_resolve_known_token_refreshes(self, store, clock):
        session, _ = store.resolve("")
        clock.advance(10)
        again, created = store.resolve(session.token)
        assert not created
        assert again.token == session.token
        assert again.last_access == session.last_access + 10

    def test_unknown_token_is_replaced_silently(self, store):
        session, created = store.resolve("0" * 32)
        assert created
        assert session.token != "0" * 32
        assert len(store) == 1

    def test_malformed_token_is_replaced(self, store):
        session, created = store.resolve("not-a-token")
        assert created
        assert session.token in store

    def test_update_commits_directory(self, store, root, clock):
        (root / "sub").mkdir()
        session, _ = store.resolve(None)
        clock.advance(5)
        assert store.update(session.token, root / "sub")
        snap = store.get(session.token)
        assert snap.current_dir == root / "sub"
        assert snap.last_access == session.last_access + 5

    def test_update_vanished_token_is_noop(self, store, root):
        assert store.update("f" * 32, root) is False
        assert len(store) == 0

    def test_update_refuses_outside_root(self, store, root):
        session, _ = store.resolve(None)
        with pytest.raises(PathViolation):
            store.update(session.token, root.parent)
        assert store.get(session.token).current_dir == root

    def test_remove_is_idempotent(self, store):
        session, _ = store.resolve(None)
        assert store.remove(session.token)
        assert not store.remove(session.token)
        assert session.token not in store

    def test_sweep_respects_ttl(self, store, clock):
        session, _ = store.resolve(None)
        clock.advance(300)
        assert store.sweep() == 0
        assert session.token in store
        clock.advance(1)
        assert store.sweep() == 1
        assert session.token not in store

    def test_sweep_explicit_threshold(self, store, clock):
        store.resolve(None)
        clock.advance(20)
        assert store.sweep(idle_threshold=60) == 0
        assert store.sweep(idle_threshold=10) == 1

    def test_access_keeps_session_alive(self, store, clock):
        session, _ = store.resolve(None)
        for _ in range(5):
            clock.advance(200)
            store.resolve(session.token)
            store.sweep()
        assert session.token in store

    def test_expired_token_yields_fresh_root_session(self, store, root, clock):
        (root / "deep").mkdir()
        session, _ = store.resolve(None)
        store.update(session.token, root / "deep")
        clock.advance(301)
        store.sweep()
        fresh, created = store.resolve(session.token)
        assert created
        assert fresh.token != session.token
        assert fresh.current_dir == root

    def test_concurrent_resolve(self, root):
        store = SessionStore(root, ttl_seconds=300)
        tokens = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                session, _ = store.resolve(None)
                with lock:
                    tokens.append(session.token)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(set(tokens)) == 400
        assert len(store) == 400


class TestSweeper:
    def test_sweeper_expires_and_cancels(self, store, clock):
        store.resolve(None)
        clock.advance(301)

        async def exercise():
            task = asyncio.create_task(run_sweeper(store, 0.01))
            await asyncio.sleep(0.1)
            assert len(store) == 0
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(exercise())

    def test_sweeper_survives_failing_pass(self, store, monkeypatch):
        calls = []

        def flaky(idle_threshold=None):
            calls.append(idle_threshold)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return 0

        monkeypatch.setattr(store, "sweep", flaky)

        async def exercise():
            task = asyncio.create_task(run_sweeper(store, 0.01))
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(exercise())
        assert len(calls) >= 2
