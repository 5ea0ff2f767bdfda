"""Tests for upload session bookkeeping."""

from datetime import timedelta

import pytest

from casitas.assembly.exceptions import InvalidTransitionError
from casitas.assembly.session_store import SessionStore, UploadSession
from casitas.models.status import SessionState

from conftest import FakeClock


def make_session(clock, upload_id="u1", **kwargs) -> UploadSession:
    fields = dict(upload_id=upload_id, file_name="a.jpg", declared_size=10, record_id="r1", created_at=clock())
    fields.update(kwargs)
    return UploadSession(**fields)


class TestUploadSession:
    """Tests for a single session."""

    def test_expected_chunks_prefers_declared_total(self, clock):
        """Test an explicit chunk count wins over the size estimate."""
        session = make_session(clock, declared_size=10, total_chunks=3)

        assert session.expected_chunks(chunk_size=4) == 3

    def test_expected_chunks_from_declared_size(self, clock):
        """Test the chunk count is derived from the size when not declared."""
        assert make_session(clock, declared_size=10).expected_chunks(chunk_size=4) == 3
        assert make_session(clock, declared_size=8).expected_chunks(chunk_size=4) == 2
        assert make_session(clock, declared_size=0).expected_chunks(chunk_size=4) == 1

    def test_first_missing_chunk(self, clock):
        """Test the smallest unpopulated index is reported."""
        session = make_session(clock, total_chunks=4)
        session.chunks = {0: "c0", 2: "c2"}

        assert session.first_missing_chunk(chunk_size=4) == 1

        session.chunks.update({1: "c1", 3: "c3"})
        assert session.first_missing_chunk(chunk_size=4) is None

    def test_valid_transitions(self, clock):
        """Test the happy path through the lifecycle."""
        session = make_session(clock)

        for state in (
            SessionState.RECEIVING,
            SessionState.COMPLETE,
            SessionState.FINALIZING,
            SessionState.FINALIZED,
        ):
            session.transition(state)

        assert session.state == SessionState.FINALIZED

    def test_finalizing_can_fall_back(self, clock):
        """Test a failed finalize returns the session to a resting state."""
        session = make_session(clock, state=SessionState.FINALIZING)

        session.transition(SessionState.COMPLETE)

        assert session.state == SessionState.COMPLETE

    @pytest.mark.parametrize(
        "start, target",
        [
            (SessionState.INITIATED, SessionState.FINALIZING),
            (SessionState.RECEIVING, SessionState.FINALIZED),
            (SessionState.FINALIZED, SessionState.RECEIVING),
        ],
    )
    def test_illegal_transitions(self, clock, start, target):
        """Test transitions outside the table are rejected."""
        session = make_session(clock, state=start)

        with pytest.raises(InvalidTransitionError):
            session.transition(target)

        assert session.state == start


class TestSessionStore:
    """Tests for the in-memory session store."""

    def test_set_get_delete(self, clock):
        """Test basic store operations."""
        store = SessionStore(clock=clock)
        session = make_session(clock)

        assert store.set(session) is None
        assert store.get("u1") is session
        assert len(store) == 1

        assert store.delete("u1") is session
        assert store.get("u1") is None
        assert store.delete("u1") is None

    def test_set_returns_replaced_session(self, clock):
        """Test replacing a session hands back the previous one."""
        store = SessionStore(clock=clock)
        first = make_session(clock)
        second = make_session(clock)
        store.set(first)

        assert store.set(second) is first
        assert store.get("u1") is second

    def test_sweep_removes_only_expired(self):
        """Test sweep drops sessions older than the retention window."""
        clock = FakeClock()
        store = SessionStore(clock=clock)
        store.set(make_session(clock, upload_id="old"))
        clock.advance(timedelta(hours=20))
        store.set(make_session(clock, upload_id="young"))
        clock.advance(timedelta(hours=5))

        removed = store.sweep(timedelta(hours=24))

        assert [s.upload_id for s in removed] == ["old"]
        assert [s.upload_id for s in store.list_all()] == ["young"]

    def test_sweep_ignores_state(self):
        """Test sessions are swept whatever their state."""
        clock = FakeClock()
        store = SessionStore(clock=clock)
        store.set(make_session(clock, state=SessionState.COMPLETE))
        clock.advance(timedelta(hours=25))

        assert len(store.sweep(timedelta(hours=24))) == 1
        assert len(store) == 0
