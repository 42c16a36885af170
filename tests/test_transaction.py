from contextlib import contextmanager

import pytest

import config
import database


class RecordingSession:
    def __init__(self):
        self.events = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.events.append("end_session")
        return False

    @contextmanager
    def start_transaction(self):
        self.events.append("start_transaction")
        try:
            yield
        except Exception:
            self.events.append("abort")
            raise
        self.events.append("commit")


class RecordingClient:
    def __init__(self):
        self.session = RecordingSession()

    def start_session(self):
        return self.session


@pytest.fixture
def recording_client(monkeypatch):
    fake = RecordingClient()
    monkeypatch.setattr(config, "MONGO_TRANSACTIONS", True)
    monkeypatch.setattr(database, "client", fake)
    return fake


def test_transaction_commits_on_success(recording_client):
    with database.transaction() as session:
        assert session is recording_client.session
    assert recording_client.session.events == ["start_transaction", "commit", "end_session"]


def test_transaction_aborts_when_block_raises(recording_client):
    with pytest.raises(RuntimeError):
        with database.transaction():
            raise RuntimeError("write failed")
    assert recording_client.session.events == ["start_transaction", "abort", "end_session"]
    assert "commit" not in recording_client.session.events


def test_transaction_disabled_yields_no_session(monkeypatch):
    monkeypatch.setattr(config, "MONGO_TRANSACTIONS", False)
    with database.transaction() as session:
        assert session is None
