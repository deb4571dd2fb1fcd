"""Tests for the operator command line tool."""

import json
from unittest.mock import Mock

import pytest

from submission_queue import QueueStore, SubmissionStatus
from submission_queue.admin import main
from submission_queue.database import create_db_engine, create_session_factory, init_db
from submission_queue.models import Submission
from submission_queue.mqtt import NoOpBroadcaster, shutdown_broadcaster


@pytest.fixture
def database_url(tmp_path):
    """File-backed queue database with two queued and one failed submission."""
    url = f"sqlite:///{tmp_path}/queue.db"
    engine = create_db_engine(url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    with session_factory() as session:
        session.add_all(
            [
                Submission(id="s1", status=SubmissionStatus.pending.value),
                Submission(id="s2", status=SubmissionStatus.pending.value),
                Submission(
                    id="f1",
                    status=SubmissionStatus.failed.value,
                    error_message="Retries exhausted after 5 attempts. Last error: HTTP 503",
                ),
            ]
        )
        session.commit()

    store = QueueStore(session_factory, broadcaster=NoOpBroadcaster())
    store.enqueue("s1", priority=7)
    store.enqueue("s2", priority=3)

    engine.dispose()
    return url


def run(capsys, database_url, *argv):
    code = main(["--database-url", database_url, *argv])
    captured = capsys.readouterr()
    return code, captured


class TestAdminCommands:
    def test_status(self, capsys, database_url):
        code, captured = run(capsys, database_url, "status")

        assert code == 0
        status = json.loads(captured.out)
        assert status["eligible"] == 2
        assert status["failed"] == 1
        assert status["total"] == 2

    def test_list(self, capsys, database_url):
        code, captured = run(capsys, database_url, "list", "--limit", "1")

        assert code == 0
        listing = json.loads(captured.out)
        assert listing["total"] == 2
        assert [item["submission_id"] for item in listing["items"]] == ["s2"]

    def test_retry(self, capsys, database_url):
        code, _ = run(capsys, database_url, "retry", "f1")
        assert code == 0

        _, captured = run(capsys, database_url, "list")
        items = json.loads(captured.out)["items"]
        assert items[0]["submission_id"] == "f1"
        assert items[0]["priority"] == 1
        assert items[0]["status"] == SubmissionStatus.pending.value

    def test_retry_all(self, capsys, database_url):
        code, captured = run(capsys, database_url, "retry-all")

        assert code == 0
        assert json.loads(captured.out) == {"retried": 1}

    def test_set_priority(self, capsys, database_url):
        code, _ = run(capsys, database_url, "set-priority", "s1", "1")
        assert code == 0

        _, captured = run(capsys, database_url, "list")
        items = json.loads(captured.out)["items"]
        assert [item["submission_id"] for item in items] == ["s1", "s2"]

    def test_purge(self, capsys, database_url):
        code, captured = run(capsys, database_url, "purge", "--yes")

        assert code == 0
        assert json.loads(captured.out) == {"purged": 2}

    def test_prune(self, capsys, database_url):
        engine = create_db_engine(database_url)
        session_factory = create_session_factory(engine)
        with session_factory() as session:
            session.get(Submission, "s1").status = SubmissionStatus.submitted.value
            session.commit()
        engine.dispose()

        code, captured = run(capsys, database_url, "prune")

        assert code == 0
        assert json.loads(captured.out) == {"pruned": 1}

        _, captured = run(capsys, database_url, "list")
        items = json.loads(captured.out)["items"]
        assert [item["submission_id"] for item in items] == ["s2"]

    @pytest.mark.parametrize("argv", [("status",), ("purge",)])
    def test_broadcaster_shut_down_on_exit(self, capsys, database_url, monkeypatch, argv):
        """Test the broadcaster is released after both successful and failed commands."""
        shutdown = Mock(wraps=shutdown_broadcaster)
        monkeypatch.setattr("submission_queue.admin.shutdown_broadcaster", shutdown)

        _ = run(capsys, database_url, *argv)

        shutdown.assert_called_once_with()


class TestAdminErrors:
    def test_purge_requires_confirmation(self, capsys, database_url):
        code, captured = run(capsys, database_url, "purge")

        assert code == 2
        assert "--yes" in json.loads(captured.err)["error"]

        _, captured = run(capsys, database_url, "status")
        assert json.loads(captured.out)["total"] == 2

    def test_invalid_priority(self, capsys, database_url):
        code, captured = run(capsys, database_url, "set-priority", "s1", "11")

        assert code == 2
        assert "error" in json.loads(captured.err)

    def test_unknown_entry(self, capsys, database_url):
        code, _ = run(capsys, database_url, "set-priority", "missing", "2")
        assert code == 2

    def test_unknown_submission(self, capsys, database_url):
        code, _ = run(capsys, database_url, "retry", "missing")
        assert code == 2

    def test_missing_command(self, database_url):
        with pytest.raises(SystemExit):
            _ = main(["--database-url", database_url])
