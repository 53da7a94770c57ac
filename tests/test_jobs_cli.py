"""beacon-jobs CLI tests."""

import json

import pytest
import structlog

from beacon import jobs_cli
from beacon.config import settings


@pytest.fixture(autouse=True)
def _sqlite_file(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "local_mode", False)
    monkeypatch.setattr(settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    monkeypatch.setattr(settings, "rate_limit_backend", "database")
    monkeypatch.setattr(jobs_cli, "configure_logging", lambda **kwargs: None)


@pytest.mark.parametrize(
    "job,expected",
    [
        ("escalations", {"evaluated": 0, "escalated": 0, "failed": 0}),
        ("digests", {"users": 0, "sent": 0, "failed": 0, "notifications": 0}),
        ("deliveries", {"processed": 0, "sent": 0, "failed": 0, "retried": 0}),
        ("prune-rate-limit", {"removed": 0}),
    ],
)
def test_jobs_run_against_empty_database(job, expected, capsys):
    assert jobs_cli.main([job]) == 0
    assert json.loads(capsys.readouterr().out.strip().splitlines()[-1]) == expected


def test_unknown_job_rejected():
    with pytest.raises(SystemExit):
        jobs_cli.main(["compact"])


def test_job_run_is_tagged_in_log_context(monkeypatch, capsys):
    bound = []
    monkeypatch.setattr(jobs_cli, "bind_job_context", lambda job, run_id: bound.append((job, run_id)))
    assert jobs_cli.main(["digests", "--limit", "5"]) == 0
    [(job, run_id)] = bound
    assert job == "digests"
    assert run_id.startswith("run_")
    assert structlog.contextvars.get_contextvars() == {}
