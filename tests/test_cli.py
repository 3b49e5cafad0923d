"""Tests for CLI commands"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from typer.testing import CliRunner

from pkp.core.exceptions import ValidationError
from pkp.jobs.schemas import RunSummary
from pkpctl.main import app


@pytest.fixture
def runner():
    """CLI test runner"""
    return CliRunner()


class TestMainCommands:
    """Test main CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert "pkpctl" in result.stdout
        assert "1.0.0" in result.stdout

    def test_help_lists_jobs(self, runner):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "jobs" in result.stdout


class TestRunCommand:
    @patch("pkpctl.commands.jobs.run_jobs", new_callable=AsyncMock)
    def test_run_reports_summary(self, run_jobs, runner):
        run_jobs.return_value = RunSummary(processed=4, failed=1)

        result = runner.invoke(app, ["jobs", "run", "--batch-limit", "5"])

        assert result.exit_code == 0
        assert "Processed 4 jobs" in result.stdout
        assert "1 jobs failed permanently" in result.stdout
        assert run_jobs.await_args.args[0] == 5

    @patch("pkpctl.commands.jobs.run_jobs", new_callable=AsyncMock)
    def test_run_empty_queue(self, run_jobs, runner):
        run_jobs.return_value = RunSummary()

        result = runner.invoke(app, ["jobs", "run"])

        assert result.exit_code == 0
        assert "Queue is empty" in result.stdout


class TestEnqueueCommand:
    @patch("pkpctl.commands.jobs._enqueue", new_callable=AsyncMock)
    def test_enqueue(self, enqueue, runner):
        job_id, note_id = uuid4(), uuid4()
        enqueue.return_value = (job_id, False)

        result = runner.invoke(
            app,
            [
                "jobs",
                "enqueue",
                "embed_note",
                "--owner",
                "user-1",
                "--payload",
                f'{{"note_id": "{note_id}"}}',
            ],
        )

        assert result.exit_code == 0
        assert f"Enqueued embed_note job {job_id}" in result.stdout
        enqueue.assert_awaited_once_with(
            "user-1", "embed_note", {"note_id": str(note_id)}, False
        )

    @patch("pkpctl.commands.jobs._enqueue", new_callable=AsyncMock)
    def test_enqueue_unique_reports_existing(self, enqueue, runner):
        job_id = uuid4()
        enqueue.return_value = (job_id, True)

        result = runner.invoke(
            app,
            ["jobs", "enqueue", "embed_note", "-o", "user-1", "-p", "{}", "--unique"],
        )

        assert result.exit_code == 0
        assert "Equivalent job already queued" in result.stdout

    def test_enqueue_rejects_bad_json(self, runner):
        result = runner.invoke(
            app, ["jobs", "enqueue", "embed_note", "-o", "user-1", "-p", "{not json"]
        )

        assert result.exit_code == 1
        assert "Payload is not valid JSON" in result.stdout

    def test_enqueue_rejects_unknown_type(self, runner):
        result = runner.invoke(
            app, ["jobs", "enqueue", "send_email", "-o", "user-1", "-p", "{}"]
        )

        assert result.exit_code != 0

    @patch("pkpctl.commands.jobs._enqueue", new_callable=AsyncMock)
    def test_enqueue_validation_error(self, enqueue, runner):
        enqueue.side_effect = ValidationError("Invalid payload for embed_note")

        result = runner.invoke(
            app, ["jobs", "enqueue", "embed_note", "-o", "user-1", "-p", "{}"]
        )

        assert result.exit_code == 1
        assert "Invalid payload for embed_note" in result.stdout


class TestInspectCommands:
    @patch("pkpctl.commands.jobs._fetch_stats", new_callable=AsyncMock)
    def test_stats(self, fetch_stats, runner):
        fetch_stats.return_value = {
            "total_jobs": 3,
            "by_status": {"queued": 1, "failed": 2},
            "by_type": {"caption_ink": 3},
            "queue_depth": 1,
            "stale_leases": 0,
        }

        result = runner.invoke(app, ["jobs", "stats"])

        assert result.exit_code == 0
        assert "Job Queue" in result.stdout
        assert "caption_ink" in result.stdout
        assert "Queue Health" in result.stdout

    @patch("pkpctl.commands.jobs._fetch_job", new_callable=AsyncMock)
    def test_show(self, fetch_job, runner):
        job_id = uuid4()
        fetch_job.return_value = {
            "id": str(job_id),
            "owner": "user-1",
            "type": "generate_pack",
            "status": "failed",
            "attempts": 3,
            "max_attempts": 3,
            "run_after": "2026-10-18T12:00:00+00:00",
            "payload": {"range_start": "2026-10-12", "range_end": "2026-10-18"},
            "last_error": "model overloaded",
        }

        result = runner.invoke(app, ["jobs", "show", str(job_id)])

        assert result.exit_code == 0
        assert "generate_pack" in result.stdout
        assert "model overloaded" in result.stdout

    @patch("pkpctl.commands.jobs._fetch_job", new_callable=AsyncMock)
    def test_show_missing(self, fetch_job, runner):
        fetch_job.return_value = None

        result = runner.invoke(app, ["jobs", "show", str(uuid4())])

        assert result.exit_code == 1
        assert "Job not found" in result.stdout

    @patch("pkpctl.commands.jobs._requeue", new_callable=AsyncMock)
    def test_requeue(self, requeue, runner):
        job_id, new_id = uuid4(), uuid4()
        requeue.return_value = new_id

        result = runner.invoke(app, ["jobs", "requeue", str(job_id)])

        assert result.exit_code == 0
        assert str(new_id) in result.stdout

    @patch("pkpctl.commands.jobs._requeue", new_callable=AsyncMock)
    def test_requeue_not_failed(self, requeue, runner):
        requeue.return_value = None

        result = runner.invoke(app, ["jobs", "requeue", str(uuid4())])

        assert result.exit_code == 1
        assert "No failed job" in result.stdout
