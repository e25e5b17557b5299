"""Tests for the import job lifecycle."""

import threading

import pytest

from hontodana.portability.errors import ErrorKind, validation_error
from hontodana.portability.jobs import (
    ImportJobManager,
    ImportSummary,
    InMemoryCancellationFlags,
    JobStatus,
)


@pytest.fixture
def job(manager):
    return manager.create_job("user-1", rollback_id="rb-1")


class TestJobStatus:
    def test_terminal_states(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert JobStatus.CANCELLED.is_terminal
        assert not JobStatus.QUEUED.is_terminal
        assert not JobStatus.PROCESSING.is_terminal

    def test_allowed_transitions(self):
        assert JobStatus.QUEUED.can_transition_to(JobStatus.PROCESSING)
        assert JobStatus.QUEUED.can_transition_to(JobStatus.CANCELLED)
        assert not JobStatus.QUEUED.can_transition_to(JobStatus.COMPLETED)
        assert not JobStatus.COMPLETED.can_transition_to(JobStatus.PROCESSING)


class TestCreation:
    def test_new_job_is_queued(self, manager, job):
        status = manager.get_status(job.job_id)

        assert status.status == JobStatus.QUEUED
        assert status.progress == 0
        assert status.rollback_id == "rb-1"
        assert status.errors is None

    def test_unknown_job(self, manager):
        assert manager.get_status("missing") is None
        assert manager.get_job("missing") is None

    def test_jobs_are_listed_per_user(self, manager, job):
        manager.create_job("user-2")
        jobs = manager.job_store.list_for_user("user-1")
        assert [j.job_id for j in jobs] == [job.job_id]

    def test_status_is_a_copy(self, manager, job):
        fetched = manager.get_job(job.job_id)
        fetched.progress = 99
        assert manager.get_status(job.job_id).progress == 0


class TestTransitions:
    """Tests for the state machine."""

    def test_happy_path(self, manager, job):
        assert manager.mark_processing(job.job_id)
        assert manager.update_progress(job.job_id, 5, 10)
        assert manager.get_status(job.job_id).progress == 50

        summary = ImportSummary(books_added=10, total_processed=10)
        assert manager.complete(job.job_id, summary)

        status = manager.get_status(job.job_id)
        assert status.status == JobStatus.COMPLETED
        assert status.progress == 100
        assert status.summary.books_added == 10
        assert status.estimated_time_remaining is None

    def test_cannot_complete_queued_job(self, manager, job):
        assert not manager.complete(job.job_id, ImportSummary())
        assert manager.get_status(job.job_id).status == JobStatus.QUEUED

    def test_terminal_states_are_final(self, manager, job):
        manager.mark_processing(job.job_id)
        manager.complete(job.job_id, ImportSummary())

        assert not manager.fail(job.job_id, validation_error("title", "", "Title is required"))
        assert not manager.mark_cancelled(job.job_id)
        assert manager.get_status(job.job_id).status == JobStatus.COMPLETED

    def test_progress_never_decreases(self, manager, job):
        manager.mark_processing(job.job_id)
        manager.update_progress(job.job_id, 8, 10)

        assert not manager.update_progress(job.job_id, 2, 10)
        assert manager.get_status(job.job_id).progress == 80

    def test_progress_ignored_unless_processing(self, manager, job):
        assert not manager.update_progress(job.job_id, 5, 10)
        assert not manager.update_progress(job.job_id, 5, 0)

    def test_progress_estimates_remaining_time(self, manager, job):
        manager.mark_processing(job.job_id)
        manager.update_progress(job.job_id, 1, 100)
        assert manager.get_status(job.job_id).estimated_time_remaining is not None

    def test_fail_freezes_progress(self, manager, job):
        manager.mark_processing(job.job_id)
        manager.update_progress(job.job_id, 3, 10)
        error = validation_error("title", "", "Title is required", 4)

        assert manager.fail(job.job_id, error, ImportSummary(books_added=2))

        status = manager.get_status(job.job_id)
        assert status.status == JobStatus.FAILED
        assert status.progress == 30
        assert status.errors[0].kind == ErrorKind.VALIDATION_ERROR
        assert status.summary.books_added == 2

    def test_fail_without_error_is_system_error(self, manager, job):
        manager.fail(job.job_id)
        assert manager.get_status(job.job_id).errors[0].kind == ErrorKind.SYSTEM_ERROR


class TestCancellation:
    def test_queued_job_cancels_immediately(self, manager, job):
        assert manager.request_cancel(job.job_id)

        assert manager.get_status(job.job_id).status == JobStatus.CANCELLED
        assert not manager.is_cancel_requested(job.job_id)

    def test_processing_job_is_flagged(self, manager, job):
        manager.mark_processing(job.job_id)

        assert manager.request_cancel(job.job_id)
        assert manager.is_cancel_requested(job.job_id)
        assert manager.get_status(job.job_id).status == JobStatus.PROCESSING

        manager.mark_cancelled(job.job_id)
        assert manager.get_status(job.job_id).status == JobStatus.CANCELLED

    def test_worker_starting_during_cancel_keeps_flag(self, manager, job, monkeypatch):
        request = manager.cancel_flags.request

        def worker_starts_first(job_id):
            manager.mark_processing(job_id)
            request(job_id)

        monkeypatch.setattr(manager.cancel_flags, "request", worker_starts_first)

        assert manager.request_cancel(job.job_id)
        assert manager.get_status(job.job_id).status == JobStatus.PROCESSING
        assert manager.is_cancel_requested(job.job_id)

        # The worker stops and reports what it wrote
        assert manager.mark_cancelled(job.job_id, ImportSummary(books_added=2))
        status = manager.get_status(job.job_id)
        assert status.status == JobStatus.CANCELLED
        assert status.summary.books_added == 2
        assert not manager.is_cancel_requested(job.job_id)

    def test_job_finishing_during_cancel(self, manager, job, monkeypatch):
        request = manager.cancel_flags.request

        def job_finishes_first(job_id):
            manager.mark_processing(job_id)
            manager.complete(job_id, ImportSummary())
            request(job_id)

        monkeypatch.setattr(manager.cancel_flags, "request", job_finishes_first)

        assert not manager.request_cancel(job.job_id)
        assert manager.get_status(job.job_id).status == JobStatus.COMPLETED
        assert len(manager.cancel_flags) == 0

    def test_cancel_unknown_or_finished(self, manager, job):
        assert not manager.request_cancel("missing")
        manager.mark_processing(job.job_id)
        manager.complete(job.job_id, ImportSummary())
        assert not manager.request_cancel(job.job_id)

    def test_flags(self):
        flags = InMemoryCancellationFlags()
        flags.request("a")

        assert flags.is_requested("a")
        assert not flags.is_requested("b")
        flags.clear("a")
        assert not flags.is_requested("a")

    def test_polling_holds_no_flags(self, manager, job):
        for _ in range(3):
            assert not manager.is_cancel_requested(job.job_id)
        assert not manager.is_cancel_requested("missing")

        assert len(manager.cancel_flags) == 0


class TestWorkers:
    """Tests for running job work on a thread."""

    def test_work_runs_on_its_own_thread(self, manager, job):
        seen = {}

        def work():
            seen["thread"] = threading.current_thread().name
            manager.mark_processing(job.job_id)
            manager.complete(job.job_id, ImportSummary())

        manager.start(job.job_id, work)
        status = manager.wait(job.job_id, timeout=5)

        assert status.status == JobStatus.COMPLETED
        assert seen["thread"] == f"import-{job.job_id}"

    def test_crashing_work_fails_the_job(self, manager, job):
        def work():
            manager.mark_processing(job.job_id)
            raise RuntimeError("boom")

        manager.start(job.job_id, work)
        status = manager.wait(job.job_id, timeout=5)

        assert status.status == JobStatus.FAILED
        assert status.errors[0].kind == ErrorKind.SYSTEM_ERROR
        assert "boom" not in status.errors[0].message

    def test_finished_worker_is_forgotten(self, manager, job):
        def work():
            manager.mark_processing(job.job_id)
            manager.request_cancel(job.job_id)
            manager.fail(job.job_id)

        manager.start(job.job_id, work)
        assert manager.wait(job.job_id, timeout=5).status == JobStatus.FAILED

        assert not manager.has_worker(job.job_id)
        assert len(manager.cancel_flags) == 0
        assert manager.wait(job.job_id).status == JobStatus.FAILED

    def test_wait_without_worker(self, manager, job):
        assert manager.wait(job.job_id).status == JobStatus.QUEUED


def test_manager_defaults():
    manager = ImportJobManager()
    assert manager.create_job("user-1").status == JobStatus.QUEUED
