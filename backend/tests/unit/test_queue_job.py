"""
Unit Tests for Queue Job Model
Transition table, row serialization and status projection
"""
import pytest
from datetime import datetime

from dialer.domain.errors import InvalidTransition
from dialer.domain.models.lead import LeadSnapshot
from dialer.domain.models.queue_job import (
    QueueJob,
    QueueJobStatus,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    assert_transition,
)


def make_leads(count: int = 3):
    return [
        LeadSnapshot.model_validate({"first": f"Lead{i}", "phone": f"+1555000000{i}"})
        for i in range(count)
    ]


class TestTransitions:
    """Tests for the status transition table"""

    def test_terminal_states_have_no_exits(self):
        for status in TERMINAL_STATUSES:
            assert ALLOWED_TRANSITIONS[status] == set()

    @pytest.mark.parametrize("target", [
        QueueJobStatus.RUNNING,
        QueueJobStatus.FAILED,
        QueueJobStatus.CANCELLED,
    ])
    def test_queued_exits(self, target):
        assert_transition(QueueJobStatus.QUEUED, target)

    def test_queued_cannot_complete_directly(self):
        with pytest.raises(InvalidTransition):
            assert_transition(QueueJobStatus.QUEUED, QueueJobStatus.COMPLETED)

    def test_running_to_running_is_progress(self):
        assert_transition(QueueJobStatus.RUNNING, QueueJobStatus.RUNNING)

    @pytest.mark.parametrize("terminal", [
        QueueJobStatus.COMPLETED,
        QueueJobStatus.FAILED,
        QueueJobStatus.CANCELLED,
    ])
    def test_cannot_leave_terminal_state(self, terminal):
        with pytest.raises(InvalidTransition):
            assert_transition(terminal, QueueJobStatus.RUNNING)

    def test_accepts_plain_strings(self):
        assert_transition("running", "completed")


class TestQueueJob:
    """Tests for QueueJob"""

    def test_create(self):
        leads = make_leads(3)
        job = QueueJob.create("user-1", leads)

        assert job.owner_id == "user-1"
        assert job.status == QueueJobStatus.QUEUED
        assert job.total_leads == 3
        assert job.current_index == 0
        assert job.initiated == job.completed == job.failed == 0
        assert job.current_conversation_id == ""
        assert job.current_lead == leads[0]
        assert job.lead_at_pointer == leads[0]
        assert not job.is_terminal
        assert not job.is_exhausted

    def test_evolve_returns_copy(self):
        job = QueueJob.create("user-1", make_leads(2))
        running = job.evolve(status=QueueJobStatus.RUNNING, initiated=1)

        assert running.status == QueueJobStatus.RUNNING
        assert running.initiated == 1
        assert job.status == QueueJobStatus.QUEUED
        assert job.initiated == 0
        assert running.updated_at >= job.updated_at

    def test_evolve_rejects_illegal_transition(self):
        job = QueueJob.create("user-1", make_leads(1)).evolve(status=QueueJobStatus.CANCELLED)

        with pytest.raises(InvalidTransition):
            job.evolve(status=QueueJobStatus.RUNNING)

    def test_evolve_without_status_skips_table(self):
        job = QueueJob.create("user-1", make_leads(1)).evolve(status=QueueJobStatus.RUNNING)

        updated = job.evolve(current_conversation_id="conv-1")

        assert updated.status == QueueJobStatus.RUNNING
        assert updated.current_conversation_id == "conv-1"

    def test_exhausted_job_has_no_lead_at_pointer(self):
        job = QueueJob.create("user-1", make_leads(1)).evolve(current_index=1)

        assert job.is_exhausted
        assert job.lead_at_pointer is None

    def test_row_roundtrip(self):
        job = QueueJob.create("user-1", make_leads(2)).evolve(
            status=QueueJobStatus.RUNNING,
            current_conversation_id="conv-1",
            initiated=1,
        )

        row = job.to_row()
        assert row["status"] == "running"
        assert row["leads"][0]["first_name"] == "Lead0"
        assert isinstance(row["created_at"], str)

        restored = QueueJob.from_row(row)
        assert restored == job

    def test_from_row_normalizes_nulls_and_zulu_time(self):
        row = QueueJob.create("user-1", make_leads(1)).to_row()
        row["current_conversation_id"] = None
        row["error"] = None
        row["created_at"] = "2024-05-01T12:00:00Z"

        job = QueueJob.from_row(row)

        assert job.current_conversation_id == ""
        assert job.error == ""
        assert job.created_at.year == 2024
        assert isinstance(job.created_at, datetime)

    def test_status_dict_uses_job_id(self):
        job = QueueJob.create("user-1", make_leads(1))

        status = job.to_status_dict()

        assert status["job_id"] == job.id
        assert "id" not in status
        assert status["total_leads"] == 1
        assert status["status"] == "queued"
