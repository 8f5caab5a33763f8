"""
Unit Tests for Job Stores
In-memory store semantics and the Supabase query shapes for jobs and call logs
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from dialer.domain.models.call import CallOutcome
from dialer.domain.models.call_log import CallLog, CallLogStatus
from dialer.domain.models.lead import LeadSnapshot
from dialer.domain.models.queue_job import QueueJob, QueueJobStatus
from dialer.infrastructure.storage.memory_call_log_store import InMemoryCallLogStore
from dialer.infrastructure.storage.memory_job_store import InMemoryJobStore
from dialer.infrastructure.storage.supabase_agent_directory import SupabaseAgentDirectory
from dialer.infrastructure.storage.supabase_call_log_store import SupabaseCallLogStore
from dialer.infrastructure.storage.supabase_job_store import SupabaseJobStore, ACTIVE_STATUSES


def make_job(owner_id="user-1", count=2, **changes) -> QueueJob:
    leads = [
        LeadSnapshot.model_validate({"first": f"Lead{i}", "phone": f"+1555000000{i}"})
        for i in range(count)
    ]
    job = QueueJob.create(owner_id, leads)
    return job.evolve(**changes) if changes else job


class TestInMemoryJobStore:
    """Tests for InMemoryJobStore"""

    @pytest.mark.asyncio
    async def test_insert_and_get(self):
        store = InMemoryJobStore()
        job = make_job()

        await store.insert_job(job)

        assert await store.get_job(job.id) == job
        assert await store.get_job("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_insert(self):
        store = InMemoryJobStore()
        job = make_job()
        await store.insert_job(job)

        with pytest.raises(ValueError):
            await store.insert_job(job)

    @pytest.mark.asyncio
    async def test_compare_and_advance_matches(self):
        store = InMemoryJobStore()
        job = make_job()
        await store.insert_job(job)

        running = job.evolve(status=QueueJobStatus.RUNNING, current_conversation_id="conv-1")
        assert await store.compare_and_advance(job.id, 0, "", running)

        assert (await store.get_job(job.id)).current_conversation_id == "conv-1"

    @pytest.mark.asyncio
    async def test_compare_and_advance_rejects_stale_expectation(self):
        store = InMemoryJobStore()
        job = make_job(status=QueueJobStatus.RUNNING, current_conversation_id="conv-1")
        await store.insert_job(job)

        assert not await store.compare_and_advance(job.id, 1, "conv-1", job.evolve(current_index=2))
        assert not await store.compare_and_advance(job.id, 0, "conv-2", job.evolve(current_index=1))
        assert not await store.compare_and_advance("missing", 0, "conv-1", job)

        assert (await store.get_job(job.id)).current_index == 0

    @pytest.mark.asyncio
    async def test_compare_and_advance_rejects_terminal_job(self):
        store = InMemoryJobStore()
        job = make_job(status=QueueJobStatus.CANCELLED)
        await store.insert_job(job)

        assert not await store.compare_and_advance(job.id, 0, "", job.evolve(current_index=1))

    @pytest.mark.asyncio
    async def test_stored_rows_are_isolated(self):
        store = InMemoryJobStore()
        job = make_job()
        await store.insert_job(job)

        loaded = await store.get_job(job.id)
        loaded.error = "local edit"

        assert (await store.get_job(job.id)).error == ""

    @pytest.mark.asyncio
    async def test_list_by_owner_newest_first(self):
        store = InMemoryJobStore()
        older = make_job(created_at=datetime.utcnow() - timedelta(hours=1))
        newer = make_job()
        other = make_job(owner_id="user-2")
        for job in (older, newer, other):
            await store.insert_job(job)

        jobs = await store.list_jobs_by_owner("user-1")

        assert [j.id for j in jobs] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_find_by_conversation(self):
        store = InMemoryJobStore()
        active = make_job(status=QueueJobStatus.RUNNING, current_conversation_id="conv-1")
        await store.insert_job(active)

        assert (await store.find_by_conversation("conv-1")).id == active.id
        assert await store.find_by_conversation("conv-2") is None
        assert await store.find_by_conversation("") is None


def mock_supabase(data):
    """Supabase client whose every query chain ends in `data`"""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "upsert", "update", "eq", "in_", "order", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)
    client.table.return_value = query
    return client, query


class TestSupabaseJobStore:
    """Tests for SupabaseJobStore"""

    @pytest.mark.asyncio
    async def test_insert_writes_row(self):
        client, query = mock_supabase([{}])
        job = make_job()

        await SupabaseJobStore(client).insert_job(job)

        client.table.assert_called_with("call_queue_jobs")
        row = query.insert.call_args.args[0]
        assert row["id"] == job.id
        assert row["status"] == "queued"
        assert len(row["leads"]) == 2

    @pytest.mark.asyncio
    async def test_insert_propagates_errors(self):
        client, query = mock_supabase([])
        query.execute.side_effect = RuntimeError("connection refused")

        with pytest.raises(RuntimeError):
            await SupabaseJobStore(client).insert_job(make_job())

    @pytest.mark.asyncio
    async def test_get_job(self):
        job = make_job()
        client, query = mock_supabase([job.to_row()])

        loaded = await SupabaseJobStore(client).get_job(job.id)

        assert loaded == job
        query.eq.assert_called_with("id", job.id)

    @pytest.mark.asyncio
    async def test_get_missing_job(self):
        client, _ = mock_supabase([])

        assert await SupabaseJobStore(client).get_job("missing") is None

    @pytest.mark.asyncio
    async def test_compare_and_advance_filters(self):
        job = make_job(status=QueueJobStatus.RUNNING, current_conversation_id="conv-1")
        client, query = mock_supabase([job.to_row()])
        new_state = job.evolve(current_index=1, current_conversation_id="", completed=1)

        assert await SupabaseJobStore(client).compare_and_advance(job.id, 0, "conv-1", new_state)

        row = query.update.call_args.args[0]
        assert row["current_index"] == 1
        assert row["completed"] == 1
        for immutable in ("id", "owner_id", "leads", "total_leads", "created_at"):
            assert immutable not in row

        eq_calls = [c.args for c in query.eq.call_args_list]
        assert ("id", job.id) in eq_calls
        assert ("current_index", 0) in eq_calls
        assert ("current_conversation_id", "conv-1") in eq_calls
        query.in_.assert_called_with("status", ACTIVE_STATUSES)

    @pytest.mark.asyncio
    async def test_compare_and_advance_lost_race(self):
        job = make_job(status=QueueJobStatus.RUNNING)
        client, _ = mock_supabase([])

        assert not await SupabaseJobStore(client).compare_and_advance(job.id, 0, "", job)

    @pytest.mark.asyncio
    async def test_list_jobs_by_owner(self):
        jobs = [make_job(), make_job()]
        client, query = mock_supabase([j.to_row() for j in jobs])

        loaded = await SupabaseJobStore(client).list_jobs_by_owner("user-1")

        assert [j.id for j in loaded] == [j.id for j in jobs]
        query.order.assert_called_with("created_at", desc=True)

    @pytest.mark.asyncio
    async def test_find_by_conversation_only_active(self):
        job = make_job(status=QueueJobStatus.RUNNING, current_conversation_id="conv-1")
        client, query = mock_supabase([job.to_row()])

        found = await SupabaseJobStore(client).find_by_conversation("conv-1")

        assert found.id == job.id
        query.eq.assert_called_with("current_conversation_id", "conv-1")
        query.in_.assert_called_with("status", ACTIVE_STATUSES)


class TestSupabaseAgentDirectory:
    """Tests for SupabaseAgentDirectory"""

    @pytest.mark.asyncio
    async def test_agent_config(self):
        client, query = mock_supabase([{
            "agent_id": "agent-1",
            "agent_phone_number_id": "phnum-1",
            "twilio_number": "+15559990000",
        }])

        agent = await SupabaseAgentDirectory(client).get_agent_config("user-1")

        assert agent.agent_id == "agent-1"
        assert agent.from_number == "+15559990000"
        client.table.assert_called_with("user_agents")
        query.eq.assert_called_with("user_id", "user-1")

    @pytest.mark.asyncio
    async def test_no_agent(self):
        client, _ = mock_supabase([])

        assert await SupabaseAgentDirectory(client).get_agent_config("user-1") is None

    @pytest.mark.asyncio
    async def test_incomplete_setup(self):
        client, _ = mock_supabase([{"agent_id": "agent-1", "agent_phone_number_id": None}])

        assert await SupabaseAgentDirectory(client).get_agent_config("user-1") is None


def make_call_log(**changes) -> CallLog:
    fields = dict(
        id="conv-1",
        conversation_id="conv-1",
        owner_id="user-1",
        job_id="job-1",
        lead_index=0,
        lead_id="lead-1",
        to_number="+15550000001",
    )
    fields.update(changes)
    return CallLog(**fields)


class TestInMemoryCallLogStore:
    """Tests for InMemoryCallLogStore"""

    @pytest.mark.asyncio
    async def test_complete_sets_outcome(self):
        store = InMemoryCallLogStore()
        await store.insert_call_log(make_call_log())

        await store.complete_call_log("conv-1", CallOutcome.NO_ANSWER, analysis={"summary": "voicemail"})

        log = await store.get_call_log("conv-1")
        assert log.status == CallLogStatus.ENDED
        assert log.outcome == CallOutcome.NO_ANSWER
        assert log.analysis == {"summary": "voicemail"}
        assert log.transcript is None

    @pytest.mark.asyncio
    async def test_rejected_attempts_not_found_by_conversation(self):
        store = InMemoryCallLogStore()
        await store.insert_call_log(make_call_log(id="attempt-1", conversation_id=None, status=CallLogStatus.REJECTED))

        assert await store.get_call_log("") is None
        assert len(await store.list_call_logs_by_job("job-1")) == 1

    @pytest.mark.asyncio
    async def test_list_by_job_in_dialing_order(self):
        store = InMemoryCallLogStore()
        await store.insert_call_log(make_call_log(id="conv-2", conversation_id="conv-2", lead_index=1))
        await store.insert_call_log(make_call_log())
        await store.insert_call_log(make_call_log(id="conv-9", conversation_id="conv-9", job_id="job-2"))

        logs = await store.list_call_logs_by_job("job-1")

        assert [log.conversation_id for log in logs] == ["conv-1", "conv-2"]


class TestSupabaseCallLogStore:
    """Tests for SupabaseCallLogStore"""

    @pytest.mark.asyncio
    async def test_insert_upserts_row(self):
        client, query = mock_supabase([{}])

        await SupabaseCallLogStore(client).insert_call_log(make_call_log(dynamic_variables={"agent_id": "agent-1"}))

        client.table.assert_called_with("call_logs")
        row = query.upsert.call_args.args[0]
        assert row["id"] == "conv-1"
        assert row["user_id"] == "user-1"
        assert row["lead_id"] == "lead-1"
        assert row["status"] == "initiated"
        assert row["outcome"] is None
        assert row["dynamic_variables"] == {"agent_id": "agent-1"}

    @pytest.mark.asyncio
    async def test_insert_propagates_errors(self):
        client, query = mock_supabase([])
        query.execute.side_effect = RuntimeError("connection refused")

        with pytest.raises(RuntimeError):
            await SupabaseCallLogStore(client).insert_call_log(make_call_log())

    @pytest.mark.asyncio
    async def test_complete_updates_by_conversation(self):
        client, query = mock_supabase([{}])

        await SupabaseCallLogStore(client).complete_call_log(
            "conv-1", CallOutcome.COMPLETED, transcript=[{"role": "agent", "message": "Hello"}]
        )

        update = query.update.call_args.args[0]
        assert update["status"] == "ended"
        assert update["outcome"] == "completed"
        assert update["transcript"] == [{"role": "agent", "message": "Hello"}]
        assert "analysis" not in update
        assert update["ended_at"]
        query.eq.assert_called_with("conversation_id", "conv-1")

    @pytest.mark.asyncio
    async def test_get_call_log_parses_row(self):
        row = make_call_log().to_row()
        row["started_at"] = "2026-01-05T10:00:00Z"
        row["cost_cents"] = 12
        client, _ = mock_supabase([row])

        log = await SupabaseCallLogStore(client).get_call_log("conv-1")

        assert log.owner_id == "user-1"
        assert log.lead_id == "lead-1"
        assert log.started_at.year == 2026

    @pytest.mark.asyncio
    async def test_get_missing_call_log(self):
        client, _ = mock_supabase([])

        assert await SupabaseCallLogStore(client).get_call_log("missing") is None
