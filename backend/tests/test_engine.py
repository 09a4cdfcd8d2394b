"""Tests for the workflow execution engine."""

import itertools

import httpx
import pytest
import structlog

from core.constants import ExecutionStatus, StepStatus, StepType
from core.utils import utcnow_naive
from services.execution_store import SqlExecutionStore
from services.workflow_service import ExecutionService, WorkflowService
from steps.base_step import BaseStep, StepResult
from steps.implementations.http_request import HttpRequestStep
from steps.implementations.send_email import SendEmailStep
from steps.implementations.transform_data import TransformDataStep
from steps.registry import StepRegistry
from workflow.engine import WorkflowEngine
from workflow.models import ExecutionRecord


class MemoryStore:
    """In-memory ExecutionStore."""

    def __init__(self):
        self._ids = itertools.count(1)
        self.finished: list[ExecutionRecord] = []

    async def create_execution(self, workflow_id, user_id, trigger_data=None):
        return ExecutionRecord(
            id=f"ex-{next(self._ids)}",
            workflow_id=workflow_id,
            status=ExecutionStatus.RUNNING,
            started_at=utcnow_naive(),
            trigger_data=trigger_data,
            user_id=user_id,
        )

    async def finish_execution(self, record):
        self.finished.append(record)
        return record


class RecordingStep(BaseStep):
    """Echoes its config; fails when ``fail`` is set."""

    step_type = StepType.TRANSFORM_DATA

    def __init__(self):
        self.calls = []
        self.log_context = []

    async def execute(self, config, context):
        self.calls.append(config)
        self.log_context.append(structlog.contextvars.get_contextvars())
        if config.get("fail"):
            return StepResult.failure(config["fail"])
        if config.get("crash"):
            raise RuntimeError(config["crash"])
        return StepResult(success=True, output=config)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def recorder():
    return RecordingStep()


@pytest.fixture
def engine(store, recorder):
    return WorkflowEngine(StepRegistry({StepType.TRANSFORM_DATA: recorder}), store)


def _steps(*configs):
    return [
        {"id": f"s{i}", "type": "transform_data", "config": config}
        for i, config in enumerate(configs, start=1)
    ]


@pytest.mark.unit
class TestSequentialExecution:

    async def test_all_steps_complete(self, engine, store, recorder, make_definition):
        definition = make_definition(steps=_steps({"n": 1}, {"n": 2}, {"n": 3}))
        record = await engine.execute({**definition, "id": "wf-1"}, "user-1", {"x": 1})

        assert record.status == ExecutionStatus.COMPLETED
        assert record.error_message is None
        assert record.completed_at is not None
        assert [e.step_id for e in record.execution_log] == ["s1", "s2", "s3"]
        assert all(e.status == StepStatus.COMPLETED for e in record.execution_log)
        assert record.execution_log[1].result == {"n": 2}
        assert len(recorder.calls) == 3
        assert store.finished == [record]

    async def test_empty_workflow_completes(self, engine, make_definition):
        record = await engine.execute(make_definition(), None)
        assert record.status == ExecutionStatus.COMPLETED
        assert record.execution_log == []

    async def test_stops_at_first_failure(self, engine, recorder, make_definition):
        definition = make_definition(steps=_steps({"n": 1}, {"fail": "boom"}, {"n": 3}))
        record = await engine.execute(definition, None)

        assert record.status == ExecutionStatus.FAILED
        assert record.error_message == "boom"
        assert len(record.execution_log) == 2
        assert record.execution_log[-1].status == StepStatus.FAILED
        assert record.execution_log[-1].error == "boom"
        assert len(recorder.calls) == 2

    async def test_crashing_step_fails_run(self, engine, make_definition):
        record = await engine.execute(make_definition(steps=_steps({"crash": "kaput"}, {"n": 2})), None)
        assert record.status == ExecutionStatus.FAILED
        assert record.error_message == "kaput"
        assert len(record.execution_log) == 1

    async def test_unknown_step_type(self, engine, recorder, make_definition):
        definition = make_definition(steps=[
            {"id": "a", "type": "teleport", "config": {}},
            {"id": "b", "type": "transform_data", "config": {}},
        ])
        record = await engine.execute(definition, None)

        assert record.status == ExecutionStatus.FAILED
        assert "Unknown step type" in record.error_message
        assert [e.step_id for e in record.execution_log] == ["a"]
        assert recorder.calls == []

    async def test_later_steps_see_earlier_results(self, engine, recorder, make_definition):
        definition = make_definition(steps=_steps(
            {"value": "{{trigger.data.name}}"},
            {"copy": "{{step_s1.value}}", "greeting": "hi {{step_s1.value}}"},
        ))
        record = await engine.execute(definition, None, {"name": "Ada"})

        assert record.status == ExecutionStatus.COMPLETED
        assert recorder.calls[1] == {"copy": "Ada", "greeting": "hi Ada"}

    async def test_runs_do_not_share_state(self, engine, store, make_definition):
        first = await engine.execute(make_definition(steps=_steps({"n": 1})), None, "a")
        second = await engine.execute(make_definition(steps=_steps({"n": 1})), None, "b")
        assert first.id != second.id
        assert first.trigger_data == "a" and second.trigger_data == "b"

    async def test_step_logs_carry_run_ids(self, engine, recorder, make_definition):
        definition = make_definition(steps=_steps({"n": 1}, {"n": 2}))
        record = await engine.execute({**definition, "id": "wf-7"}, None)

        assert recorder.log_context == [{"workflow_id": "wf-7", "execution_id": record.id}] * 2
        assert "execution_id" not in structlog.contextvars.get_contextvars()


@pytest.mark.unit
class TestRealSteps:
    """Workflows over the shipped step executors."""

    async def test_http_result_feeds_email(self, store, fake_relay, json_handler, make_definition):
        relay = fake_relay()
        registry = StepRegistry({
            StepType.HTTP_REQUEST: HttpRequestStep(
                transport=httpx.MockTransport(json_handler({"email": "lead@example.com"}))
            ),
            StepType.SEND_EMAIL: SendEmailStep(relay, sender="autoflow@example.com"),
        })
        engine = WorkflowEngine(registry, store)
        definition = make_definition(steps=[
            {"id": "s1", "type": "http_request",
             "config": {"method": "GET", "url": "https://api.example.com/leads"}},
            {"id": "s2", "type": "send_email",
             "config": {"to": "{{step_s1.data.email}}", "subject": "New lead", "body": "See CRM"}},
        ])

        record = await engine.execute(definition, "user-1")

        assert record.status == ExecutionStatus.COMPLETED
        message, recipients = relay.sent[0]
        assert recipients == ["lead@example.com"]
        assert message["To"] == "lead@example.com"
        assert record.execution_log[1].result["accepted"] == ["lead@example.com"]

    async def test_http_timeout_aborts_run(self, store, fake_relay, make_definition):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        relay = fake_relay()
        registry = StepRegistry({
            StepType.HTTP_REQUEST: HttpRequestStep(transport=httpx.MockTransport(handler)),
            StepType.SEND_EMAIL: SendEmailStep(relay, sender="autoflow@example.com"),
        })
        engine = WorkflowEngine(registry, store)
        definition = make_definition(steps=[
            {"id": "s1", "type": "http_request", "config": {"url": "https://slow.example.com"}},
            {"id": "s2", "type": "send_email", "config": {"to": "ops@example.com"}},
        ])

        record = await engine.execute(definition, None)

        assert record.status == ExecutionStatus.FAILED
        assert "timed out" in record.error_message
        assert len(record.execution_log) == 1
        assert relay.sent == []

    async def test_transform_chain(self, store, make_definition):
        engine = WorkflowEngine(StepRegistry({StepType.TRANSFORM_DATA: TransformDataStep()}), store)
        definition = make_definition(steps=[
            {"id": "paid", "type": "transform_data",
             "config": {"operation": "filter", "expression": 'status == "paid"'}},
            {"id": "total", "type": "transform_data",
             "config": {"operation": "reduce", "expression": "sum:total", "input": "{{step_paid}}"}},
        ])
        orders = [{"status": "paid", "total": 4}, {"status": "open", "total": 9}, {"status": "paid", "total": 1}]

        record = await engine.execute(definition, None, orders)

        assert record.status == ExecutionStatus.COMPLETED
        assert record.execution_log[-1].result == 5


@pytest.mark.integration
class TestSqlExecutionStore:

    async def test_run_is_persisted(self, session_factory, make_definition):
        async with session_factory() as session:
            wf = await WorkflowService(session).create_workflow(
                name="Persisted", definition=make_definition(steps=_steps({"n": 1}))
            )
            await session.commit()

        engine = WorkflowEngine(
            StepRegistry({StepType.TRANSFORM_DATA: RecordingStep()}),
            SqlExecutionStore(session_factory),
        )
        record = await engine.execute(wf.definition, "user-1", {"source": "test"})

        async with session_factory() as session:
            executions, total = await ExecutionService(session).list_for_workflow(wf.id)

        assert total == 1
        stored = executions[0]
        assert stored.id == record.id
        assert stored.status == ExecutionStatus.COMPLETED.value
        assert stored.user_id == "user-1"
        assert stored.trigger_data == {"source": "test"}
        assert stored.completed_at is not None
        assert stored.execution_log[0]["stepId"] == "s1"
        assert stored.execution_log[0]["status"] == "completed"

    async def test_failed_run_keeps_error(self, session_factory, make_definition):
        async with session_factory() as session:
            wf = await WorkflowService(session).create_workflow(
                name="Failing", definition=make_definition(steps=_steps({"fail": "nope"}))
            )
            await session.commit()

        engine = WorkflowEngine(
            StepRegistry({StepType.TRANSFORM_DATA: RecordingStep()}),
            SqlExecutionStore(session_factory),
        )
        record = await engine.execute(wf.definition, None)

        async with session_factory() as session:
            stored = await ExecutionService(session).get_by_id(record.id)

        assert stored.status == ExecutionStatus.FAILED.value
        assert stored.error_message == "nope"
        assert stored.execution_log[0]["error"] == "nope"
