"""Tests for the step executors and the step registry."""

import json
import smtplib

import httpx
import pytest

from app.config import Settings
from core.constants import StepType
from core.exceptions import UnknownStepTypeError
from steps.implementations.http_request import HttpRequestStep
from steps.implementations.send_email import SendEmailStep
from steps.implementations.transform_data import TransformDataStep
from steps.registry import StepRegistry, default_step_registry
from workflow.models import ExecutionContext


@pytest.fixture
def ctx():
    return ExecutionContext(workflow_id="wf-1", execution_id="ex-1", trigger_data={"n": 1})


# ─── http_request ─────────────────────────────────────────────

@pytest.mark.unit
class TestHttpRequestStep:

    async def test_success_shape(self, ctx, json_handler):
        handler = json_handler({"email": "a@example.com"})
        step = HttpRequestStep(transport=httpx.MockTransport(handler))

        result = await step.run({"method": "GET", "url": "https://api.example.com/leads"}, ctx)

        assert result.success
        assert result.output["status"] == 200
        assert result.output["data"] == {"email": "a@example.com"}
        assert "content-type" in result.output["headers"]

    async def test_json_body_and_headers(self, ctx, json_handler):
        handler = json_handler({})
        step = HttpRequestStep(transport=httpx.MockTransport(handler))

        await step.run(
            {
                "method": "post",
                "url": "https://api.example.com/items",
                "headers": {"X-Token": "abc"},
                "body": {"name": "widget"},
            },
            ctx,
        )

        sent = handler.requests[0]
        assert sent.method == "POST"
        assert sent.headers["X-Token"] == "abc"
        assert json.loads(sent.content) == {"name": "widget"}

    async def test_text_response(self, ctx):
        step = HttpRequestStep(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="pong"))
        )
        result = await step.run({"url": "https://api.example.com/ping"}, ctx)
        assert result.output["data"] == "pong"

    async def test_non_2xx_fails_with_status(self, ctx, json_handler):
        step = HttpRequestStep(transport=httpx.MockTransport(json_handler({"error": "nope"}, 404)))
        result = await step.run({"url": "https://api.example.com/missing"}, ctx)

        assert not result.success
        assert "404" in result.error
        assert result.output["status"] == 404

    async def test_timeout(self, ctx):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        step = HttpRequestStep(transport=httpx.MockTransport(handler))
        result = await step.run({"url": "https://slow.example.com"}, ctx)

        assert not result.success
        assert "timed out" in result.error
        assert "30" in result.error

    async def test_connection_error(self, ctx):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        step = HttpRequestStep(transport=httpx.MockTransport(handler))
        result = await step.run({"url": "https://down.example.com"}, ctx)

        assert not result.success
        assert "connection refused" in result.error

    @pytest.mark.parametrize("config", [{}, {"url": "ftp://example.com"}, {"url": "https://x.io", "method": "BREW"}])
    async def test_invalid_config(self, ctx, config, json_handler):
        step = HttpRequestStep(transport=httpx.MockTransport(json_handler()))
        result = await step.run(config, ctx)
        assert not result.success


# ─── send_email ───────────────────────────────────────────────

@pytest.mark.unit
class TestSendEmailStep:

    async def test_sends_message(self, ctx, fake_relay):
        relay = fake_relay()
        step = SendEmailStep(relay, sender="autoflow@example.com")

        result = await step.run(
            {
                "to": "a@example.com, b@example.com",
                "cc": ["c@example.com"],
                "bcc": "hidden@example.com",
                "subject": "New lead",
                "body": "Hello",
            },
            ctx,
        )

        assert result.success
        assert result.output["accepted"] == [
            "a@example.com", "b@example.com", "c@example.com", "hidden@example.com",
        ]
        assert result.output["messageId"].startswith("<")

        message, recipients = relay.sent[0]
        assert message["Subject"] == "New lead"
        assert message["From"] == "autoflow@example.com"
        assert "hidden@example.com" not in str(message)
        assert "hidden@example.com" in recipients
        assert message.get_content().strip() == "Hello"

    async def test_refused_recipients_not_accepted(self, ctx, fake_relay):
        relay = fake_relay(refused={"b@example.com"})
        step = SendEmailStep(relay, sender="autoflow@example.com")

        result = await step.run({"to": ["a@example.com", "b@example.com"], "subject": "s"}, ctx)

        assert result.success
        assert result.output["accepted"] == ["a@example.com"]

    async def test_all_refused_fails(self, ctx, fake_relay):
        relay = fake_relay(refused={"a@example.com"})
        step = SendEmailStep(relay, sender="autoflow@example.com")
        result = await step.run({"to": "a@example.com"}, ctx)
        assert not result.success

    async def test_relay_error_fails(self, ctx, fake_relay):
        relay = fake_relay(error=smtplib.SMTPAuthenticationError(535, b"bad credentials"))
        step = SendEmailStep(relay, sender="autoflow@example.com")

        result = await step.run({"to": "a@example.com", "subject": "s", "body": "b"}, ctx)

        assert not result.success
        assert "Email delivery failed" in result.error

    async def test_missing_recipient(self, ctx, fake_relay):
        step = SendEmailStep(fake_relay(), sender="autoflow@example.com")
        result = await step.run({"subject": "s"}, ctx)
        assert not result.success
        assert "to" in result.error


# ─── transform_data ───────────────────────────────────────────

ORDERS = [
    {"id": 1, "status": "paid", "total": 10, "customer": {"email": "a@example.com"}},
    {"id": 2, "status": "open", "total": 5, "customer": {"email": "b@example.com"}},
    {"id": 3, "status": "paid", "total": 7.5, "customer": {}},
]


@pytest.mark.unit
class TestTransformDataStep:

    async def test_map(self, ctx):
        result = await TransformDataStep().run(
            {"operation": "map", "expression": "customer.email", "input": ORDERS}, ctx
        )
        assert result.output == ["a@example.com", "b@example.com", None]

    async def test_filter_equality(self, ctx):
        result = await TransformDataStep().run(
            {"operation": "filter", "expression": 'status == "paid"', "input": ORDERS}, ctx
        )
        assert [o["id"] for o in result.output] == [1, 3]

    async def test_filter_not_equal_number(self, ctx):
        result = await TransformDataStep().run(
            {"operation": "filter", "expression": "total != 5", "input": ORDERS}, ctx
        )
        assert [o["id"] for o in result.output] == [1, 3]

    async def test_filter_truthy(self, ctx):
        result = await TransformDataStep().run(
            {"operation": "filter", "expression": "customer.email", "input": ORDERS}, ctx
        )
        assert [o["id"] for o in result.output] == [1, 2]

    @pytest.mark.parametrize("expression", ["total >= 10", "total < 5", "id = 1"])
    async def test_filter_rejects_other_comparisons(self, ctx, expression):
        result = await TransformDataStep().run(
            {"operation": "filter", "expression": expression, "input": ORDERS}, ctx
        )
        assert not result.success
        assert result.error.startswith("Transform failed: Unsupported filter comparison")

    @pytest.mark.parametrize(
        "expression,expected",
        [("count", 3), ("sum:total", 22.5), ("max:total", 10), ("min:id", 1), ("avg:id", 2)],
    )
    async def test_reduce(self, ctx, expression, expected):
        result = await TransformDataStep().run(
            {"operation": "reduce", "expression": expression, "input": ORDERS}, ctx
        )
        assert result.output == expected

    async def test_defaults_to_trigger_data(self):
        ctx = ExecutionContext(workflow_id="wf", execution_id="ex", trigger_data=[1, 2, 3])
        result = await TransformDataStep().run({"operation": "reduce", "expression": "sum"}, ctx)
        assert result.output == 6

    async def test_unknown_operation(self, ctx):
        result = await TransformDataStep().run({"operation": "explode", "input": []}, ctx)
        assert not result.success
        assert "Unknown transform operation" in result.error

    async def test_non_list_input_fails(self, ctx):
        result = await TransformDataStep().run({"operation": "map", "expression": "a", "input": {"a": 1}}, ctx)
        assert not result.success

    async def test_registered_operation(self, ctx):
        step = TransformDataStep()
        step.register_operation("reverse", lambda data, expression: list(reversed(data)))
        result = await step.run({"operation": "reverse", "input": [1, 2, 3]}, ctx)
        assert result.output == [3, 2, 1]
        # Other instances keep the default table
        other = await TransformDataStep().run({"operation": "reverse", "input": [1]}, ctx)
        assert not other.success


# ─── registry ─────────────────────────────────────────────────

@pytest.mark.unit
class TestStepRegistry:

    def test_default_registry_has_all_types(self, fake_relay):
        registry = default_step_registry(Settings(), mail_relay=fake_relay())
        assert sorted(registry.available_types) == sorted(t.value for t in StepType)
        assert isinstance(registry.get("http_request"), HttpRequestStep)

    @pytest.mark.parametrize("step_type", ["delay", "", "HTTP_REQUEST"])
    def test_unknown_type(self, step_type, fake_relay):
        registry = default_step_registry(Settings(), mail_relay=fake_relay())
        with pytest.raises(UnknownStepTypeError) as exc_info:
            registry.get(step_type)
        assert "Unknown step type" in exc_info.value.message

    def test_known_type_without_executor(self):
        registry = StepRegistry({StepType.TRANSFORM_DATA: TransformDataStep()})
        with pytest.raises(UnknownStepTypeError):
            registry.get("send_email")

    def test_http_timeout_from_settings(self, fake_relay):
        registry = default_step_registry(Settings(HTTP_STEP_TIMEOUT=12.5), mail_relay=fake_relay())
        assert registry.get("http_request").timeout == 12.5
