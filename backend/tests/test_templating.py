"""Tests for placeholder resolution in step configs."""

import copy

import pytest

from workflow.models import ExecutionContext
from workflow.templating import UNRESOLVED, TemplateResolver


def _ctx(trigger_data=None, **step_results):
    ctx = ExecutionContext(workflow_id="wf-1", execution_id="ex-1", trigger_data=trigger_data)
    ctx.step_results.update(step_results)
    return ctx


@pytest.mark.unit
class TestStepReferences:
    """{{step_<id>.<path>}} lookups."""

    def test_walks_nested_result(self):
        ctx = _ctx(s1={"data": {"email": "a@example.com"}})
        resolved = TemplateResolver.resolve({"to": "{{step_s1.data.email}}"}, ctx)
        assert resolved == {"to": "a@example.com"}

    def test_whole_placeholder_keeps_type(self):
        ctx = _ctx(s1={"status": 200, "data": {"items": [1, 2, 3]}})
        resolved = TemplateResolver.resolve(
            {"code": "{{step_s1.status}}", "items": "{{ step_s1.data.items }}"}, ctx
        )
        assert resolved["code"] == 200
        assert resolved["items"] == [1, 2, 3]

    def test_list_index(self):
        ctx = _ctx(s1={"rows": [{"id": "x"}, {"id": "y"}]})
        assert TemplateResolver.resolve({"v": "{{step_s1.rows.1.id}}"}, ctx) == {"v": "y"}

    def test_bare_step_reference_returns_whole_result(self):
        ctx = _ctx(s1={"a": 1})
        assert TemplateResolver.resolve({"v": "{{step_s1}}"}, ctx) == {"v": {"a": 1}}

    def test_full_segment_fallback(self):
        ctx = _ctx(step_1={"ok": True})
        assert TemplateResolver.resolve({"v": "{{step_1.ok}}"}, ctx) == {"v": True}

    def test_missing_path_left_untouched(self):
        ctx = _ctx(s1={"data": {}})
        config = {"to": "{{step_s1.data.email}}", "cc": "{{step_nope.x}}"}
        assert TemplateResolver.resolve(config, ctx) == config

    def test_index_out_of_range_left_untouched(self):
        ctx = _ctx(s1={"rows": []})
        assert TemplateResolver.resolve({"v": "{{step_s1.rows.0}}"}, ctx) == {"v": "{{step_s1.rows.0}}"}


@pytest.mark.unit
class TestTriggerData:

    def test_trigger_data(self):
        ctx = _ctx(trigger_data={"order": {"id": 7}})
        assert TemplateResolver.resolve({"v": "{{trigger.data}}"}, ctx) == {"v": {"order": {"id": 7}}}

    def test_trigger_data_path(self):
        ctx = _ctx(trigger_data={"order": {"id": 7}})
        assert TemplateResolver.resolve({"v": "{{trigger.data.order.id}}"}, ctx) == {"v": 7}

    def test_absent_trigger_data_unresolved(self):
        ctx = _ctx()
        assert TemplateResolver.resolve({"v": "{{trigger.data}}"}, ctx) == {"v": "{{trigger.data}}"}


@pytest.mark.unit
class TestEmbeddedPlaceholders:

    def test_string_spliced_verbatim(self):
        ctx = _ctx(s1={"name": "Ada"})
        resolved = TemplateResolver.resolve({"body": "Hello {{step_s1.name}}!"}, ctx)
        assert resolved == {"body": "Hello Ada!"}

    def test_non_string_spliced_as_json(self):
        ctx = _ctx(s1={"ids": [1, 2], "n": 3})
        resolved = TemplateResolver.resolve({"body": "ids={{step_s1.ids}} n={{step_s1.n}}"}, ctx)
        assert resolved == {"body": "ids=[1, 2] n=3"}

    def test_partial_resolution(self):
        ctx = _ctx(s1={"name": "Ada"})
        resolved = TemplateResolver.resolve({"body": "{{step_s1.name}} / {{step_s9.x}}"}, ctx)
        assert resolved == {"body": "Ada / {{step_s9.x}}"}


@pytest.mark.unit
class TestStructuralWalk:

    def test_nested_containers_and_untouched_leaves(self):
        ctx = _ctx(s1={"v": "x"})
        config = {
            "headers": {"X-Id": "{{step_s1.v}}"},
            "list": ["{{step_s1.v}}", 5, None, True],
            "timeout": 10,
            "{{step_s1.v}}": "key is not rewritten",
        }
        resolved = TemplateResolver.resolve(config, ctx)
        assert resolved["headers"] == {"X-Id": "x"}
        assert resolved["list"] == ["x", 5, None, True]
        assert resolved["timeout"] == 10
        assert "{{step_s1.v}}" in resolved

    def test_input_not_mutated(self):
        ctx = _ctx(s1={"v": {"deep": [1]}})
        config = {"a": "{{step_s1.v}}", "b": ["{{step_s1.v.deep}}"]}
        snapshot = copy.deepcopy(config)
        resolved = TemplateResolver.resolve(config, ctx)
        resolved["a"]["deep"].append(2)
        assert config == snapshot
        assert ctx.step_results["s1"] == {"v": {"deep": [1]}}

    def test_idempotent_when_values_have_no_placeholders(self):
        ctx = _ctx(trigger_data={"x": 1}, s1={"y": "z"})
        config = {"a": "{{trigger.data.x}}", "b": "pre {{step_s1.y}}", "c": "{{step_s2.q}}"}
        once = TemplateResolver.resolve(config, ctx)
        assert TemplateResolver.resolve(once, ctx) == once

    @pytest.mark.parametrize("text", ["{{", "}}", "{{}}", "{{ . }}", "{{step_.}}", "{{trigger}}", "{{a}} {{"])
    def test_never_raises_on_malformed(self, text):
        ctx = _ctx(s1={"a": 1})
        assert TemplateResolver.resolve({"v": text}, ctx) == {"v": text}


@pytest.mark.unit
def test_get_path():
    assert TemplateResolver.get_path({"a": [{"b": 1}]}, "a.0.b") == 1
    assert TemplateResolver.get_path({"a": 1}, "") == {"a": 1}
    assert TemplateResolver.get_path({"a": 1}, "b") is UNRESOLVED
