"""Tests for collaborator interfaces and the bundled adapters."""

import asyncio
import json

import httpx
import pytest
from fakes import RecordingAction

from topicwatch.collaborators import JsonlWorkSource, KeywordDecision, WebhookAction, WebhookNotifier
from topicwatch.config import CollaboratorSpec, PipelineConfig
from topicwatch.daemon.collaborators import (
    Action,
    ActionResult,
    Decision,
    WorkItem,
    build,
    build_collaborators,
    call,
    load_factory,
)
from topicwatch.exceptions import CollaboratorError


class TestWorkItem:
    def test_from_mapping_keeps_extra_fields(self) -> None:
        work_item = WorkItem.from_mapping({"index": "4", "text": "hi", "score": 9})
        assert work_item.index == 4
        assert work_item.author is None
        assert work_item.extra == {"score": 9}
        assert work_item.get("score") == 9

    def test_from_mapping_requires_index(self) -> None:
        with pytest.raises(ValueError, match="no index"):
            WorkItem.from_mapping({"text": "hi"})

    def test_from_mapping_default_index(self) -> None:
        assert WorkItem.from_mapping({"text": "hi"}, default_index=7).index == 7
        assert WorkItem.from_mapping({"index": 2, "text": "hi"}, default_index=7).index == 2

    def test_missing_fields_treats_blank_as_missing(self) -> None:
        work_item = WorkItem(index=1, text="  ", author="a", link=None)
        assert work_item.missing_fields(("text", "author", "link")) == ["text", "link"]


class TestDecision:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("PASS", Decision(passed=True)),
            (" pass ", Decision(passed=True)),
            ("FAIL: off topic", Decision(passed=False, reason="off topic")),
            ("FAIL", Decision(passed=False, reason="FAIL")),
            (False, Decision(passed=False, reason="rejected")),
        ],
        ids=["pass", "padded", "fail-reason", "fail", "bool"],
    )
    def test_coerce(self, value, expected: Decision) -> None:
        assert Decision.coerce(value) == expected

    def test_unrecognized_value_fails(self) -> None:
        assert not Decision.coerce(None).passed


class TestCall:
    def test_sync_and_async(self) -> None:
        async def double_async(x: int) -> int:
            return x * 2

        assert asyncio.run(call(lambda x: x + 1, 1)) == 2
        assert asyncio.run(call(double_async, 4)) == 8


class TestFactories:
    """Test building collaborators from 'module:attribute' references."""

    def test_load_factory(self) -> None:
        assert load_factory("topicwatch.collaborators.keywords:KeywordDecision") is KeywordDecision

    @pytest.mark.parametrize(
        "reference",
        ["topicwatch.nope:Thing", "topicwatch.collaborators.keywords:Nope"],
        ids=["module", "attribute"],
    )
    def test_load_factory_errors(self, reference: str) -> None:
        with pytest.raises(CollaboratorError):
            load_factory(reference)

    def test_build_passes_options(self) -> None:
        spec = CollaboratorSpec(factory="fakes:RecordingAction", options={"fail_indexes": [2]})
        action = build(spec, Action)
        assert isinstance(action, RecordingAction)
        assert action.fail_indexes == {2}

    def test_build_rejects_wrong_protocol(self) -> None:
        spec = CollaboratorSpec(factory="topicwatch.collaborators.keywords:KeywordDecision", options={"keywords": []})
        with pytest.raises(CollaboratorError, match="does not implement Action"):
            build(spec, Action)

    def test_build_wraps_constructor_errors(self) -> None:
        spec = CollaboratorSpec(factory="fakes:RecordingAction", options={"bogus": 1})
        with pytest.raises(CollaboratorError, match="Failed to build"):
            build(spec, Action)

    def test_build_collaborators(self, tmp_path) -> None:
        pipeline = PipelineConfig.model_validate(
            {
                "work_source": {"factory": "topicwatch.collaborators.jsonl:JsonlWorkSource", "options": {"path": str(tmp_path)}},
                "decision": {"factory": "topicwatch.collaborators.keywords:KeywordDecision", "options": {"keywords": ["x"]}},
                "action": {"factory": "fakes:RecordingAction"},
                "notifier": {"factory": "topicwatch.collaborators.webhook:WebhookNotifier", "options": {"url": "http://hook"}},
            }
        )
        collaborators = build_collaborators(pipeline)
        assert isinstance(collaborators.work_source, JsonlWorkSource)
        assert isinstance(collaborators.notifier, WebhookNotifier)


class TestJsonlWorkSource:
    def test_lists_lines_after_cursor(self, tmp_path) -> None:
        path = tmp_path / "demo.jsonl"
        rows = [{"text": "a"}, {"text": "b"}, {"text": "c"}]
        path.write_text("\n".join(json.dumps(r) for r in rows) + "\n")

        items = JsonlWorkSource(str(path)).list_items("demo", "reply-poster", 1)

        assert [(i["index"], i["text"]) for i in items] == [(2, "b"), (3, "c")]

    def test_placeholders(self, tmp_path) -> None:
        (tmp_path / "demo-alert-monitor.jsonl").write_text('{"text": "x"}\n')
        source = JsonlWorkSource(str(tmp_path / "{topic}-{kind}.jsonl"))
        assert len(source.list_items("demo", "alert-monitor", 0)) == 1

    def test_missing_file_is_empty(self, tmp_path) -> None:
        assert JsonlWorkSource(str(tmp_path / "none.jsonl")).list_items("demo", "reply-poster", 0) == []

    def test_non_object_line_raises(self, tmp_path) -> None:
        path = tmp_path / "bad.jsonl"
        path.write_text("[1, 2]\n")
        with pytest.raises(ValueError, match="not a JSON object"):
            JsonlWorkSource(str(path)).list_items("demo", "reply-poster", 0)


class TestKeywordDecision:
    def test_match(self) -> None:
        decision = KeywordDecision(["Python", "rust"]).decide("Learning PYTHON today")
        assert decision == Decision(passed=True, reason="matched 'python'")

    def test_no_match(self) -> None:
        assert not KeywordDecision(["python"]).decide("hello").passed

    def test_min_length(self) -> None:
        decision = KeywordDecision(["py"], min_length=20).decide("py")
        assert decision.reason == "text shorter than 20 characters"


class TestWebhook:
    """Test the httpx-based action and notifier."""

    def test_action_success(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "abc"})

        action = WebhookAction("http://hook/act", transport=httpx.MockTransport(handler))
        result = asyncio.run(action.act(WorkItem(index=3, text="t", author="a", link="l")))

        assert result == ActionResult(success=True, detail="HTTP 201", payload={"id": "abc"})
        assert seen[0]["index"] == 3

    def test_action_http_error_status(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        result = asyncio.run(WebhookAction("http://hook", transport=transport).act(WorkItem(index=1)))
        assert result == ActionResult(success=False, detail="HTTP 500")

    def test_action_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        result = asyncio.run(
            WebhookAction("http://hook", transport=httpx.MockTransport(handler)).act(WorkItem(index=1))
        )
        assert not result.success
        assert "request failed" in result.detail

    def test_notifier_posts_content(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = WebhookNotifier("http://hook", title="Reply Posted", transport=httpx.MockTransport(handler))
        asyncio.run(notifier.notify(WorkItem(index=2, link="https://x/2"), ActionResult(success=True, detail="ok")))

        assert seen == [{"content": "**Reply Posted**\nLink: https://x/2\nResult: ok"}]

    def test_notifier_raises_http_errors(self) -> None:
        """Test a rejected notification surfaces to the caller."""
        transport = httpx.MockTransport(lambda request: httpx.Response(502))
        notifier = WebhookNotifier("http://hook", transport=transport)
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(notifier.notify(WorkItem(index=2), ActionResult(success=True)))
