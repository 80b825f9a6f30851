"""Tests for the streamed tool-calling loop.

The model is replaced by ScriptedRouter; tools run for real except where a
test registers its own.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from pydantic import BaseModel

from dropdawn.config import Settings
from dropdawn.services import conversations as conversations_service
from dropdawn.services.chat import ChatPersistence, format_sse_event, stream_chat
from dropdawn.services.llm import LLMError, LLMErrorClass, Provider, ProviderBinding, Turn
from dropdawn.tools import Tool, ToolContext, ToolRegistry, build_default_registry
from tests.helpers import ScriptedRouter, parse_sse, text_step, tool_step

TURNS = [Turn(role="system", content="sys"), Turn(role="user", content="What is 6*7?")]


@pytest.fixture
def binding():
    return ProviderBinding(
        provider=Provider.MISTRAL,
        model_name="mistral-large-latest",
        adapter=MagicMock(),
        api_key="test-key",
    )


@pytest_asyncio.fixture
async def tool_ctx():
    async with httpx.AsyncClient() as client:
        yield ToolContext(http_client=client, settings=Settings())


async def run(router, binding, tool_ctx, *, registry=None, max_steps=5, persistence=None):
    body = ""
    async for event in stream_chat(
        router=router,
        binding=binding,
        turns=TURNS,
        registry=registry or build_default_registry(),
        tool_ctx=tool_ctx,
        max_steps=max_steps,
        persistence=persistence,
    ):
        body += event
    return parse_sse(body)


def names(events):
    return [name for name, _ in events]


class TestFormatSseEvent:
    def test_format(self):
        assert format_sse_event("done", {"status": "complete"}) == (
            'event: done\ndata: {"status": "complete"}\n\n'
        )


class TestStreamChat:
    @pytest.mark.asyncio
    async def test_text_only_reply(self, binding, tool_ctx):
        router = ScriptedRouter([text_step("Hello", " world")])

        events = await run(router, binding, tool_ctx)

        assert names(events) == ["start", "text-delta", "text-delta", "step-finish", "done"]
        assert events[0][1] == {"provider": "Mistral", "model": "mistral-large-latest"}
        assert [data["delta"] for name, data in events if name == "text-delta"] == [
            "Hello",
            " world",
        ]
        assert events[-1][1] == {"status": "complete", "steps": 1}
        assert len(router.requests) == 1

    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, binding, tool_ctx):
        router = ScriptedRouter(
            [
                tool_step(("call_1", "calculate", {"expression": "6*7"}), text="Let me check."),
                text_step("It is 42."),
            ]
        )

        events = await run(router, binding, tool_ctx)

        assert names(events) == [
            "start",
            "text-delta",
            "tool-call",
            "tool-result",
            "step-finish",
            "text-delta",
            "step-finish",
            "done",
        ]
        tool_call = dict(events)["tool-call"]
        assert tool_call == {
            "toolCallId": "call_1",
            "toolName": "calculate",
            "args": {"expression": "6*7"},
            "status": "Calculating...",
        }
        assert dict(events)["tool-result"]["result"] == {"result": 42, "expression": "6*7"}
        assert events[-1][1] == {"status": "complete", "steps": 2}

        # the second step sees the assistant tool call and the tool result
        second = router.requests[1].messages
        assert second[-2].role == "assistant"
        assert second[-2].content == "Let me check."
        assert second[-2].tool_calls[0].id == "call_1"
        assert second[-1].role == "tool"
        assert second[-1].tool_call_id == "call_1"
        assert second[-1].tool_name == "calculate"
        assert '"result": 42' in second[-1].content

        # requests already sent keep the history they were sent with
        first = router.requests[0].messages
        assert first[-1].role == "user"
        assert len(second) == len(first) + 2

    @pytest.mark.asyncio
    async def test_every_step_offers_the_tools(self, binding, tool_ctx):
        router = ScriptedRouter([text_step("hi")])

        await run(router, binding, tool_ctx)

        assert [spec.name for spec in router.requests[0].tools] == build_default_registry().names

    @pytest.mark.asyncio
    async def test_multiple_calls_in_one_step_run_in_order(self, binding, tool_ctx):
        router = ScriptedRouter(
            [
                tool_step(
                    ("a", "calculate", {"expression": "1+1"}),
                    ("b", "calculate", {"expression": "2+2"}),
                ),
                text_step("2 and 4"),
            ]
        )

        events = await run(router, binding, tool_ctx)

        results = [data for name, data in events if name == "tool-result"]
        assert [r["toolCallId"] for r in results] == ["a", "b"]
        assert [r["result"]["result"] for r in results] == [2, 4]

    @pytest.mark.asyncio
    async def test_step_limit(self, binding, tool_ctx):
        call = ("c", "calculate", {"expression": "1"})
        router = ScriptedRouter([tool_step(call) for _ in range(3)])

        events = await run(router, binding, tool_ctx, max_steps=3)

        assert len(router.requests) == 3
        assert names(events).count("step-finish") == 3
        assert names(events).count("tool-result") == 3
        assert events[-1] == ("done", {"status": "complete", "steps": 3})

    @pytest.mark.asyncio
    async def test_tool_errors_are_fed_back(self, binding, tool_ctx):
        router = ScriptedRouter(
            [tool_step(("x", "portfolio", {})), text_step("That tool does not exist.")]
        )

        events = await run(router, binding, tool_ctx)

        assert dict(events)["tool-result"]["result"] == {"error": "Unknown tool: portfolio"}
        assert dict(events)["tool-call"]["status"] == "Using portfolio..."
        assert events[-1][1]["status"] == "complete"

    @pytest.mark.asyncio
    async def test_tool_crash_does_not_break_the_stream(self, binding, tool_ctx):
        class NoParams(BaseModel):
            pass

        async def explode(params, ctx):
            raise RuntimeError("boom")

        registry = ToolRegistry([Tool("explode", "fails", NoParams, explode)])
        router = ScriptedRouter([tool_step(("x", "explode", {})), text_step("Sorry.")])

        events = await run(router, binding, tool_ctx, registry=registry)

        assert dict(events)["tool-result"]["result"] == {"error": "explode failed unexpectedly"}
        assert events[-1][1] == {"status": "complete", "steps": 2}

    @pytest.mark.asyncio
    async def test_provider_error_event(self, binding, tool_ctx):
        router = ScriptedRouter(
            [LLMError(LLMErrorClass.RATE_LIMIT, "HTTP 429", provider="Mistral")]
        )

        events = await run(router, binding, tool_ctx)

        assert names(events) == ["start", "error", "done"]
        assert events[1][1] == {
            "code": "E_LLM_RATE_LIMIT",
            "message": "The provider is rate limiting requests. Try again shortly.",
        }
        assert events[-1][1] == {"status": "error", "steps": 1}

    @pytest.mark.asyncio
    async def test_error_after_a_tool_step(self, binding, tool_ctx):
        router = ScriptedRouter(
            [
                tool_step(("c", "calculate", {"expression": "2"})),
                LLMError(LLMErrorClass.TIMEOUT, "Stream timed out"),
            ]
        )

        events = await run(router, binding, tool_ctx)

        assert names(events)[-2:] == ["error", "done"]
        assert events[-1][1] == {"status": "error", "steps": 2}


class TestPersistence:
    @pytest.mark.asyncio
    async def test_new_conversation_is_created(
        self, binding, tool_ctx, session_factory, db_session, test_user_id
    ):
        router = ScriptedRouter(
            [tool_step(("c", "calculate", {"expression": "6*7"})), text_step("42")]
        )
        persistence = ChatPersistence(
            session_factory=session_factory, user_id=test_user_id, user_message="What is 6*7?"
        )

        events = await run(router, binding, tool_ctx, persistence=persistence)

        conversation_id = events[-1][1]["conversation_id"]
        (conversation,) = conversations_service.list_conversations(db_session, test_user_id)
        assert str(conversation.id) == conversation_id
        assert conversation.title == "What is 6*7?"

        messages = conversations_service.list_messages(db_session, test_user_id, conversation.id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "What is 6*7?"),
            ("assistant", "42"),
        ]
        assert messages[1].tool_results == [
            {
                "toolCallId": "c",
                "toolName": "calculate",
                "args": {"expression": "6*7"},
                "result": {"result": 42, "expression": "6*7"},
            }
        ]

    @pytest.mark.asyncio
    async def test_existing_conversation_is_appended(
        self, binding, tool_ctx, session_factory, db_session, test_user_id
    ):
        conversation_id = conversations_service.create_conversation(
            db_session, test_user_id, "Earlier"
        )
        router = ScriptedRouter([text_step("Again")])
        persistence = ChatPersistence(
            session_factory=session_factory,
            user_id=test_user_id,
            user_message="More",
            conversation_id=conversation_id,
        )

        events = await run(router, binding, tool_ctx, persistence=persistence)

        assert events[0][1]["conversation_id"] == str(conversation_id)
        assert events[-1][1]["conversation_id"] == str(conversation_id)
        messages = conversations_service.list_messages(db_session, test_user_id, conversation_id)
        assert [m.content for m in messages] == ["More", "Again"]

    @pytest.mark.asyncio
    async def test_nothing_is_stored_for_an_empty_failed_reply(
        self, binding, tool_ctx, session_factory, db_session, test_user_id
    ):
        router = ScriptedRouter([LLMError(LLMErrorClass.PROVIDER_DOWN, "down")])
        persistence = ChatPersistence(
            session_factory=session_factory, user_id=test_user_id, user_message="Hi"
        )

        events = await run(router, binding, tool_ctx, persistence=persistence)

        assert "conversation_id" not in events[-1][1]
        assert conversations_service.list_conversations(db_session, test_user_id) == []

    @pytest.mark.asyncio
    async def test_persist_failure_still_finishes_the_stream(self, binding, tool_ctx):
        def broken_factory():
            raise RuntimeError("database is down")

        router = ScriptedRouter([text_step("Hi")])
        persistence = ChatPersistence(
            session_factory=broken_factory, user_id=uuid4(), user_message="Hi"
        )

        events = await run(router, binding, tool_ctx, persistence=persistence)

        assert events[-1] == ("done", {"status": "complete", "steps": 1})
