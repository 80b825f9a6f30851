"""Tests for POST /api/chat.

Request-level failures come back as JSON error envelopes before streaming
starts; successful requests stream SSE. The model is replaced by
ScriptedRouter through dependency overrides.
"""

from uuid import uuid4

import pytest

from dropdawn.api.deps import get_llm_router, get_quota_limiter
from dropdawn.config import Settings, get_settings
from dropdawn.services import conversations as conversations_service
from dropdawn.services.llm import LLMError, LLMErrorClass
from dropdawn.services.quota import QuotaLimiter
from tests.helpers import (
    MemoryQuotaStore,
    ScriptedRouter,
    auth_headers,
    parse_sse,
    text_step,
    tool_step,
)


def chat_body(content="Hi", provider="Mistral", **extra):
    return {"messages": [{"role": "user", "content": content}], "provider": provider, **extra}


@pytest.fixture
def quota_store():
    return MemoryQuotaStore()


@pytest.fixture
def chat_app(app, quota_store):
    """App with a configured Mistral key, in-memory quota and a scripted model."""
    settings = Settings(MISTRAL_API_KEY="mistral-test")
    limiter = QuotaLimiter(quota_store, max_messages=5)
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_quota_limiter] = lambda: limiter
    return app


def script(app, steps) -> ScriptedRouter:
    router = ScriptedRouter(steps)
    app.dependency_overrides[get_llm_router] = lambda: router
    return router


class TestChatAuth:
    def test_anonymous_non_temporary_is_401(self, chat_app, authenticated_client):
        script(chat_app, [])

        response = authenticated_client.post("/api/chat", json=chat_body())

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "E_UNAUTHENTICATED"

    def test_auth_is_checked_before_provider(self, chat_app, authenticated_client):
        script(chat_app, [])

        response = authenticated_client.post("/api/chat", json=chat_body(provider="Nope"))

        assert response.status_code == 401

    def test_invalid_token_is_401(self, chat_app, authenticated_client):
        response = authenticated_client.post(
            "/api/chat",
            json=chat_body(),
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    def test_anonymous_temporary_chat_streams(self, chat_app, authenticated_client):
        script(chat_app, [text_step("Hello")])

        response = authenticated_client.post("/api/chat", json=chat_body(isTemporary=True))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        assert events[0] == ("start", {"provider": "Mistral", "model": "mistral-large-latest"})
        assert events[-1][0] == "done"


class TestChatValidation:
    def test_unknown_provider(self, chat_app, authenticated_client, test_user_id):
        script(chat_app, [])

        response = authenticated_client.post(
            "/api/chat", json=chat_body(provider="OpenAI"), headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_UNKNOWN_PROVIDER"

    def test_provider_without_key(self, chat_app, authenticated_client, test_user_id):
        script(chat_app, [])

        response = authenticated_client.post(
            "/api/chat", json=chat_body(provider="Cohere"), headers=auth_headers(test_user_id)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_PROVIDER_NOT_CONFIGURED"
        assert "COHERE_API_KEY" in response.json()["error"]["message"]

    def test_empty_messages(self, chat_app, authenticated_client, test_user_id):
        response = authenticated_client.post(
            "/api/chat",
            json={"messages": [], "provider": "Mistral"},
            headers=auth_headers(test_user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_malformed_json(self, chat_app, authenticated_client, test_user_id):
        headers = {**auth_headers(test_user_id), "Content-Type": "application/json"}
        response = authenticated_client.post("/api/chat", content=b"{nope", headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Malformed JSON body"

    def test_conversation_too_long(self, chat_app, authenticated_client, test_user_id):
        script(chat_app, [])

        response = authenticated_client.post(
            "/api/chat",
            json=chat_body(content="x" * 250_000),
            headers=auth_headers(test_user_id),
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Conversation is too long"

    def test_foreign_conversation_is_404(
        self, chat_app, authenticated_client, db_session, test_user_id
    ):
        script(chat_app, [])
        other = conversations_service.create_conversation(db_session, uuid4(), "Theirs")

        response = authenticated_client.post(
            "/api/chat",
            json=chat_body(conversationId=str(other)),
            headers=auth_headers(test_user_id),
        )

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_CONVERSATION_NOT_FOUND"


class TestChatQuota:
    def test_sixth_message_in_window_is_429(
        self, chat_app, authenticated_client, test_user_id, quota_store
    ):
        script(chat_app, [text_step(f"reply {i}") for i in range(5)])
        headers = auth_headers(test_user_id)

        for _ in range(5):
            response = authenticated_client.post("/api/chat", json=chat_body(), headers=headers)
            assert response.status_code == 200

        response = authenticated_client.post("/api/chat", json=chat_body(), headers=headers)

        assert response.status_code == 429
        error = response.json()["error"]
        assert error["code"] == "E_RATE_LIMITED"
        assert error["message"] == (
            "Message limit reached: 5 messages every 12 hours. Please try again later."
        )
        assert len(quota_store.events[test_user_id]) == 5

    def test_temporary_chats_skip_the_user_quota(
        self, chat_app, authenticated_client, test_user_id, quota_store
    ):
        script(chat_app, [text_step("ok")])

        response = authenticated_client.post(
            "/api/chat", json=chat_body(isTemporary=True), headers=auth_headers(test_user_id)
        )

        assert response.status_code == 200
        assert quota_store.events == {}

    def test_temporary_cap(self, chat_app, authenticated_client):
        script(chat_app, [])
        messages = []
        for i in range(6):
            messages += [
                {"role": "user", "content": f"q{i}"},
                {"role": "assistant", "content": f"a{i}"},
            ]

        response = authenticated_client.post(
            "/api/chat",
            json={"messages": messages, "provider": "Mistral", "isTemporary": True},
        )

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "E_TEMPORARY_LIMIT_REACHED"


class TestChatStreaming:
    def test_tool_loop_and_persistence(
        self, chat_app, authenticated_client, db_session, test_user_id
    ):
        script(
            chat_app,
            [tool_step(("c1", "calculate", {"expression": "6*7"})), text_step("It is 42.")],
        )

        response = authenticated_client.post(
            "/api/chat", json=chat_body("What is 6*7?"), headers=auth_headers(test_user_id)
        )

        assert response.status_code == 200
        assert response.headers["cache-control"] == "no-cache"
        events = parse_sse(response.text)
        assert [name for name, _ in events] == [
            "start",
            "tool-call",
            "tool-result",
            "step-finish",
            "text-delta",
            "step-finish",
            "done",
        ]
        done = events[-1][1]
        assert done["status"] == "complete"

        (conversation,) = conversations_service.list_conversations(db_session, test_user_id)
        assert str(conversation.id) == done["conversation_id"]
        assert conversation.message_count == 2

    def test_continue_own_conversation(
        self, chat_app, authenticated_client, db_session, test_user_id
    ):
        conversation_id = conversations_service.create_conversation(
            db_session, test_user_id, "Mine"
        )
        script(chat_app, [text_step("Sure")])

        response = authenticated_client.post(
            "/api/chat",
            json=chat_body("Continue", conversationId=str(conversation_id)),
            headers=auth_headers(test_user_id),
        )

        assert parse_sse(response.text)[-1][1]["conversation_id"] == str(conversation_id)
        messages = conversations_service.list_messages(db_session, test_user_id, conversation_id)
        assert [m.content for m in messages] == ["Continue", "Sure"]

    def test_temporary_chat_is_not_stored(
        self, chat_app, authenticated_client, db_session, test_user_id
    ):
        script(chat_app, [text_step("Ephemeral")])

        authenticated_client.post(
            "/api/chat", json=chat_body(isTemporary=True), headers=auth_headers(test_user_id)
        )

        assert conversations_service.list_conversations(db_session, test_user_id) == []

    def test_provider_failure_is_an_event(self, chat_app, authenticated_client, test_user_id):
        script(chat_app, [LLMError(LLMErrorClass.INVALID_KEY, "HTTP 401", provider="Mistral")])

        response = authenticated_client.post(
            "/api/chat", json=chat_body(), headers=auth_headers(test_user_id)
        )

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert events[-2] == (
            "error",
            {
                "code": "E_LLM_INVALID_KEY",
                "message": "The provider rejected the configured API key.",
            },
        )
        assert events[-1][1]["status"] == "error"
