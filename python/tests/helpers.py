"""Test helpers for authentication and scripted LLM output.

Provides:
- MockJwtVerifier: validates tokens signed with a locally generated RSA key
- Token minting and header generation for test requests
- ScriptedRouter: LLMRouter that replays canned chunks instead of calling providers
- MemoryQuotaStore: in-process quota store
- parse_sse: split an SSE body into (event, data) pairs
"""

import json
import threading
import time
from collections.abc import AsyncIterator, Sequence
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import httpx
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from dropdawn.errors import ApiError, ApiErrorCode
from dropdawn.services.llm import LLMChunk, LLMError, LLMRequest, LLMRouter, ToolCall

DEFAULT_ISSUER = "test-issuer"
DEFAULT_AUDIENCE = "test-audience"
DEFAULT_EXPIRES_IN = 3600


class MockJwtVerifier:
    """Token verifier backed by a class-level RSA keypair (tests only)."""

    _private_key: bytes | None = None
    _public_key: bytes | None = None
    _lock = threading.Lock()

    def __init__(self, issuer: str = DEFAULT_ISSUER, audiences: list[str] | None = None):
        self.issuer = issuer
        self.audiences = audiences or [DEFAULT_AUDIENCE]
        self._ensure_keypair()

    @classmethod
    def _ensure_keypair(cls) -> None:
        with cls._lock:
            if cls._private_key is not None:
                return
            from cryptography.hazmat.primitives import serialization
            from cryptography.hazmat.primitives.asymmetric import rsa

            private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
            cls._private_key = private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
            cls._public_key = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )

    @classmethod
    def get_private_key(cls) -> bytes:
        cls._ensure_keypair()
        assert cls._private_key is not None
        return cls._private_key

    def verify(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._public_key,
                algorithms=["RS256"],
                audience=self.audiences,
                issuer=self.issuer,
                leeway=60,
                options={"require": ["exp", "iss", "sub"]},
            )
        except ExpiredSignatureError as e:
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Token expired") from e
        except InvalidTokenError as e:
            raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Invalid token") from e

        try:
            UUID(payload["sub"])
        except (ValueError, TypeError) as e:
            raise ApiError(
                ApiErrorCode.E_UNAUTHENTICATED, "Invalid token: sub is not a valid UUID"
            ) from e
        return payload


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    issuer: str = DEFAULT_ISSUER,
    audience: str = DEFAULT_AUDIENCE,
    **extra_claims,
) -> str:
    """Mint a JWT the MockJwtVerifier accepts."""
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iss": issuer,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    return jwt.encode(payload, MockJwtVerifier.get_private_key(), algorithm="RS256")


def auth_headers(user_id: UUID | str, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_test_token(user_id, **kwargs)}"}


def create_test_user_id() -> UUID:
    return uuid4()


def text_step(*parts: str) -> list[LLMChunk]:
    """Chunks for a model step that only writes text."""
    return [LLMChunk(delta_text=p, done=False) for p in parts] + [
        LLMChunk(delta_text="", done=True, finish_reason="stop")
    ]


def tool_step(*calls: tuple[str, str, dict], text: str = "") -> list[LLMChunk]:
    """Chunks for a model step that requests tool calls: (id, name, arguments)."""
    chunks = [LLMChunk(delta_text=text, done=False)] if text else []
    chunks.append(
        LLMChunk(
            delta_text="",
            done=True,
            tool_calls=tuple(ToolCall(id=i, name=n, arguments=a) for i, n, a in calls),
            finish_reason="tool_calls",
        )
    )
    return chunks


class ScriptedRouter(LLMRouter):
    """LLMRouter whose steps are scripted.

    Each item of `steps` is either a list of chunks or an LLMError to raise.
    Requests are recorded for assertions.
    """

    def __init__(self, steps: Sequence[list[LLMChunk] | LLMError]):
        super().__init__(httpx.AsyncClient())
        self._steps = list(steps)
        self.requests: list[LLMRequest] = []

    async def generate_stream(self, binding, req, *, timeout_s=60) -> AsyncIterator[LLMChunk]:
        self.requests.append(req)
        if not self._steps:
            raise AssertionError("model called more times than scripted")
        step = self._steps.pop(0)
        if isinstance(step, LLMError):
            raise step
        for chunk in step:
            yield chunk


class MemoryQuotaStore:
    """Quota store kept in a dict."""

    def __init__(self, fail_load: bool = False, fail_save: bool = False):
        self.events: dict[UUID, list[datetime]] = {}
        self.fail_load = fail_load
        self.fail_save = fail_save

    async def load(self, user_id: UUID) -> list[datetime]:
        if self.fail_load:
            raise ConnectionError("store down")
        return list(self.events.get(user_id, []))

    async def save(self, user_id: UUID, events: Sequence[datetime]) -> None:
        if self.fail_save:
            raise ConnectionError("store down")
        self.events[user_id] = list(events)


def parse_sse(body: str) -> list[tuple[str, dict]]:
    """Split an SSE body into (event, data) pairs."""
    events = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        event, data = "message", ""
        for line in block.split("\n"):
            if line.startswith("event: "):
                event = line[7:]
            elif line.startswith("data: "):
                data = line[6:]
        events.append((event, json.loads(data) if data else {}))
    return events
