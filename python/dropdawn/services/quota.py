"""Per-user message quota.

A user may send at most `max_messages` chat requests in any rolling
`window` (defaults: 5 per 12 hours). The quota record is the list of
timestamps of the user's previous requests.

Fail modes:
- Ceiling reached: fail closed (429 before any model call)
- Store unavailable or write failure: fail open (logged)
- No store configured: limits not enforced (logged once)

Concurrent requests from one user race on the read-modify-write and can
slightly exceed the ceiling.

Storage backends:
- RedisQuotaStore: sorted set `quota:messages:{user_id}` scored by epoch seconds
- SupabaseQuotaStore: `user_metadata.message_timestamps` via the Auth admin API
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol
from uuid import UUID

import httpx
from starlette.concurrency import run_in_threadpool

from dropdawn.errors import ApiError, ApiErrorCode
from dropdawn.logging import get_logger
from dropdawn.services.redact import safe_kv

logger = get_logger(__name__)

DEFAULT_MAX_MESSAGES = 5
DEFAULT_WINDOW = timedelta(hours=12)


def prune_window(
    events: Iterable[datetime], now: datetime, window: timedelta
) -> list[datetime]:
    """Return the events inside (now - window, now], oldest first."""
    start = now - window
    return sorted(event for event in events if start < event <= now)


def count_in_window(events: Iterable[datetime], now: datetime, window: timedelta) -> int:
    return len(prune_window(events, now, window))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds into an aware UTC datetime."""
    try:
        if isinstance(value, int | float):
            return datetime.fromtimestamp(value, tz=UTC)
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class QuotaStore(Protocol):
    async def load(self, user_id: UUID) -> list[datetime]: ...

    async def save(self, user_id: UUID, events: Sequence[datetime]) -> None: ...


class RedisQuotaStore:
    """Quota events in a Redis sorted set (sync client, run in the threadpool)."""

    def __init__(self, redis_client, window: timedelta = DEFAULT_WINDOW):
        self._redis = redis_client
        self._window = window

    @staticmethod
    def key(user_id: UUID) -> str:
        return f"quota:messages:{user_id}"

    def _load(self, user_id: UUID) -> list[datetime]:
        members = self._redis.zrange(self.key(user_id), 0, -1, withscores=True)
        return [datetime.fromtimestamp(score, tz=UTC) for _, score in members]

    def _save(self, user_id: UUID, events: Sequence[datetime]) -> None:
        key = self.key(user_id)
        pipe = self._redis.pipeline()
        pipe.delete(key)
        if events:
            pipe.zadd(key, {event.isoformat(): event.timestamp() for event in events})
            pipe.expire(key, int(self._window.total_seconds()) * 2)
        pipe.execute()

    async def load(self, user_id: UUID) -> list[datetime]:
        return await run_in_threadpool(self._load, user_id)

    async def save(self, user_id: UUID, events: Sequence[datetime]) -> None:
        await run_in_threadpool(self._save, user_id, events)


class SupabaseQuotaStore:
    """Quota events in the user's Supabase Auth metadata.

    Requires the service-role key; never expose it to clients.
    """

    METADATA_KEY = "message_timestamps"

    def __init__(self, http_client: httpx.AsyncClient, supabase_url: str, service_key: str):
        self._client = http_client
        self._base_url = supabase_url.rstrip("/")
        self._service_key = service_key

    def _url(self, user_id: UUID) -> str:
        return f"{self._base_url}/auth/v1/admin/users/{user_id}"

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }

    async def _get_metadata(self, user_id: UUID) -> dict:
        response = await self._client.get(self._url(user_id), headers=self._headers())
        response.raise_for_status()
        return response.json().get("user_metadata") or {}

    async def load(self, user_id: UUID) -> list[datetime]:
        raw = (await self._get_metadata(user_id)).get(self.METADATA_KEY) or []
        events = [parse_timestamp(value) for value in raw]
        return [event for event in events if event is not None]

    async def save(self, user_id: UUID, events: Sequence[datetime]) -> None:
        # The admin API replaces user_metadata wholesale, so merge first
        metadata = await self._get_metadata(user_id)
        metadata[self.METADATA_KEY] = [event.isoformat() for event in events]
        response = await self._client.put(
            self._url(user_id),
            headers=self._headers(),
            json={"user_metadata": metadata},
        )
        response.raise_for_status()


class QuotaLimiter:
    """Enforces the rolling-window message ceiling for authenticated users."""

    def __init__(
        self,
        store: QuotaStore | None,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        window: timedelta = DEFAULT_WINDOW,
    ):
        self._store = store
        self._max_messages = max_messages
        self._window = window
        self._warned_no_store = False

    @property
    def enabled(self) -> bool:
        return self._store is not None

    async def check_and_record(self, user_id: UUID, now: datetime | None = None) -> int:
        """Reject if the window is full, otherwise record this request.

        Returns:
            The number of requests in the window, including this one.

        Raises:
            ApiError(E_RATE_LIMITED): If the ceiling has been reached.
        """
        if self._store is None:
            if not self._warned_no_store:
                logger.warning("quota.store_unconfigured")
                self._warned_no_store = True
            return 0

        now = now or datetime.now(UTC)
        try:
            events = await self._store.load(user_id)
        except Exception as e:
            logger.warning("quota.load_failed", error_type=type(e).__name__)
            return 0

        in_window = prune_window(events, now, self._window)
        if len(in_window) >= self._max_messages:
            logger.warning(
                "quota.blocked",
                **safe_kv(limit=self._max_messages, window_hours=self._window_hours()),
            )
            raise ApiError(
                ApiErrorCode.E_RATE_LIMITED,
                f"Message limit reached: {self._max_messages} messages every "
                f"{self._window_hours()} hours. Please try again later.",
            )

        in_window.append(now)
        try:
            await self._store.save(user_id, in_window)
        except Exception as e:
            logger.warning("quota.persist_failed", error_type=type(e).__name__)

        return len(in_window)

    def _window_hours(self) -> int:
        return int(self._window.total_seconds() // 3600)


def check_temporary_cap(messages: Sequence[Any], cap: int) -> None:
    """Cap the number of user turns in an ephemeral (temporary) session.

    Raises:
        ApiError(E_TEMPORARY_LIMIT_REACHED): If the request carries more than `cap` user turns.
    """
    user_turns = sum(1 for message in messages if getattr(message, "role", None) == "user")
    if user_turns > cap:
        raise ApiError(
            ApiErrorCode.E_TEMPORARY_LIMIT_REACHED,
            f"Temporary chats are limited to {cap} messages. Sign in to keep chatting.",
        )
