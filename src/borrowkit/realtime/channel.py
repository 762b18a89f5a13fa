"""Realtime change streams.

A channel pushes ``{action, table, record}`` events for subscribed tables.
``subscribe`` returns an unsubscribe callable; a view must call it when it
unmounts.
"""

import json
import threading
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Optional, Protocol

import requests
from pydantic import BaseModel, ValidationError
from pyee.base import EventEmitter

from ..api.auth import CredentialStore
from ..logger import logger

CHANGE_EVENT = "change"


class RealtimeAction(str, Enum):
    """Kind of change."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class RealtimeEvent(BaseModel):
    """A server-pushed change to one record."""

    action: RealtimeAction
    table: str
    record: dict[str, Any]


EventCallback = Callable[[RealtimeEvent], None]
Unsubscribe = Callable[[], None]


class RealtimeChannel(Protocol):
    """Anything that can deliver realtime events."""

    def subscribe(self, tables: Iterable[str], callback: EventCallback) -> Unsubscribe: ...


class LocalRealtimeHub:
    """In-process channel: publishers and subscribers share one emitter."""

    def __init__(self, emitter: Optional[EventEmitter] = None):
        self._emitter = emitter or EventEmitter()

    def publish(self, event: RealtimeEvent) -> None:
        self._emitter.emit(CHANGE_EVENT, event)

    def subscribe(self, tables: Iterable[str], callback: EventCallback) -> Unsubscribe:
        wanted = frozenset(tables)

        def listener(event: RealtimeEvent) -> None:
            if event.table in wanted:
                callback(event)

        self._emitter.add_listener(CHANGE_EVENT, listener)
        active = True

        def unsubscribe() -> None:
            nonlocal active
            if active:
                active = False
                self._emitter.remove_listener(CHANGE_EVENT, listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._emitter.listeners(CHANGE_EVENT))


def parse_sse(lines: Iterable[str]) -> Iterator[str]:
    """Yield the data payload of each server-sent event.

    Multi-line ``data:`` fields are joined with newlines; comments and
    other fields are ignored.
    """
    data: list[str] = []
    for line in lines:
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        if line == "":
            if data:
                yield "\n".join(data)
                data = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name == "data":
            data.append(value[1:] if value.startswith(" ") else value)
    if data:
        yield "\n".join(data)


def decode_event(payload: str) -> Optional[RealtimeEvent]:
    """Decode one SSE payload, returning None if it is not a change event."""
    try:
        return RealtimeEvent.model_validate(json.loads(payload))
    except (ValueError, ValidationError) as e:
        logger.debug(f"Skipping realtime frame: {e}")
        return None


class SseRealtimeChannel:
    """Channel over the backend's server-sent-events endpoint.

    Each subscription runs its own daemon thread that reads
    ``GET /api/realtime?tables=...`` and reconnects after a delay when the
    stream drops.
    """

    def __init__(
        self,
        base_url: str,
        credentials: CredentialStore,
        reconnect_delay: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.reconnect_delay = reconnect_delay
        self._session = session or requests.Session()

    def subscribe(self, tables: Iterable[str], callback: EventCallback) -> Unsubscribe:
        tables = sorted(set(tables))
        stop = threading.Event()
        state: dict[str, Any] = {"response": None}

        thread = threading.Thread(
            target=self._run,
            args=(tables, callback, stop, state),
            name=f"realtime-{','.join(tables)}",
            daemon=True,
        )
        thread.start()

        def unsubscribe() -> None:
            stop.set()
            response = state.get("response")
            if response is not None:
                response.close()

        return unsubscribe

    def _run(
        self,
        tables: list[str],
        callback: EventCallback,
        stop: threading.Event,
        state: dict[str, Any],
    ) -> None:
        while not stop.is_set():
            try:
                self._stream_once(tables, callback, stop, state)
            except requests.exceptions.RequestException as e:
                if stop.is_set():
                    break
                logger.warning(f"Realtime stream dropped ({e}); reconnecting")
            except Exception:
                # Nobody can catch errors raised on this thread.
                logger.exception(f"Realtime subscriber for {tables} failed; reconnecting")
            stop.wait(self.reconnect_delay)

    def _stream_once(
        self,
        tables: list[str],
        callback: EventCallback,
        stop: threading.Event,
        state: dict[str, Any],
    ) -> None:
        headers = {"Accept": "text/event-stream"}
        headers.update(self.credentials.auth_headers())
        response = self._session.get(
            f"{self.base_url}/api/realtime",
            params={"tables": ",".join(tables)},
            headers=headers,
            stream=True,
            timeout=(10, None),
        )
        state["response"] = response
        try:
            # Unsubscribed while connecting; unsubscribe() saw no response to close.
            if stop.is_set():
                return
            response.raise_for_status()
            for payload in parse_sse(response.iter_lines(decode_unicode=True)):
                if stop.is_set():
                    return
                event = decode_event(payload)
                if event is not None and event.table in tables:
                    callback(event)
        finally:
            state["response"] = None
            response.close()
