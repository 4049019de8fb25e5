# store.py
from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol, Tuple

from aiomqtt import Client, MqttError

log = logging.getLogger(__name__)

# (key, value, ack)
StoreMessage = Tuple[str, Any, bool]


class StoreError(Exception):
    """The state store could not complete a read or write."""


class StateStore(Protocol):
    async def read(self, key: str) -> Any: ...

    def snapshot(self) -> Dict[str, Any]: ...

    async def write(self, key: str, value: Any, ack: bool = True) -> None: ...

    async def subscribe(self, patterns: Iterable[str] = ("#",)) -> None: ...

    def messages(self) -> AsyncIterator[StoreMessage]: ...


def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_dir_for_file(path: str) -> None:
    d = os.path.dirname(os.path.abspath(path))
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


# ============================================================
# In-memory store (tests, embedding)
# ============================================================
class MemoryStateStore:
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.values: Dict[str, Any] = dict(initial or {})
        self.writes: List[StoreMessage] = []
        self.fail_writes = False
        self.patterns: List[str] = []
        self._inbox: "asyncio.Queue[StoreMessage]" = asyncio.Queue()

    async def read(self, key: str) -> Any:
        return self.values.get(key)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.values)

    async def write(self, key: str, value: Any, ack: bool = True) -> None:
        if self.fail_writes:
            raise StoreError(f"write rejected: {key}")
        self.values[key] = value
        self.writes.append((key, value, ack))

    async def subscribe(self, patterns: Iterable[str] = ("#",)) -> None:
        self.patterns.extend(patterns)

    def inject(self, key: str, value: Any, ack: bool = False) -> None:
        self._inbox.put_nowait((key, value, ack))

    async def messages(self) -> AsyncIterator[StoreMessage]:
        while True:
            yield await self._inbox.get()

    def written(self, key: str) -> List[Any]:
        return [v for k, v, _ in self.writes if k == key]


# ============================================================
# MQTT store
# ============================================================
class MqttStateStore:
    """
    Keys map to topics: grid.limit_kw -> <base>/grid/limit_kw.
    Payload is {"val", "ack", "ts"}; writes are retained so the broker keeps
    the last value for the next start. Every write can be mirrored to JSONL.
    """

    def __init__(self, client: Client, base_topic: str, out_jsonl: Optional[str] = None):
        self.client = client
        self.base_topic = base_topic.rstrip("/")
        self.out_jsonl = out_jsonl
        self.values: Dict[str, Any] = {}
        self._jsonl = None

        if out_jsonl:
            ensure_dir_for_file(out_jsonl)
            self._jsonl = open(out_jsonl, "a", encoding="utf-8")

    def close(self) -> None:
        if self._jsonl is not None:
            self._jsonl.close()
            self._jsonl = None

    def key_to_topic(self, key: str) -> str:
        return f"{self.base_topic}/{key.replace('.', '/')}"

    def topic_to_key(self, topic: str) -> Optional[str]:
        prefix = self.base_topic + "/"
        if not topic.startswith(prefix):
            return None
        return topic[len(prefix):].replace("/", ".")

    @staticmethod
    def decode(payload: bytes) -> Tuple[Any, bool]:
        """Returns (value, ack). Plain payloads are treated as commands."""
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None, False
        try:
            data = json.loads(text)
        except ValueError:
            return text, False
        if isinstance(data, dict) and "val" in data:
            return data.get("val"), bool(data.get("ack", False))
        return data, False

    async def read(self, key: str) -> Any:
        return self.values.get(key)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.values)

    async def write(self, key: str, value: Any, ack: bool = True) -> None:
        topic = self.key_to_topic(key)
        payload = {"val": value, "ack": ack, "ts": utc_iso()}
        try:
            await self.client.publish(topic, json.dumps(payload).encode("utf-8"), qos=0, retain=True)
        except MqttError as e:
            raise StoreError(f"publish {topic} failed: {e!r}") from e

        self.values[key] = value
        if self._jsonl is not None:
            self._jsonl.write(json.dumps({"topic": topic, "payload": payload}, ensure_ascii=False) + "\n")
            self._jsonl.flush()

    async def subscribe(self, patterns: Iterable[str] = ("#",)) -> None:
        for p in patterns:
            topic = f"{self.base_topic}/{p}"
            try:
                await self.client.subscribe(topic)
            except MqttError as e:
                raise StoreError(f"subscribe {topic} failed: {e!r}") from e
            log.info(f"[STORE] subscribed {topic}")

    async def load_retained(self, quiet_s: float = 1.0) -> List[StoreMessage]:
        """
        Collect retained values until the broker is quiet for quiet_s seconds.
        Non-retained messages seen meanwhile are returned so the caller can
        acknowledge them.
        """
        early: List[StoreMessage] = []
        it = self.client.messages.__aiter__()
        while True:
            try:
                msg = await asyncio.wait_for(it.__anext__(), timeout=quiet_s)
            except asyncio.TimeoutError:
                break
            key = self.topic_to_key(str(msg.topic))
            if key is None:
                continue
            value, ack = self.decode(msg.payload)
            if msg.retain:
                self.values[key] = value
            elif not ack:
                early.append((key, value, ack))
        log.info(f"[STORE] restored {len(self.values)} retained values")
        return early

    async def messages(self) -> AsyncIterator[StoreMessage]:
        async for msg in self.client.messages:
            key = self.topic_to_key(str(msg.topic))
            if key is None:
                continue
            value, ack = self.decode(msg.payload)
            yield key, value, ack
