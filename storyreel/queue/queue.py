from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from queue import Queue
from typing import Any, Awaitable, Callable
from uuid import UUID

try:
    from kafka import KafkaConsumer, KafkaProducer
except ImportError:  # pragma: no cover - optional dependency
    KafkaConsumer = None  # type: ignore
    KafkaProducer = None  # type: ignore

RenderProcessor = Callable[[UUID], Awaitable[None]]

log = logging.getLogger(__name__)


class BaseQueue:
    """Hands job ids to a render processor running on a worker thread with its own event loop."""

    def __init__(self, processor: RenderProcessor) -> None:
        self._processor = processor

    def enqueue(self, job_id: UUID) -> None: ...  # pragma: no cover

    def _dispatch(self, job_id: UUID) -> None:
        started = time.monotonic()
        try:
            asyncio.run(self._processor(job_id))
        except Exception:  # pragma: no cover - processor logs its own failures
            log.exception("render worker error", extra={"job_id": str(job_id)})
            return
        log.debug(
            "render dispatched",
            extra={"job_id": str(job_id), "elapsed": round(time.monotonic() - started, 2)},
        )


class LocalQueue(BaseQueue):
    def __init__(self, processor: RenderProcessor) -> None:
        super().__init__(processor)
        self._jobs: Queue[UUID] = Queue()
        self._thread = threading.Thread(target=self._run, name="render-queue", daemon=True)
        self._thread.start()

    def enqueue(self, job_id: UUID) -> None:
        self._jobs.put(job_id)

    def join(self) -> None:
        self._jobs.join()

    def _run(self) -> None:
        while True:
            job_id = self._jobs.get()
            try:
                self._dispatch(job_id)
            finally:
                self._jobs.task_done()


def render_message(job_id: UUID) -> dict[str, Any]:
    return {"job_id": str(job_id), "enqueued_at": time.time()}


def parse_render_message(value: Any) -> UUID | None:
    if not isinstance(value, dict):
        return None
    try:
        return UUID(str(value["job_id"]))
    except (KeyError, ValueError):
        return None


class KafkaQueue(BaseQueue):
    def __init__(
        self,
        bootstrap_servers: str,
        topic: str,
        group_id: str,
        processor: RenderProcessor,
    ) -> None:
        if KafkaProducer is None or KafkaConsumer is None:
            raise RuntimeError("kafka-python is not installed")
        super().__init__(processor)
        self._topic = topic
        self._producer = KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda value: json.dumps(value).encode("utf-8"),
        )
        self._consumer = KafkaConsumer(
            topic,
            bootstrap_servers=bootstrap_servers,
            group_id=group_id,
            auto_offset_reset="earliest",
            enable_auto_commit=True,
            value_deserializer=lambda value: json.loads(value.decode("utf-8")),
        )
        self._thread = threading.Thread(target=self._consume, name="render-consumer", daemon=True)
        self._thread.start()

    def enqueue(self, job_id: UUID) -> None:
        self._producer.send(self._topic, key=str(job_id), value=render_message(job_id))
        self._producer.flush()

    def _consume(self) -> None:
        for message in self._consumer:
            job_id = parse_render_message(message.value)
            if job_id is None:
                log.warning("discarding malformed render message", extra={"offset": message.offset})
                continue
            self._dispatch(job_id)
