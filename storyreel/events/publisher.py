from __future__ import annotations

import json
import logging
from typing import Any

try:  # pragma: no cover - optional dependency
    from kafka import KafkaProducer
except ImportError:  # pragma: no cover - fallback when kafka-python absent
    KafkaProducer = None  # type: ignore

from storyreel.models.domain import VideoJob, VideoJobStatus


def job_event_payload(job: VideoJob, previous: VideoJobStatus | None = None) -> dict[str, Any]:
    return {
        "type": "video.status_changed",
        "job_id": str(job.id),
        "user_id": job.user_id,
        "status": job.status.value,
        "previous_status": previous.value if previous else None,
        "video_url": job.video_url,
        "error": job.error,
        "job": job.model_dump(mode="json"),
    }


class JobEventPublisher:
    """Publishes a job snapshot to Kafka whenever a render moves the job to a new status."""

    def __init__(self, bootstrap_servers: str, topic: str, logger: logging.Logger | None = None) -> None:
        if KafkaProducer is None:
            raise RuntimeError("kafka-python is not installed")
        if not bootstrap_servers:
            raise ValueError("bootstrap_servers is required")
        if not topic:
            raise ValueError("topic is required")
        self._topic = topic
        self._logger = logger or logging.getLogger(__name__)
        self._producer = KafkaProducer(
            bootstrap_servers=bootstrap_servers,
            key_serializer=lambda key: key.encode("utf-8"),
            value_serializer=lambda payload: json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            linger_ms=5,
        )

    def publish_status(self, job: VideoJob, previous: VideoJobStatus | None = None) -> None:
        # keyed by job id so one job's updates stay ordered within a partition
        try:
            self._producer.send(self._topic, key=str(job.id), value=job_event_payload(job, previous))
        except Exception:
            self._logger.warning(
                "failed to publish job event",
                extra={"job_id": str(job.id), "topic": self._topic, "status": job.status.value},
                exc_info=True,
            )

    def close(self) -> None:
        try:
            self._producer.flush()
            self._producer.close()
        except Exception:
            self._logger.debug("job event publisher close failed", exc_info=True)
