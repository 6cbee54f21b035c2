from __future__ import annotations

import json
import logging
from typing import Any

from google.cloud import pubsub_v1

from .settings import PUBSUB_TOPIC_RUN_COMPLETED, PUBSUB_TOPIC_RUN_REQUESTS

logger = logging.getLogger(__name__)


class PubSubClient:
    """Publishes run lifecycle events for the asynchronous path."""

    def __init__(
        self,
        project_id: str,
        *,
        publisher: pubsub_v1.PublisherClient | None = None,
        requests_topic: str = PUBSUB_TOPIC_RUN_REQUESTS,
        completed_topic: str = PUBSUB_TOPIC_RUN_COMPLETED,
    ) -> None:
        self.project_id = project_id
        self.publisher = publisher or pubsub_v1.PublisherClient()
        self.requests_topic = requests_topic
        self.completed_topic = completed_topic

    def publish(
        self,
        topic_id: str,
        message: dict[str, Any],
        *,
        attributes: dict[str, str] | None = None,
    ) -> str:
        """Publish a JSON message and wait for the server-assigned message ID."""
        topic_path = self.publisher.topic_path(self.project_id, topic_id)
        data = json.dumps(message, ensure_ascii=False).encode("utf-8")
        future = self.publisher.publish(topic_path, data, **(attributes or {}))
        message_id = future.result()

        logger.info(
            "Published message to Pub/Sub",
            extra={"topic_id": topic_id, "message_id": message_id, "attributes": attributes},
        )
        return message_id

    def publish_run_requested(self, *, run_id: str, priority: str | None = None) -> str:
        attributes = {"run_id": run_id, "event_type": "run_requested"}
        if priority:
            attributes["priority"] = priority
        return self.publish(
            self.requests_topic,
            {"run_id": run_id, "priority": priority},
            attributes=attributes,
        )

    def publish_run_completed(
        self,
        *,
        run_id: str,
        stage: str,
        quality_score: int | None = None,
        errors: list[str] | None = None,
    ) -> str:
        message = {
            "run_id": run_id,
            "stage": stage,
            "quality_score": quality_score,
            "errors": errors or [],
        }
        return self.publish(
            self.completed_topic,
            message,
            attributes={"run_id": run_id, "event_type": "run_completed", "stage": stage},
        )


__all__ = ["PubSubClient"]
