from __future__ import annotations

import logging
from typing import Any, Mapping

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .run_store import RunNotFoundError, generate_run_id
from .settings import FIRESTORE_COLLECTION

logger = logging.getLogger(__name__)


class FirestoreRunStore:
    """Firestore-backed run store for production use.

    Field paths in updates are dotted (``stage_records.Preview``), which
    Firestore applies as a single partial write.
    """

    def __init__(
        self,
        project_id: str | None = None,
        *,
        collection: str = FIRESTORE_COLLECTION,
        client: firestore.Client | None = None,
    ) -> None:
        self._db = client or firestore.Client(project=project_id)
        self._collection = self._db.collection(collection)

    def create_run(self, payload: Mapping[str, Any]) -> str:
        """Create a new run document."""
        run_id = str(payload.get("id") or "") or generate_run_id()
        document = dict(payload)
        document["id"] = run_id

        self._collection.document(run_id).set(document)

        logger.info(
            "Created run",
            extra={"run_id": run_id, "current_stage": document.get("current_stage")},
        )
        return run_id

    def update_run_field(self, run_id: str, path: str, value: Any) -> None:
        self.update_run_fields(run_id, {path: value})

    def update_run_fields(self, run_id: str, updates: Mapping[str, Any]) -> None:
        """Apply several dotted-path updates in one write."""
        doc_ref = self._collection.document(run_id)
        try:
            doc_ref.update(dict(updates))
        except google_exceptions.NotFound as exc:
            raise RunNotFoundError(run_id) from exc

        logger.debug(
            "Updated run",
            extra={"run_id": run_id, "fields": sorted(updates)},
        )

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        doc = self._collection.document(run_id).get()
        if not doc.exists:
            return None
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return data

    def list_runs(self, *, stage: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """List runs, newest first, optionally filtered by current stage."""
        query = self._collection

        if stage is not None:
            query = query.where(filter=FieldFilter("current_stage", "==", stage))

        query = query.order_by("created_at", direction=firestore.Query.DESCENDING).limit(limit)

        runs: list[dict[str, Any]] = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            data["id"] = doc.id
            runs.append(data)
        return runs


__all__ = ["FirestoreRunStore"]
