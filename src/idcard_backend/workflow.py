"""
Review workflow for faculty ID-card requests.

A request waits in the pending collection until a reviewer decides on it.
The decision moves the record out of pending:

- ``approved``: copied into the print queue, then removed from pending
- ``rejected``: copied into the rejected collection, then removed from pending
- anything else: removed from pending without being archived, unless
  ``reject_unknown_status`` is enabled, in which case the call fails and the
  record stays where it is

Copies are inserted as new documents, so they get a fresh ``_id``. Copy and
delete are not rolled back as a pair unless the store runs them inside a
transaction. A failed copy leaves the record pending; a failed delete after a
successful copy leaves it in both places.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List

from .database import DocumentStore, StoreTimeout
from .models import (
    APPROVED_COLLECTION,
    FACULTY_COLLECTION,
    PENDING_COLLECTION,
    REJECTED_COLLECTION,
    Document,
    RequestStatus,
)

logger = logging.getLogger(__name__)

TRANSITION_TARGETS: Dict[str, str] = {
    RequestStatus.APPROVED.value: APPROVED_COLLECTION,
    RequestStatus.REJECTED.value: REJECTED_COLLECTION,
}


class RequestNotFound(Exception):
    """No pending request matches the given id."""

    def __init__(self, request_id: str):
        super().__init__(f"Request {request_id} not found")
        self.request_id = request_id


class InvalidStatus(Exception):
    """The requested status is not a terminal review decision."""

    def __init__(self, status: str):
        super().__init__(f"Unsupported status: {status!r}")
        self.status = status


class RequestWorkflow:
    """Applies review decisions and answers lookups against a ``DocumentStore``."""

    def __init__(
        self,
        store: DocumentStore,
        reject_unknown_status: bool = False,
        faculty_check_timeout_ms: int = 1000,
    ) -> None:
        self.store = store
        self.reject_unknown_status = reject_unknown_status
        self.faculty_check_timeout_ms = faculty_check_timeout_ms

    async def set_status(self, request_id: str, status: str) -> str:
        """
        Move a pending request to the collection for ``status``.

        Args:
            request_id: Identifier of the pending record
            status: Review decision, normally ``approved`` or ``rejected``

        Returns:
            Confirmation message naming the applied status

        Raises:
            RequestNotFound: If no pending record has this id
            InvalidStatus: If ``status`` is unknown and unknown values are rejected
            StoreError: If the store failed while reading or writing
        """
        destination = TRANSITION_TARGETS.get(status)

        async with self.store.transaction() as session:
            document = await self.store.find_by_id(PENDING_COLLECTION, request_id, session=session)
            if document is None:
                raise RequestNotFound(request_id)

            if destination is None and self.reject_unknown_status:
                raise InvalidStatus(status)

            if destination is not None:
                copy = {key: value for key, value in document.items() if key != "_id"}
                new_id = await self.store.insert_one(destination, copy, session=session)
                logger.info(f"Copied request {request_id} to {destination} as {new_id}")
            else:
                logger.warning(f"Request {request_id} received unknown status {status!r}; discarding without archive")

            await self.store.delete_by_id(PENDING_COLLECTION, document["_id"], session=session)

        logger.info(f"Request {request_id} {status}")
        return f"Request {status} successfully"

    async def list_collection(self, collection: str) -> List[Document]:
        return await self.store.find_all(collection)

    async def check_faculty(self, faculty_id: str) -> bool:
        """
        Return True if ``faculty_id`` is a registered faculty number.

        The query is bounded both on the server (``maxTimeMS``) and locally, so
        an unresponsive store raises ``StoreTimeout`` instead of hanging.
        """
        timeout_seconds = self.faculty_check_timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                self.store.exists(
                    FACULTY_COLLECTION,
                    {"facNumber": faculty_id},
                    max_time_ms=self.faculty_check_timeout_ms,
                ),
                timeout=timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise StoreTimeout(
                f"Faculty lookup exceeded {self.faculty_check_timeout_ms} ms"
            ) from exc
