"""Document store interfaces.

Covers the documents the core reads and writes besides quota records:
video assets, admin alerts, notification hand-offs, optimistically written
social artifacts with their denormalized counters, and compensation (saga)
records keyed by artifact creation (delivery).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal, Sequence

Document = dict[str, Any]

SagaState = Literal["validating", "confirmed", "compensated"]


@dataclass(frozen=True)
class CounterRef:
    """A denormalized counter field on a parent document.

    Attributes:
        path: Parent document path, e.g. ``videos/abc``.
        field: Counter field name, e.g. ``likesCount``.
    """

    path: str
    field: str


class AbstractDocumentStore(ABC):
    """Interface for the document store collaborator."""

    @abstractmethod
    async def get_document(self, path: str) -> Document | None:
        """Return the document at ``path`` or None if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def get_video(self, asset_id: str) -> Document | None:
        """Return the video asset document or None."""
        raise NotImplementedError

    @abstractmethod
    async def update_video(self, asset_id: str, fields: Document) -> None:
        """Merge ``fields`` into the video document, stamping ``updatedAt``.

        Creates the document when it does not exist yet.
        """
        raise NotImplementedError

    @abstractmethod
    async def append_alert(self, alert: Document) -> str:
        """Append an admin alert and return its id."""
        raise NotImplementedError

    @abstractmethod
    async def add_notification(self, user_id: str, notification: Document) -> str:
        """Append a notification under the user and return its id."""
        raise NotImplementedError

    @abstractmethod
    async def compensate_artifact(
        self,
        artifact_paths: Sequence[str],
        counters: Sequence[CounterRef],
    ) -> bool:
        """Delete an artifact and reverse its counters in one transaction.

        The first path is the primary artifact. Nothing is written unless it
        still exists, which makes redelivered compensations harmless. Mirror
        artifacts (remaining paths) are deleted when present; counters are
        decremented only on parent documents that exist.

        Returns:
            True if the artifact was deleted by this call, False if it was
            already gone.
        """
        raise NotImplementedError

    @abstractmethod
    async def begin_saga(self, key: str, fields: Document) -> SagaState | None:
        """Create the saga record for ``key`` in state ``validating``.

        Returns:
            None when this call created the record, otherwise the state of
            the existing record.
        """
        raise NotImplementedError

    @abstractmethod
    async def settle_saga(self, key: str, state: SagaState, fields: Document | None = None) -> None:
        """Move the saga record for ``key`` to a settled state."""
        raise NotImplementedError
