"""Post-hoc quota enforcement for optimistically written social artifacts.

Clients write likes, comments and follows directly; the creation event then
runs the quota check. A denial deletes the artifact, reverses the parent's
denormalized counter and records an admin alert. An allow leaves the
artifact in place. A failing check leaves it in place too (fail-open).

Each creation is keyed by the artifact path plus its delivery id (the
CloudEvents ``ce-id``, or the artifact's create time when the delivery carries
no id). Its saga record moves from ``validating`` to ``confirmed`` or
``compensated``. A redelivery of the same creation finds the settled saga and
does nothing, so quota is not consumed twice and counters are not
decremented twice. A later creation of the same path (like, unlike, like
again) is a new instance and is checked on its own.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Sequence

from quotaflow.adapters.documents.base import AbstractDocumentStore, CounterRef
from quotaflow.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from quotaflow.core.errors import ValidationAppError

logger = logging.getLogger(__name__)

RollbackStatus = Literal["confirmed", "compensated", "duplicate", "fail_open"]


@dataclass(frozen=True)
class RollbackOutcome:
    """Result of handling one artifact-creation event.

    Attributes:
        status: confirmed (allowed), compensated (denied and rolled back),
            duplicate (saga already settled) or fail_open (check failed).
        action: Rate limit action name.
        resource_id: Id of the parent resource (video or target user).
        retry_after_seconds: Seconds until the budget resets, when denied.
    """

    status: RollbackStatus
    action: str
    resource_id: str
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class _Artifact:
    action: str
    actor_id: str
    resource_id: str
    saga_key: str
    paths: Sequence[str]
    counters: Sequence[CounterRef]


def _require(**values: str) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise ValidationAppError(
            code="invalid_event",
            message=f"Missing required event fields: {', '.join(missing)}",
        )


def _saga_key(path: str, instance_id: str) -> str:
    return f"{path}/{instance_id}".replace("/", "__")


class CompensatingRollbackService:
    """Handles like, comment and follow creation events."""

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        documents: AbstractDocumentStore,
        *,
        videos_collection: str = "videos",
        users_collection: str = "users",
        comments_collection: str = "comments",
    ) -> None:
        self.limiter = limiter
        self.documents = documents
        self._videos = videos_collection
        self._users = users_collection
        self._comments = comments_collection

    async def handle_like_created(
        self,
        video_id: str,
        user_id: str,
        *,
        event_id: str | None = None,
    ) -> RollbackOutcome:
        _require(video_id=video_id, user_id=user_id)
        path = f"{self._videos}/{video_id}/likes/{user_id}"
        return await self._process(
            _Artifact(
                action="like",
                actor_id=user_id,
                resource_id=video_id,
                saga_key=_saga_key(path, self._instance_id(path, event_id)),
                paths=[path],
                counters=[CounterRef(f"{self._videos}/{video_id}", "likesCount")],
            )
        )

    async def handle_comment_created(
        self,
        comment_id: str,
        author_id: str,
        video_id: str,
        *,
        event_id: str | None = None,
    ) -> RollbackOutcome:
        _require(comment_id=comment_id, author_id=author_id, video_id=video_id)
        path = f"{self._comments}/{comment_id}"
        return await self._process(
            _Artifact(
                action="comment",
                actor_id=author_id,
                resource_id=video_id,
                saga_key=_saga_key(path, self._instance_id(path, event_id)),
                paths=[path],
                counters=[CounterRef(f"{self._videos}/{video_id}", "commentsCount")],
            )
        )

    async def handle_follow_created(
        self,
        current_user_id: str,
        target_user_id: str,
        *,
        event_id: str | None = None,
    ) -> RollbackOutcome:
        _require(current_user_id=current_user_id, target_user_id=target_user_id)
        path = f"{self._users}/{current_user_id}/following/{target_user_id}"
        return await self._process(
            _Artifact(
                action="follow",
                actor_id=current_user_id,
                resource_id=target_user_id,
                saga_key=_saga_key(path, self._instance_id(path, event_id)),
                paths=[path, f"{self._users}/{target_user_id}/followers/{current_user_id}"],
                counters=[
                    CounterRef(f"{self._users}/{current_user_id}", "followingCount"),
                    CounterRef(f"{self._users}/{target_user_id}", "followersCount"),
                ],
            )
        )

    def _instance_id(self, path: str, event_id: str | None) -> str:
        """Identify this creation of ``path``.

        Without a delivery id the event is handled as a new creation.
        """
        if event_id:
            return event_id
        logger.warning("rollback.unkeyed_event", extra={"artifact_path": path})
        return uuid.uuid4().hex

    async def _process(self, artifact: _Artifact) -> RollbackOutcome:
        log_extra = {
            "action": artifact.action,
            "user_id": artifact.actor_id,
            "resource_id": artifact.resource_id,
            "saga_key": artifact.saga_key,
        }

        existing = await self.documents.begin_saga(
            artifact.saga_key,
            {
                "action": artifact.action,
                "userId": artifact.actor_id,
                "resourceId": artifact.resource_id,
                "artifactPath": artifact.paths[0],
            },
        )
        if existing in ("confirmed", "compensated"):
            logger.info("rollback.duplicate_event", extra={**log_extra, "saga_state": existing})
            return RollbackOutcome(status="duplicate", action=artifact.action, resource_id=artifact.resource_id)

        try:
            result = await self.limiter.check_and_consume(artifact.actor_id, artifact.action)
        except Exception as exc:
            # The saga stays in validating so a redelivery can run the check again.
            logger.error(
                "rollback.check_failed_fail_open",
                extra={**log_extra, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return RollbackOutcome(status="fail_open", action=artifact.action, resource_id=artifact.resource_id)

        if result.allowed:
            await self.documents.settle_saga(artifact.saga_key, "confirmed")
            return RollbackOutcome(status="confirmed", action=artifact.action, resource_id=artifact.resource_id)

        await self._compensate(artifact, result, log_extra)
        return RollbackOutcome(
            status="compensated",
            action=artifact.action,
            resource_id=artifact.resource_id,
            retry_after_seconds=result.retry_after_seconds,
        )

    async def _compensate(
        self,
        artifact: _Artifact,
        result: RateLimitResult,
        log_extra: dict[str, str],
    ) -> None:
        deleted = await self.documents.compensate_artifact(artifact.paths, artifact.counters)
        logger.warning(
            "rollback.compensated",
            extra={**log_extra, "artifact_deleted": deleted, "retry_after_s": result.retry_after_seconds},
        )

        await self.documents.append_alert(
            {
                "type": "rate_limit_violation",
                "severity": "warning",
                "action": artifact.action,
                "userId": artifact.actor_id,
                "resourceId": artifact.resource_id,
                "message": (
                    f"User {artifact.actor_id} exceeded the {artifact.action} limit "
                    f"({result.limit}); the {artifact.action} was rolled back."
                ),
                "retryAfter": result.retry_after_seconds,
                "createdAt": datetime.now(timezone.utc),
            }
        )
        await self.documents.settle_saga(
            artifact.saga_key,
            "compensated",
            {"artifactDeleted": deleted, "retryAfter": result.retry_after_seconds},
        )
