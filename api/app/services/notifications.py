from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Literal

from opentelemetry import trace
from starlette.requests import HTTPConnection

from app.core.auth import Principal
from app.schemas.jobs import JobItemOut
from app.services.channels import ChannelRegistry, NotificationDeliveryError
from app.services.records import JobApplication, JobRecord

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JOB_UPDATE_EVENT = "jobUpdate"

NotificationKind = Literal["updated", "deleted"]
Attribution = Literal["admin", "self"]


@dataclass(slots=True, frozen=True)
class RecordUpdated:
    actor: Principal
    record: JobRecord


@dataclass(slots=True, frozen=True)
class RecordDeleted:
    actor: Principal
    record: JobRecord
    cascaded_from: str | None = None


MutationOutcome = RecordUpdated | RecordDeleted


@dataclass(slots=True, frozen=True)
class Notification:
    target_principal_id: str
    kind: NotificationKind
    payload: dict[str, Any]


def build_notifications(outcome: MutationOutcome) -> list[Notification]:
    """Work out who hears about a completed mutation, and what they are told.

    Only applications have a single owner to notify; posting changes produce nothing.
    """
    record = outcome.record
    if not isinstance(record, JobApplication):
        return []

    updated_by = _attribution(outcome.actor, record)
    if isinstance(outcome, RecordUpdated):
        payload: dict[str, Any] = {
            "message": f"Your job application for {record.company} was updated to {record.status}",
            "jobApplication": JobItemOut.from_record(record).model_dump(mode="json", by_alias=True),
            "updatedBy": updated_by,
        }
        return [Notification(target_principal_id=record.owner_id, kind="updated", payload=payload)]

    if outcome.cascaded_from is not None:
        message = (
            f"The {record.role} opportunity at {record.company} was removed, "
            "so your application has been deleted"
        )
    else:
        message = f"Your job application for {record.company} has been deleted"
    payload = {
        "message": message,
        "deleted": True,
        "jobId": record.id,
        "updatedBy": updated_by,
    }
    if outcome.cascaded_from is not None:
        payload["postingId"] = outcome.cascaded_from
    return [Notification(target_principal_id=record.owner_id, kind="deleted", payload=payload)]


def _attribution(actor: Principal, record: JobRecord) -> Attribution:
    return "self" if actor.subject == record.owner_id else "admin"


class NotificationPublisher:
    """Outbound queue between request handlers and realtime delivery.

    ``publish`` never waits on delivery. A single background task drains the queue so
    events for one principal reach their room in the order the writes completed.
    """

    def __init__(self, registry: ChannelRegistry, *, max_queue_size: int = 1000) -> None:
        self.registry = registry
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=max(0, max_queue_size))
        self._worker: asyncio.Task[None] | None = None

    def publish(self, notifications: list[Notification]) -> None:
        for notification in notifications:
            try:
                self._queue.put_nowait(notification)
            except asyncio.QueueFull:
                logger.warning(
                    "notification queue full; dropping %s for principal=%s",
                    notification.kind,
                    notification.target_principal_id,
                )

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-publisher")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def drain(self) -> None:
        """Deliver everything currently queued, without the background task."""
        while not self._queue.empty():
            notification = self._queue.get_nowait()
            await self._deliver(notification)
            self._queue.task_done()

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def _deliver(self, notification: Notification) -> None:
        with tracer.start_as_current_span("notifications.deliver") as span:
            span.set_attribute("notification.kind", notification.kind)
            span.set_attribute("notification.target", notification.target_principal_id)
            try:
                delivered = await self.registry.deliver(
                    notification.target_principal_id,
                    JOB_UPDATE_EVENT,
                    notification.payload,
                )
            except NotificationDeliveryError as exc:
                logger.warning("notification delivery failed: %s", exc)
                return
            except Exception:
                logger.exception(
                    "notification delivery crashed for principal=%s",
                    notification.target_principal_id,
                )
                return
            logger.info(
                "notification %s delivered principal=%s connections=%s",
                notification.kind,
                notification.target_principal_id,
                delivered,
            )


def get_notification_publisher(connection: HTTPConnection) -> NotificationPublisher:
    return connection.app.state.publisher
