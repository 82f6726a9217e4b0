"""Database-backed message broker shared by the services.

``publish`` fans a message out into one row per subscribed consumer queue.
The worker loop in ``guardforce.main`` calls ``dispatch_pending`` which claims
due rows with ``SKIP LOCKED`` and hands them to the registered handler. A
handler that raises gets the message re-scheduled after a fixed interval until
``max_attempts`` is reached, then the row is dead-lettered. A row left in
PROCESSING longer than ``processing_timeout_seconds`` is claimed again and the
lost delivery counts as an attempt.

``request`` is the synchronous request/response primitive: the registered
responder runs on a bounded thread pool and the caller waits at most
``timeout_seconds`` for its answer.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import JSON, DateTime, Integer, String, Text, UniqueConstraint, and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from guardforce.db import BrokerBase, BrokerSessionLocal
from guardforce.logging_utils import log_context
from guardforce.settings import get_settings

logger = logging.getLogger("guardforce.broker")

MESSAGE_STATUS_PENDING = "PENDING"
MESSAGE_STATUS_PROCESSING = "PROCESSING"
MESSAGE_STATUS_DONE = "DONE"
MESSAGE_STATUS_DEAD_LETTERED = "DEAD_LETTERED"

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BrokerMessage(BrokerBase):
    __tablename__ = "broker_messages"
    __table_args__ = (UniqueConstraint("message_id", "queue", name="uq_broker_messages_message_queue"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    message_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    queue: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=MESSAGE_STATUS_PENDING, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    scheduled_at_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    processed_at_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


class BrokerError(Exception):
    pass


class BrokerRequestTimeout(BrokerError):
    pass


@dataclass(frozen=True, slots=True)
class Subscription:
    queue: str
    message_type: type[BaseModel]
    handler: Callable[[Any], None]


def message_type_name(message_type: type[BaseModel]) -> str:
    return message_type.__name__


class MessageBroker:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        retry_interval_seconds: int = 5,
        max_attempts: int = 3,
        request_workers: int = 8,
        processing_timeout_seconds: int = 300,
    ) -> None:
        self._session_factory = session_factory
        self._retry_interval = timedelta(seconds=max(0, retry_interval_seconds))
        self._max_attempts = max(1, max_attempts)
        self._processing_timeout = timedelta(seconds=max(1, processing_timeout_seconds))
        self._subscriptions: dict[str, dict[str, Subscription]] = {}
        self._responders: dict[str, tuple[type[BaseModel], Callable[[Any], BaseModel]]] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, request_workers),
            thread_name_prefix="broker-request",
        )

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def subscribe(
        self,
        message_type: type[BaseModel],
        *,
        queue: str,
        handler: Callable[[Any], None],
    ) -> None:
        name = message_type_name(message_type)
        queues = self._subscriptions.setdefault(name, {})
        queues[queue] = Subscription(queue=queue, message_type=message_type, handler=handler)

    def respond(
        self,
        request_type: type[BaseModel],
        handler: Callable[[Any], BaseModel],
    ) -> None:
        self._responders[message_type_name(request_type)] = (request_type, handler)

    def subscribed_queues(self, message_type: type[BaseModel]) -> list[str]:
        return sorted(self._subscriptions.get(message_type_name(message_type), {}))

    def publish(
        self,
        message: BaseModel,
        *,
        message_id: str | None = None,
        now_utc: datetime | None = None,
    ) -> str:
        name = message_type_name(type(message))
        resolved_message_id = message_id or str(uuid.uuid4())
        queues = sorted(self._subscriptions.get(name, {}))
        if not queues:
            logger.warning(
                "broker_publish_no_subscribers",
                extra={"message_type": name, "message_id": resolved_message_id},
            )
            return resolved_message_id

        payload = message.model_dump(mode="json")
        scheduled_at = now_utc or _utcnow()
        try:
            with self._session_factory() as session:
                for queue in queues:
                    session.add(
                        BrokerMessage(
                            message_id=resolved_message_id,
                            message_type=name,
                            queue=queue,
                            payload=payload,
                            status=MESSAGE_STATUS_PENDING,
                            attempts=0,
                            scheduled_at_utc=scheduled_at,
                        )
                    )
                session.commit()
        except SQLAlchemyError as exc:
            raise BrokerError(f"Failed to publish {name}: {exc.__class__.__name__}") from exc

        logger.info(
            "broker_message_published",
            extra={"message_type": name, "message_id": resolved_message_id, "queues": queues},
        )
        return resolved_message_id

    def request(
        self,
        request: BaseModel,
        response_type: type[ResponseT],
        *,
        timeout_seconds: float,
    ) -> ResponseT:
        name = message_type_name(type(request))
        responder = self._responders.get(name)
        if responder is None:
            raise BrokerError(f"No responder registered for {name}")

        request_type, handler = responder
        wire_request = request_type.model_validate_json(request.model_dump_json())
        future = self._executor.submit(handler, wire_request)
        try:
            raw_response = future.result(timeout=timeout_seconds)
        except FutureTimeoutError as exc:
            future.cancel()
            logger.warning(
                "broker_request_timeout",
                extra={"message_type": name, "timeout_seconds": timeout_seconds},
            )
            raise BrokerRequestTimeout(f"{name} timed out after {timeout_seconds}s") from exc
        except Exception as exc:
            logger.warning(
                "broker_request_failed",
                extra={"message_type": name, "error": str(exc)[:500]},
            )
            raise BrokerError(f"{name} failed: {exc.__class__.__name__}") from exc

        return response_type.model_validate_json(raw_response.model_dump_json())

    def dispatch_pending(self, limit: int = 50, *, now_utc: datetime | None = None) -> list[BrokerMessage]:
        reference_utc = now_utc or _utcnow()
        with self._session_factory() as session:
            claimed = self._claim_due_messages(session, now_utc=reference_utc, limit=max(1, limit))
            for message in claimed:
                if message.attempts >= self._max_attempts:
                    self._dead_letter(
                        session,
                        message,
                        error=message.last_error or "Processing lease expired",
                        now_utc=reference_utc,
                    )
                    continue
                with log_context(broker_message_id=message.message_id, message_type=message.message_type):
                    self._deliver(session, message, now_utc=reference_utc)
            return claimed

    def queue_stats(self) -> dict[str, int]:
        with self._session_factory() as session:
            rows = session.execute(
                select(BrokerMessage.status, func.count(BrokerMessage.id)).group_by(BrokerMessage.status)
            ).all()
        return {str(status): int(count) for status, count in rows}

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _claim_due_messages(
        self,
        session: Session,
        *,
        now_utc: datetime,
        limit: int,
    ) -> list[BrokerMessage]:
        lease_cutoff = now_utc - self._processing_timeout
        with session.begin():
            stmt = (
                select(BrokerMessage)
                .where(
                    or_(
                        and_(
                            BrokerMessage.status == MESSAGE_STATUS_PENDING,
                            BrokerMessage.scheduled_at_utc <= now_utc,
                        ),
                        # A worker that died mid-delivery leaves its rows in PROCESSING.
                        and_(
                            BrokerMessage.status == MESSAGE_STATUS_PROCESSING,
                            BrokerMessage.updated_at <= lease_cutoff,
                        ),
                    )
                )
                .order_by(BrokerMessage.scheduled_at_utc.asc(), BrokerMessage.id.asc())
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
            messages = list(session.scalars(stmt).all())
            for message in messages:
                if message.status == MESSAGE_STATUS_PROCESSING:
                    message.attempts = (message.attempts or 0) + 1
                    message.last_error = "Processing lease expired"
                    logger.warning(
                        "broker_message_lease_expired",
                        extra={
                            "message_type": message.message_type,
                            "message_id": message.message_id,
                            "queue": message.queue,
                            "attempts": message.attempts,
                        },
                    )
                message.status = MESSAGE_STATUS_PROCESSING
                message.updated_at = now_utc
        return messages

    def _deliver(self, session: Session, message: BrokerMessage, *, now_utc: datetime) -> None:
        subscription = self._subscriptions.get(message.message_type, {}).get(message.queue)
        if subscription is None:
            self._dead_letter(session, message, error="No consumer registered for queue", now_utc=now_utc)
            return

        try:
            event = subscription.message_type.model_validate(message.payload)
        except ValidationError as exc:
            # Redelivery cannot fix a payload that does not match the contract.
            self._dead_letter(session, message, error=str(exc), now_utc=now_utc)
            return

        try:
            subscription.handler(event)
        except Exception as exc:
            self._mark_message_failure(session, message, error=exc, now_utc=now_utc)
            return

        message.attempts = (message.attempts or 0) + 1
        message.status = MESSAGE_STATUS_DONE
        message.processed_at_utc = now_utc
        message.last_error = None
        session.commit()
        logger.info(
            "broker_message_consumed",
            extra={
                "message_type": message.message_type,
                "message_id": message.message_id,
                "queue": message.queue,
                "attempts": message.attempts,
            },
        )

    def _mark_message_failure(
        self,
        session: Session,
        message: BrokerMessage,
        *,
        error: Exception,
        now_utc: datetime,
    ) -> None:
        next_attempts = (message.attempts or 0) + 1
        message.attempts = next_attempts
        message.last_error = str(error)[:4000]
        if next_attempts >= self._max_attempts:
            self._dead_letter(session, message, error=message.last_error, now_utc=now_utc)
            return

        message.status = MESSAGE_STATUS_PENDING
        message.scheduled_at_utc = now_utc + self._retry_interval
        session.commit()
        logger.warning(
            "broker_message_retry_scheduled",
            extra={
                "message_type": message.message_type,
                "message_id": message.message_id,
                "queue": message.queue,
                "attempts": next_attempts,
                "error": message.last_error[:500],
            },
        )

    def _dead_letter(
        self,
        session: Session,
        message: BrokerMessage,
        *,
        error: str,
        now_utc: datetime,
    ) -> None:
        message.status = MESSAGE_STATUS_DEAD_LETTERED
        message.last_error = error[:4000]
        message.processed_at_utc = now_utc
        session.commit()
        logger.error(
            "broker_message_dead_lettered",
            extra={
                "message_type": message.message_type,
                "message_id": message.message_id,
                "queue": message.queue,
                "attempts": message.attempts,
                "error": message.last_error[:500],
            },
        )


@lru_cache
def get_broker() -> MessageBroker:
    settings = get_settings()
    return MessageBroker(
        BrokerSessionLocal,
        retry_interval_seconds=settings.broker_retry_interval_seconds,
        max_attempts=settings.broker_max_attempts,
        request_workers=settings.broker_request_workers,
        processing_timeout_seconds=settings.broker_processing_timeout_seconds,
    )
