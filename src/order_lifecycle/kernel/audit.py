"""
Audit Sink - where committed lifecycle transitions are reported

The engine hands a structured AuditRecord to the sink after every transition
that buyers, sellers or compliance may need to hear about. Delivery (email,
SMS, legal notice rendering) is the sink's business, not the engine's.

A sink failure never undoes a committed transition: the event log is the
source of truth, the sink is a downstream consumer.
"""

from collections import defaultdict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Protocol

from pydantic import BaseModel, Field

from order_lifecycle.kernel.logging import get_logger

logger = get_logger(__name__)


class AuditRecordType(str, Enum):
    CANCELLATION_RECORDED = "cancellation_recorded"
    ACCOUNT_SUSPENDED = "account_suspended"
    ADVANCEMENT_RECORDED = "advancement_recorded"
    SELECTION_MADE = "selection_made"
    FAILOVER_TRIGGERED = "failover_triggered"
    FAILOVER_EXHAUSTED = "failover_exhausted"


class AuditRecord(BaseModel):
    """One structured record handed to the audit sink"""

    record_type: AuditRecordType
    occurred_at: datetime
    actor_id: str | None = Field(
        default=None,
        description="Actor whose call produced the record (None for closure processing)",
    )
    subject_id: str = Field(
        ...,
        description="Commitment id or closure round id the record is about",
    )
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class AuditSink(Protocol):
    """Anything that accepts audit records"""

    def emit(self, record: AuditRecord) -> None:
        """Accept one record; may raise, the engine logs and carries on"""
        ...


class LoggingAuditSink:
    """Default sink - writes each record to the structured log"""

    def __init__(self) -> None:
        self._logger = get_logger("order_lifecycle.audit")

    def emit(self, record: AuditRecord) -> None:
        self._logger.info(
            "Audit record",
            record_type=record.record_type.value,
            subject_id=record.subject_id,
            occurred_at=record.occurred_at.isoformat(),
            actor_id=record.actor_id,
            details=record.details,
        )


class InMemoryAuditSink:
    """Collects records in a list (tests, embedding applications)"""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def emit(self, record: AuditRecord) -> None:
        self.records.append(record)

    def of_type(self, record_type: AuditRecordType) -> list[AuditRecord]:
        return [r for r in self.records if r.record_type == record_type]

    def clear(self) -> None:
        self.records.clear()


AuditSubscriber = Callable[[AuditRecord], None]


class InProcessAuditBus:
    """
    Synchronous pub/sub over audit records

    Subscribers register per record type. Subscribers are called in
    registration order; one failing subscriber does not stop the others.
    """

    def __init__(self) -> None:
        self._subscribers: defaultdict[AuditRecordType, list[AuditSubscriber]] = (
            defaultdict(list)
        )

    def subscribe(self, record_type: AuditRecordType, subscriber: AuditSubscriber) -> None:
        self._subscribers[record_type].append(subscriber)
        logger.debug(
            "Audit subscriber registered",
            record_type=record_type.value,
            total_subscribers=len(self._subscribers[record_type]),
        )

    def emit(self, record: AuditRecord) -> None:
        subscribers = self._subscribers.get(record.record_type, [])
        if not subscribers:
            logger.debug("No audit subscribers", record_type=record.record_type.value)
            return

        for subscriber in subscribers:
            try:
                subscriber(record)
            except Exception as e:
                logger.error(
                    "Audit subscriber failed",
                    record_type=record.record_type.value,
                    subject_id=record.subject_id,
                    error=str(e),
                    exc_info=True,
                )

    def get_record_types(self) -> list[AuditRecordType]:
        """Record types with at least one subscriber"""
        return list(self._subscribers.keys())

    def clear(self) -> None:
        self._subscribers.clear()
