"""
Kernel - Core event sourcing infrastructure

Clock, ids, events and the append-only store that every lifecycle
transition is written to, plus the ambient pieces: policy configuration,
structured logging, metrics, retry and the audit sink interface.
"""

from order_lifecycle.kernel.audit import (
    AuditRecord,
    AuditRecordType,
    AuditSink,
    InMemoryAuditSink,
    InProcessAuditBus,
    LoggingAuditSink,
)
from order_lifecycle.kernel.errors import (
    CommandIdempotencyViolation,
    ConcurrencyConflict,
    EventStoreError,
    InvariantViolation,
    NotFound,
    OrderLifecycleError,
    StreamVersionConflict,
)
from order_lifecycle.kernel.event_store import SQLiteEventStore
from order_lifecycle.kernel.events import Event
from order_lifecycle.kernel.ids import deterministic_id, generate_id
from order_lifecycle.kernel.policy import ActorClass, LifecyclePolicy
from order_lifecycle.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # IDs
    "generate_id",
    "deterministic_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Events & store
    "Event",
    "SQLiteEventStore",
    # Policy
    "ActorClass",
    "LifecyclePolicy",
    # Audit
    "AuditRecord",
    "AuditRecordType",
    "AuditSink",
    "LoggingAuditSink",
    "InMemoryAuditSink",
    "InProcessAuditBus",
    # Errors
    "OrderLifecycleError",
    "EventStoreError",
    "CommandIdempotencyViolation",
    "ConcurrencyConflict",
    "StreamVersionConflict",
    "NotFound",
    "InvariantViolation",
]
