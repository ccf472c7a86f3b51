"""
Custom exceptions for the order lifecycle engine

Four families of failure, each handled differently:
- NotFound: missing commitment/offer/round/reward, surfaced to the caller
- ConcurrencyConflict: optimistic-lock failure, retried once by the façade
- InvariantViolation: an illegal transition, always fatal to the call
- Policy violations are NOT exceptions - they come back as declined results
  carrying a reason the UI can display
"""


class OrderLifecycleError(Exception):
    """Base exception for all order lifecycle errors"""

    pass


# ============================================================================
# Event store
# ============================================================================


class EventStoreError(OrderLifecycleError):
    """Base class for event store errors"""

    pass


class CommandIdempotencyViolation(EventStoreError):
    """
    Raised when a duplicate command_id cannot be resolved to stored events

    A duplicate that CAN be resolved is success: the store returns the
    original events without re-executing.
    """

    def __init__(self, command_id: str, message: str = "") -> None:
        self.command_id = command_id
        super().__init__(
            message or f"Command {command_id} already processed (idempotency preserved)"
        )


class ConcurrencyConflict(EventStoreError):
    """Base class for optimistic concurrency failures"""

    pass


class StreamVersionConflict(ConcurrencyConflict):
    """
    Raised when stream version doesn't match expected (optimistic locking)

    Indicates concurrent modification - caller should reload and retry.
    """

    def __init__(
        self, stream_id: str, expected_version: int, actual_version: int
    ) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream {stream_id} version mismatch: "
            f"expected {expected_version}, got {actual_version}"
        )


# ============================================================================
# Not found
# ============================================================================


class NotFound(OrderLifecycleError):
    """Base class for missing records"""

    pass


class CommitmentNotFound(NotFound):
    """Raised when a commitment does not exist"""

    def __init__(self, commitment_id: str) -> None:
        self.commitment_id = commitment_id
        super().__init__(f"Commitment {commitment_id} not found")


class OfferNotFound(NotFound):
    """Raised when an offer does not exist"""

    def __init__(self, offer_id: str) -> None:
        self.offer_id = offer_id
        super().__init__(f"Offer {offer_id} not found")


class ClosureRoundNotFound(NotFound):
    """Raised when no closure round matches the lookup"""

    def __init__(self, lookup: str) -> None:
        self.lookup = lookup
        super().__init__(f"Closure round not found for {lookup}")


class RewardNotFound(NotFound):
    """Raised when an advancement reward does not exist"""

    def __init__(self, reward_id: str) -> None:
        self.reward_id = reward_id
        super().__init__(f"Advancement reward {reward_id} not found")


# ============================================================================
# Invariant violations
# ============================================================================


class InvariantViolation(OrderLifecycleError):
    """
    Raised when a domain invariant would be violated

    These are never downgraded to declined results.
    """

    pass


class CommitmentTerminal(InvariantViolation):
    """Raised when mutating a cancelled or completed commitment"""

    def __init__(self, commitment_id: str, status: str) -> None:
        self.commitment_id = commitment_id
        self.status = status
        super().__init__(
            f"Commitment {commitment_id} is {status} - terminal commitments are immutable"
        )


class NotCommitmentOwner(InvariantViolation):
    """Raised when an actor acts on a commitment opened by someone else"""

    def __init__(self, commitment_id: str, actor_id: str) -> None:
        self.commitment_id = commitment_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} does not own commitment {commitment_id}")


class InvalidDeadline(InvariantViolation):
    """Raised when a commitment is opened with a deadline that is not in the future"""

    def __init__(self, deadline: str, now: str) -> None:
        self.deadline = deadline
        self.now = now
        super().__init__(f"Deadline {deadline} must be after current time {now}")


class AccountSuspended(InvariantViolation):
    """Raised when a suspended or banned actor tries to open a commitment"""

    def __init__(self, actor_id: str, account_status: str, until: str | None = None) -> None:
        self.actor_id = actor_id
        self.account_status = account_status
        self.until = until
        suffix = f" until {until}" if until else ""
        super().__init__(
            f"Actor {actor_id} is {account_status}{suffix} and cannot make new orders"
        )


class InvalidRoundTransition(InvariantViolation):
    """Raised when a closure round transition is not allowed from its status"""

    def __init__(self, round_id: str, current_status: str, operation: str) -> None:
        self.round_id = round_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Closure round {round_id} is {current_status}, cannot {operation}"
        )


class InvalidRewardTransition(InvariantViolation):
    """Raised when an advancement reward moves out of order"""

    def __init__(self, reward_id: str, current_status: str, target_status: str) -> None:
        self.reward_id = reward_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Advancement reward {reward_id} is {current_status}, cannot become {target_status}"
        )


class OfferProductMismatch(InvariantViolation):
    """Raised when a closure pool contains an offer for another product"""

    def __init__(self, offer_id: str, expected: str, actual: str) -> None:
        self.offer_id = offer_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Offer {offer_id} is for {actual}, not {expected} - "
            "a closure round ranks a single product's pool"
        )


class OfferAlreadyClaimed(InvariantViolation):
    """Raised when a closure pool names an offer that an earlier round already ranked"""

    def __init__(self, offer_id: str, status: str) -> None:
        self.offer_id = offer_id
        self.status = status
        super().__init__(
            f"Offer {offer_id} is {status} - only open offers can compete in a new round"
        )
