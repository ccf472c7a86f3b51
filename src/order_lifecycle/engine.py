"""
OrderLifecycle - Main façade class

This is the primary interface to the order lifecycle engine. It hides event
sourcing, projections and command handling behind plain method calls.

Example:
    >>> from order_lifecycle import OrderLifecycle
    >>> engine = OrderLifecycle("orders.db")
    >>> intention = engine.open_intention("buyer-1", "phones:iPhone 15 Pro",
    ...                                   deadline=date(2025, 6, 1), target_price=999)
    >>> engine.can_cancel(intention.commitment_id)
    >>> engine.advance("buyer-1", intention.commitment_id, date(2025, 4, 1))
    >>> engine.register_offer("seller-9", "phones:iPhone 15 Pro", price=989)
    >>> round_ = engine.process_closure("phones:iPhone 15 Pro", deadline=date(2025, 6, 1))
    >>> engine.handle_fulfillment_failure(round_.selected_offer_id, "out of stock")

Every state-changing call is one atomic append. A call that loses an
optimistic-lock race is re-read from the store and re-validated exactly once
before the conflict reaches the caller.
"""

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, TypeVar

from order_lifecycle.closure import commands as closure_commands
from order_lifecycle.closure.handlers import (
    ClosureCommandHandlers,
    closure_command_id,
    closure_round_id,
)
from order_lifecycle.closure.models import (
    ClosureRound,
    FailoverResult,
    Offer,
    OfferStatus,
)
from order_lifecycle.closure.pool import BuyerPoolOracle, CommitmentPoolOracle
from order_lifecycle.closure.projections import ClosureRegistry, OfferBook
from order_lifecycle.closure.selection import rank_offers
from order_lifecycle.commitments import commands as commitment_commands
from order_lifecycle.commitments.advancement import evaluate_advancement
from order_lifecycle.commitments.cancellation import evaluate_cancellation
from order_lifecycle.commitments.handlers import CommitmentCommandHandlers
from order_lifecycle.commitments.models import (
    RFQ,
    AdvancementCheck,
    AdvancementResult,
    AdvancementReward,
    CancellationCheck,
    CancellationRecord,
    CancellationResult,
    CancellationStatus,
    ProductKey,
    PurchaseIntention,
)
from order_lifecycle.commitments.projections import (
    ActorRecordRegistry,
    AnyCommitment,
    CancellationLog,
    CommitmentRegistry,
    RewardLedger,
)
from order_lifecycle.kernel.audit import (
    AuditRecord,
    AuditRecordType,
    AuditSink,
    LoggingAuditSink,
)
from order_lifecycle.kernel.errors import (
    ClosureRoundNotFound,
    CommitmentNotFound,
    CommitmentTerminal,
    NotCommitmentOwner,
    OfferAlreadyClaimed,
    OfferNotFound,
    OfferProductMismatch,
)
from order_lifecycle.kernel.event_store import SQLiteEventStore
from order_lifecycle.kernel.events import Event, group_by_stream
from order_lifecycle.kernel.ids import generate_id
from order_lifecycle.kernel.logging import LogOperation, get_logger
from order_lifecycle.kernel.metrics import (
    advancements_total,
    cancellations_total,
    closure_pool_size,
    closure_rounds_total,
    failovers_total,
    suspensions_total,
    track_operation,
)
from order_lifecycle.kernel.policy import LifecyclePolicy
from order_lifecycle.kernel.retry import retry_on_version_conflict
from order_lifecycle.kernel.time import RealTimeProvider, TimeProvider, as_utc

logger = get_logger(__name__)

T = TypeVar("T")


def _product(product: ProductKey | str) -> ProductKey:
    return product if isinstance(product, ProductKey) else ProductKey.parse(product)


class OrderLifecycle:
    """
    Order lifecycle main façade

    Provides a unified API for:
    - Opening purchase intentions and RFQs
    - Cancellation with margins, monthly limits and suspension
    - Advancement with bonus curves and counterpart rewards
    - Deadline closure with lowest-price selection and backup failover
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: LifecyclePolicy | None = None,
        time_provider: TimeProvider | None = None,
        audit_sink: AuditSink | None = None,
        buyer_pool: BuyerPoolOracle | None = None,
    ) -> None:
        """
        Initialize the engine over a SQLite event store

        Args:
            sqlite_path: Path to SQLite database
            policy: Lifecycle policy (uses defaults if None)
            time_provider: Time provider (uses real time if None)
            audit_sink: Receives audit records (logs them if None)
            buyer_pool: Buyer-pool size oracle (counts open intentions if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or LifecyclePolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.buyer_pool = buyer_pool or CommitmentPoolOracle(
            lambda: self.commitment_registry
        )

        # Initialize infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.commitment_handlers = CommitmentCommandHandlers(self.time_provider, self.policy)
        self.closure_handlers = ClosureCommandHandlers(self.time_provider, self.policy)

        # Rebuild projections from event store
        self._rebuild_projections()

    def _rebuild_projections(self) -> None:
        """Discard every read model and replay the full event log"""
        self.commitment_registry = CommitmentRegistry()
        self.actor_records = ActorRecordRegistry()
        self.cancellation_log = CancellationLog()
        self.reward_ledger = RewardLedger()
        self.offer_book = OfferBook()
        self.closure_registry = ClosureRegistry()
        self._applied_event_ids: set[str] = set()

        all_events = self.event_store.load_all_events()
        for event in all_events:
            self._apply(event)
        logger.debug("Projections rebuilt", events=len(all_events))

    def _apply(self, event: Event) -> None:
        if event.event_id in self._applied_event_ids:
            return
        for projection in (
            self.commitment_registry,
            self.actor_records,
            self.cancellation_log,
            self.reward_ledger,
            self.offer_book,
            self.closure_registry,
        ):
            projection.apply_event(event)
        self._applied_event_ids.add(event.event_id)

    def _commit(self, events: list[Event]) -> list[Event]:
        """
        Append one command's events atomically, then update projections

        Returns the stored events, which are an earlier run's events when the
        command id had already been processed.
        """
        if not events:
            return []
        stored = self.event_store.append_streams(group_by_stream(events))
        for event in stored:
            self._apply(event)
        return stored

    def _with_conflict_retry(self, operation: Callable[[], T]) -> T:
        """Run once; on a version conflict re-read everything and run once more"""
        retrying = retry_on_version_conflict(lambda conflict: self._rebuild_projections())
        return retrying(operation)

    def _emit(self, record: AuditRecord) -> None:
        try:
            self.audit_sink.emit(record)
        except Exception as e:
            logger.error(
                "Audit sink failed",
                record_type=record.record_type.value,
                subject_id=record.subject_id,
                error=str(e),
                exc_info=True,
            )

    def _get_commitment(self, commitment_id: str) -> AnyCommitment:
        commitment = self.commitment_registry.get(commitment_id)
        if commitment is None:
            raise CommitmentNotFound(commitment_id)
        return commitment

    # ========================================================================
    # Commitment operations
    # ========================================================================

    @track_operation("open_intention")
    def open_intention(
        self,
        actor_id: str,
        product: ProductKey | str,
        deadline: datetime | date,
        target_price: Decimal | int | str,
        quantity: int = 1,
    ) -> PurchaseIntention:
        """
        Open a consumer purchase intention

        Raises:
            InvalidDeadline: If the deadline is not in the future
            AccountSuspended: If the actor is suspended or banned
        """
        command = commitment_commands.OpenIntention(
            product=_product(product),
            deadline=deadline,
            target_price=target_price,
            quantity=quantity,
        )
        with LogOperation(logger, "open_intention", actor_id=actor_id, product=str(command.product)):
            events = self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_open_intention(
                        command, generate_id(), actor_id, self.actor_records
                    )
                )
            )
            return self.get_commitment(events[0].stream_id)

    @track_operation("open_rfq")
    def open_rfq(
        self,
        actor_id: str,
        product: ProductKey | str,
        deadline: datetime | date,
        target_price: Decimal | int | str,
        quantity: int = 1,
    ) -> RFQ:
        """
        Open a business request for quote

        Raises:
            InvalidDeadline: If the deadline is not in the future
            AccountSuspended: If the actor is suspended or banned
        """
        command = commitment_commands.OpenRFQ(
            product=_product(product),
            deadline=deadline,
            target_price=target_price,
            quantity=quantity,
        )
        with LogOperation(logger, "open_rfq", actor_id=actor_id, product=str(command.product)):
            events = self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_open_rfq(
                        command, generate_id(), actor_id, self.actor_records
                    )
                )
            )
            return self.get_commitment(events[0].stream_id)

    @track_operation("record_rfq_response")
    def record_rfq_response(
        self,
        commitment_id: str,
        supplier_id: str,
        quoted_price: Decimal | int | str | None = None,
    ) -> RFQ:
        command = commitment_commands.RecordRfqResponse(
            commitment_id=commitment_id,
            supplier_id=supplier_id,
            quoted_price=quoted_price,
        )
        with LogOperation(logger, "record_rfq_response", commitment_id=commitment_id, supplier_id=supplier_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_record_rfq_response(
                        command, generate_id(), supplier_id, self.commitment_registry
                    )
                )
            )
            return self.get_commitment(commitment_id)

    def get_commitment(self, commitment_id: str) -> AnyCommitment:
        """
        Raises:
            CommitmentNotFound: If no such commitment exists
        """
        return self._get_commitment(commitment_id).model_copy(deep=True)

    def list_commitments(self, actor_id: str) -> list[AnyCommitment]:
        return [
            c.model_copy(deep=True)
            for c in sorted(
                self.commitment_registry.list_by_actor(actor_id), key=lambda c: c.created_at
            )
        ]

    @track_operation("complete_commitment")
    def complete_commitment(self, commitment_id: str, actor_id: str | None = None) -> AnyCommitment:
        """
        Mark a commitment fulfilled

        Raises:
            CommitmentNotFound: If no such commitment exists
            CommitmentTerminal: If it is already cancelled or completed
        """
        command = commitment_commands.CompleteCommitment(commitment_id=commitment_id)
        with LogOperation(logger, "complete_commitment", commitment_id=commitment_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_complete(
                        command, generate_id(), actor_id, self.commitment_registry
                    )
                )
            )
            return self.get_commitment(commitment_id)

    # ========================================================================
    # Cancellation
    # ========================================================================

    def can_cancel(self, commitment_id: str) -> CancellationCheck:
        """
        Would a cancellation be accepted right now? No side effects.

        Raises:
            CommitmentNotFound: If no such commitment exists
        """
        commitment = self._get_commitment(commitment_id)
        return evaluate_cancellation(commitment, self.time_provider.now(), self.policy)

    @track_operation("cancel")
    def cancel(self, actor_id: str, commitment_id: str, reason: str = "") -> CancellationResult:
        """
        Cancel a commitment

        A cancellation inside the margin, or of a commitment that is no
        longer open, is declined with a reason and changes nothing.

        Raises:
            CommitmentNotFound: If no such commitment exists
            NotCommitmentOwner: If actor_id did not open the commitment
            StreamVersionConflict: If a concurrent change won twice in a row
        """
        with LogOperation(logger, "cancel", commitment_id=commitment_id, actor_id=actor_id):
            return self._with_conflict_retry(
                lambda: self._cancel_once(actor_id, commitment_id, reason)
            )

    def _cancel_once(self, actor_id: str, commitment_id: str, reason: str) -> CancellationResult:
        now = self.time_provider.now()
        commitment = self._get_commitment(commitment_id)
        if commitment.actor_id != actor_id:
            raise NotCommitmentOwner(commitment_id, actor_id)
        actor_class = commitment.actor_class

        check = evaluate_cancellation(commitment, now, self.policy)
        if not check.allowed:
            cancellations_total.labels(actor_class=actor_class.value, outcome="declined").inc()
            logger.info(
                "Cancellation declined",
                commitment_id=commitment_id,
                hours_to_deadline=check.hours_to_deadline,
            )
            return CancellationResult(success=False, reason=check.reason)

        command = commitment_commands.CancelCommitment(commitment_id=commitment_id, reason=reason)
        events = self._commit(
            self.commitment_handlers.handle_cancel(
                command,
                generate_id(),
                actor_id,
                check,
                self.commitment_registry,
                self.actor_records,
            )
        )

        cancelled = self.cancellation_log.for_commitment(commitment_id)
        record = self.actor_records.get_or_new(actor_id)
        cancellations_total.labels(actor_class=actor_class.value, outcome="cancelled").inc()

        self._emit(
            AuditRecord(
                record_type=AuditRecordType.CANCELLATION_RECORDED,
                occurred_at=now,
                actor_id=actor_id,
                subject_id=commitment_id,
                details=events[0].payload,
            )
        )
        if cancelled.penalty_applied:
            suspensions_total.labels(actor_class=actor_class.value).inc()
            self._emit(
                AuditRecord(
                    record_type=AuditRecordType.ACCOUNT_SUSPENDED,
                    occurred_at=now,
                    actor_id=actor_id,
                    subject_id=commitment_id,
                    details=events[-1].payload,
                )
            )

        return CancellationResult(
            success=True,
            penalty_applied=cancelled.penalty_applied,
            compensation_required=cancelled.compensation_required,
            account_status=record.effective_status(now),
            suspension_until=record.suspension_until if record.is_suspended(now) else None,
        )

    def list_cancellations(self, actor_id: str) -> list[CancellationRecord]:
        return [e.model_copy() for e in self.cancellation_log.for_actor(actor_id)]

    # ========================================================================
    # Advancement
    # ========================================================================

    def can_advance(self, commitment_id: str, new_date: datetime | date) -> AdvancementCheck:
        """
        Would moving the deadline to new_date be accepted, and for what bonus?

        Raises:
            CommitmentNotFound: If no such commitment exists
        """
        commitment = self._get_commitment(commitment_id)
        return evaluate_advancement(
            commitment, as_utc(new_date), self.time_provider.now(), self.policy
        )

    @track_operation("advance")
    def advance(
        self, actor_id: str, commitment_id: str, new_date: datetime | date
    ) -> AdvancementResult:
        """
        Move a commitment's deadline earlier

        Declined (no change) below the class minimum or for a date not in the
        future.

        Raises:
            CommitmentNotFound: If no such commitment exists
            NotCommitmentOwner: If actor_id did not open the commitment
            CommitmentTerminal: If the commitment is cancelled or completed
            StreamVersionConflict: If a concurrent change won twice in a row
        """
        with LogOperation(logger, "advance", commitment_id=commitment_id, actor_id=actor_id):
            return self._with_conflict_retry(
                lambda: self._advance_once(actor_id, commitment_id, new_date)
            )

    def _advance_once(
        self, actor_id: str, commitment_id: str, new_date: datetime | date
    ) -> AdvancementResult:
        now = self.time_provider.now()
        commitment = self._get_commitment(commitment_id)
        if commitment.actor_id != actor_id:
            raise NotCommitmentOwner(commitment_id, actor_id)
        if commitment.is_terminal():
            raise CommitmentTerminal(commitment_id, commitment.status.value)
        actor_class = commitment.actor_class

        check = evaluate_advancement(commitment, as_utc(new_date), now, self.policy)
        if not check.allowed:
            advancements_total.labels(actor_class=actor_class.value, outcome="declined").inc()
            return AdvancementResult(
                success=False, days_advanced=check.days_advanced, reason=check.reason
            )

        counterpart_id = self._find_counterpart(commitment)
        command = commitment_commands.AdvanceCommitment(
            commitment_id=commitment_id, new_date=new_date
        )
        events = self._commit(
            self.commitment_handlers.handle_advance(
                command,
                generate_id(),
                actor_id,
                check,
                self.commitment_registry,
                counterpart_id,
            )
        )

        reward_id = next(
            (e.stream_id for e in events if e.event_type == "AdvancementRewardCreated"), None
        )
        advancements_total.labels(actor_class=actor_class.value, outcome="advanced").inc()
        self._emit(
            AuditRecord(
                record_type=AuditRecordType.ADVANCEMENT_RECORDED,
                occurred_at=now,
                actor_id=actor_id,
                subject_id=commitment_id,
                details={**events[0].payload, "reward_id": reward_id},
            )
        )

        return AdvancementResult(
            success=True,
            bonus_discount_percent=check.max_bonus_percent,
            cost_savings=check.cost_savings,
            counterpart_id=counterpart_id,
            days_advanced=check.days_advanced,
            reward_id=reward_id,
        )

    def _find_counterpart(self, commitment: AnyCommitment) -> str | None:
        """
        Earliest responding supplier for an RFQ; for an intention, the seller
        of the best-ranked live offer on the same product
        """
        if isinstance(commitment, RFQ):
            return commitment.first_responder()
        live = [
            o
            for o in self.offer_book.list_for_product(commitment.product.key)
            if o.status in (OfferStatus.OPEN, OfferStatus.SELECTED, OfferStatus.BACKUP)
        ]
        ranked = rank_offers(live)
        return ranked[0].seller_id if ranked else None

    # ========================================================================
    # Actor standing
    # ========================================================================

    def get_cancellation_status(self, actor_id: str) -> CancellationStatus:
        """
        Counters for the current month and whether the actor may order

        An actor with no history reads as active with zero cancellations.
        """
        now = self.time_provider.now()
        record = self.actor_records.get_or_new(actor_id)
        consumer_count, business_count = record.counters_as_of(now)
        suspended = record.is_suspended(now)
        return CancellationStatus(
            actor_id=actor_id,
            cancellations_this_month=consumer_count,
            rfq_cancellations_this_month=business_count,
            account_status=record.effective_status(now),
            suspension_until=record.suspension_until if suspended else None,
            suspension_reason=record.suspension_reason,
            can_make_new_orders=record.can_make_new_orders(now),
        )

    @track_operation("ban_actor")
    def ban_actor(self, actor_id: str, reason: str, operator_id: str | None = None) -> CancellationStatus:
        command = commitment_commands.BanActor(actor_id=actor_id, reason=reason)
        with LogOperation(logger, "ban_actor", actor_id=actor_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_ban_actor(
                        command, generate_id(), operator_id, self.actor_records
                    )
                )
            )
            return self.get_cancellation_status(actor_id)

    @track_operation("set_business_cancellation_limit")
    def set_business_cancellation_limit(
        self, actor_id: str, limit: int, operator_id: str | None = None
    ) -> CancellationStatus:
        command = commitment_commands.SetBusinessCancellationLimit(actor_id=actor_id, limit=limit)
        with LogOperation(logger, "set_business_cancellation_limit", actor_id=actor_id, limit=limit):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_set_business_cancellation_limit(
                        command, generate_id(), operator_id, self.actor_records
                    )
                )
            )
            return self.get_cancellation_status(actor_id)

    # ========================================================================
    # Advancement rewards
    # ========================================================================

    def list_advancement_rewards(self, actor_id: str) -> list[AdvancementReward]:
        return [r.model_copy() for r in self.reward_ledger.for_actor(actor_id)]

    def get_reward(self, reward_id: str) -> AdvancementReward | None:
        reward = self.reward_ledger.get(reward_id)
        return reward.model_copy() if reward else None

    @track_operation("approve_reward")
    def approve_reward(self, reward_id: str, operator_id: str | None = None) -> AdvancementReward:
        """
        Raises:
            RewardNotFound: If no such reward exists
            InvalidRewardTransition: If the reward is not pending
        """
        command = commitment_commands.ApproveReward(reward_id=reward_id)
        with LogOperation(logger, "approve_reward", reward_id=reward_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_approve_reward(
                        command, generate_id(), operator_id, self.reward_ledger
                    )
                )
            )
            return self.reward_ledger.get(reward_id).model_copy()

    @track_operation("redeem_reward")
    def redeem_reward(self, reward_id: str, operator_id: str | None = None) -> AdvancementReward:
        """
        Raises:
            RewardNotFound: If no such reward exists
            InvalidRewardTransition: If the reward is not approved
        """
        command = commitment_commands.RedeemReward(reward_id=reward_id)
        with LogOperation(logger, "redeem_reward", reward_id=reward_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.commitment_handlers.handle_redeem_reward(
                        command, generate_id(), operator_id, self.reward_ledger
                    )
                )
            )
            return self.reward_ledger.get(reward_id).model_copy()

    # ========================================================================
    # Offers
    # ========================================================================

    @track_operation("register_offer")
    def register_offer(
        self,
        seller_id: str,
        product: ProductKey | str,
        price: Decimal | int | str,
        seller_name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Offer:
        command = closure_commands.RegisterOffer(
            seller_id=seller_id,
            product=_product(product),
            price=price,
            seller_name=seller_name,
            metadata=metadata or {},
        )
        with LogOperation(logger, "register_offer", seller_id=seller_id, product=str(command.product)):
            events = self._commit(
                self.closure_handlers.handle_register_offer(command, generate_id(), seller_id)
            )
            return self.get_offer(events[0].stream_id)

    def get_offer(self, offer_id: str) -> Offer:
        """
        Raises:
            OfferNotFound: If no such offer exists
        """
        offer = self.offer_book.get(offer_id)
        if offer is None:
            raise OfferNotFound(offer_id)
        return offer.model_copy(deep=True)

    def list_offers(
        self, product: ProductKey | str, status: OfferStatus | None = None
    ) -> list[Offer]:
        """Offers for a product, best-ranked first"""
        offers = self.offer_book.list_for_product(_product(product).key, status)
        return [o.model_copy(deep=True) for o in rank_offers(offers)]

    # ========================================================================
    # Closure
    # ========================================================================

    @track_operation("process_closure")
    def process_closure(
        self,
        product: ProductKey | str,
        deadline: datetime | date,
        pool: list[Offer | str] | None = None,
        actor_id: str | None = None,
    ) -> ClosureRound:
        """
        Select the winning offer and backups for a product's deadline

        Args:
            product: Product whose deadline has arrived
            deadline: Deadline being resolved; with the product it names the round
            pool: Offers (or offer ids) competing; defaults to every offer
                for the product not yet claimed by a round
            actor_id: Scheduler or operator triggering the round

        Returns:
            The round. Processing the same product and deadline again returns
            the stored round unchanged.

        Raises:
            OfferNotFound: If the pool names an unregistered offer
            OfferProductMismatch: If the pool contains another product's offer
            OfferAlreadyClaimed: If the pool names an offer that is no longer open
        """
        product = _product(product)
        deadline_utc = as_utc(deadline)
        round_id = closure_round_id(product.key, deadline_utc.isoformat())

        with LogOperation(logger, "process_closure", product=product.key, round_id=round_id):
            existing = self.closure_registry.get(round_id)
            if existing is not None:
                logger.info("Closure round already processed", round_id=round_id)
                return existing.model_copy(deep=True)

            offers = self._resolve_pool(product, pool)
            command = closure_commands.ProcessClosure(
                product=product,
                deadline=deadline_utc,
                offer_ids=[o.offer_id for o in offers],
            )
            events = self.closure_handlers.handle_process_closure(
                command,
                closure_command_id(product.key, deadline_utc.isoformat()),
                actor_id,
                offers,
                self.buyer_pool.pool_size(product),
            )
            stored = self._commit(events)
            closure_round = self.closure_registry.get(round_id)

            if stored[0].event_id == events[0].event_id:
                closure_rounds_total.labels(
                    selection_status=closure_round.selection_status.value
                ).inc()
                closure_pool_size.observe(len(offers))
                self._emit(
                    AuditRecord(
                        record_type=AuditRecordType.SELECTION_MADE,
                        occurred_at=closure_round.processed_at,
                        actor_id=actor_id,
                        subject_id=round_id,
                        details=stored[0].payload,
                    )
                )

            return closure_round.model_copy(deep=True)

    def _resolve_pool(
        self, product: ProductKey, pool: list[Offer | str] | None
    ) -> list[Offer]:
        if pool is None:
            return self.offer_book.open_offers(product.key)

        resolved: dict[str, Offer] = {}
        for entry in pool:
            offer_id = entry.offer_id if isinstance(entry, Offer) else entry
            offer = self.offer_book.get(offer_id)
            if offer is None:
                raise OfferNotFound(offer_id)
            if offer.product != product:
                raise OfferProductMismatch(offer_id, product.key, offer.product.key)
            if offer.status != OfferStatus.OPEN:
                raise OfferAlreadyClaimed(offer_id, offer.status.value)
            resolved[offer_id] = offer
        return list(resolved.values())

    @track_operation("handle_fulfillment_failure")
    def handle_fulfillment_failure(
        self, selected_offer_id: str, reason: str, actor_id: str | None = None
    ) -> FailoverResult:
        """
        The selected seller cannot fulfill: promote the next backup

        Returns success=False, with no next offer, when the backup queue was
        already empty; the round is then FAILED and left for manual review.

        Raises:
            ClosureRoundNotFound: If no round currently selects this offer
            InvalidRoundTransition: If that round is already completed
        """
        with LogOperation(logger, "handle_fulfillment_failure", offer_id=selected_offer_id, reason=reason):
            return self._with_conflict_retry(
                lambda: self._fail_over_once(selected_offer_id, reason, actor_id)
            )

    def _fail_over_once(
        self, selected_offer_id: str, reason: str, actor_id: str | None
    ) -> FailoverResult:
        now = self.time_provider.now()
        closure_round = self.closure_registry.find_by_selected_offer(selected_offer_id)
        if closure_round is None:
            raise ClosureRoundNotFound(f"selected offer {selected_offer_id}")

        command = closure_commands.HandleFulfillmentFailure(
            selected_offer_id=selected_offer_id, reason=reason
        )
        events = self._commit(
            self.closure_handlers.handle_fulfillment_failure(
                command, generate_id(), actor_id, closure_round, self.offer_book
            )
        )
        closure_round = self.closure_registry.get(closure_round.round_id)

        if events and events[0].event_type == "FulfillmentFailoverTriggered":
            failovers_total.labels(outcome="promoted").inc()
            self._emit(
                AuditRecord(
                    record_type=AuditRecordType.FAILOVER_TRIGGERED,
                    occurred_at=now,
                    actor_id=actor_id,
                    subject_id=closure_round.round_id,
                    details=events[0].payload,
                )
            )
            return FailoverResult(
                success=True,
                next_best_offer=self.get_offer(closure_round.selected_offer_id),
                round_id=closure_round.round_id,
                remaining_backups=len(closure_round.backup_queue),
            )

        failovers_total.labels(outcome="exhausted").inc()
        if events:
            self._emit(
                AuditRecord(
                    record_type=AuditRecordType.FAILOVER_EXHAUSTED,
                    occurred_at=now,
                    actor_id=actor_id,
                    subject_id=closure_round.round_id,
                    details=events[0].payload,
                )
            )
        return FailoverResult(success=False, round_id=closure_round.round_id)

    @track_operation("complete_round")
    def complete_round(self, round_id: str, actor_id: str | None = None) -> ClosureRound:
        """
        The selected seller delivered

        Raises:
            ClosureRoundNotFound: If no such round exists
            InvalidRoundTransition: If the round is not auto_selected
        """
        command = closure_commands.CompleteRound(round_id=round_id)
        with LogOperation(logger, "complete_round", round_id=round_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.closure_handlers.handle_complete_round(
                        command, generate_id(), actor_id, self._get_round(round_id)
                    )
                )
            )
            return self.get_closure_round(round_id)

    @track_operation("acknowledge_legal_notice")
    def acknowledge_legal_notice(self, round_id: str, actor_id: str | None = None) -> ClosureRound:
        command = closure_commands.AcknowledgeLegalNotice(round_id=round_id)
        with LogOperation(logger, "acknowledge_legal_notice", round_id=round_id):
            self._with_conflict_retry(
                lambda: self._commit(
                    self.closure_handlers.handle_acknowledge_legal_notice(
                        command, generate_id(), actor_id, self._get_round(round_id)
                    )
                )
            )
            return self.get_closure_round(round_id)

    def _get_round(self, round_id: str) -> ClosureRound:
        closure_round = self.closure_registry.get(round_id)
        if closure_round is None:
            raise ClosureRoundNotFound(round_id)
        return closure_round

    def get_closure_round(self, round_id: str) -> ClosureRound:
        """
        Raises:
            ClosureRoundNotFound: If no such round exists
        """
        return self._get_round(round_id).model_copy(deep=True)

    def get_fulfillment_status(self, product: ProductKey | str) -> ClosureRound:
        """
        Latest closure round for a product

        Raises:
            ClosureRoundNotFound: If the product has never been processed
        """
        product = _product(product)
        closure_round = self.closure_registry.latest_for_product(product.key)
        if closure_round is None:
            raise ClosureRoundNotFound(f"product {product.key}")
        return closure_round.model_copy(deep=True)

    # ========================================================================
    # Event log
    # ========================================================================

    def history(self, stream_id: str) -> list[Event]:
        """Every event on one stream (commitment, offer, round, reward or actor-<id>)"""
        return self.event_store.load_stream(stream_id)
