"""
Closure Command Handlers

Turn offer registration, deadline processing and fulfillment failures into
events. Ranking itself lives in selection.py; handlers only package its
result.
"""

from order_lifecycle.closure import commands, events
from order_lifecycle.closure.models import (
    SELECTION_CRITERIA_LOWEST_PRICE,
    ClosureRound,
    Offer,
    SelectionStatus,
)
from order_lifecycle.closure.projections import OfferBook
from order_lifecycle.closure.selection import select_offers
from order_lifecycle.kernel.errors import InvalidRoundTransition, OfferNotFound
from order_lifecycle.kernel.events import Event, create_event
from order_lifecycle.kernel.ids import deterministic_id, generate_id
from order_lifecycle.kernel.policy import LifecyclePolicy
from order_lifecycle.kernel.time import TimeProvider, as_utc


def closure_round_id(product_key: str, deadline_iso: str) -> str:
    """Same product and deadline always name the same round"""
    return deterministic_id("closure-round", product_key, deadline_iso)


def closure_command_id(product_key: str, deadline_iso: str) -> str:
    return deterministic_id("process-closure", product_key, deadline_iso)


class ClosureCommandHandlers:
    """
    Command handlers for offers and closure rounds

    Stateless handlers: receive command, validate, emit events.
    """

    def __init__(self, time_provider: TimeProvider, policy: LifecyclePolicy):
        self.time_provider = time_provider
        self.policy = policy

    def handle_register_offer(
        self,
        command: commands.RegisterOffer,
        command_id: str,
        actor_id: str | None,
    ) -> list[Event]:
        now = self.time_provider.now()
        offer_id = generate_id()

        payload = events.OfferRegistered(
            offer_id=offer_id,
            seller_id=command.seller_id,
            seller_name=command.seller_name,
            product=command.product,
            price=command.price,
            metadata=command.metadata,
            registered_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="OfferRegistered",
                stream_id=offer_id,
                stream_type="offer",
                occurred_at=now,
                actor_id=actor_id or command.seller_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_process_closure(
        self,
        command: commands.ProcessClosure,
        command_id: str,
        actor_id: str | None,
        pool: list[Offer],
        total_buyers: int,
    ) -> list[Event]:
        """
        Rank the pool and open the round

        Args:
            pool: Offers for command.product, already resolved and checked
            total_buyers: Buyer-pool size stamped on the round

        Returns:
            List containing ClosureRoundProcessed; the round is MANUAL_REVIEW
            when the pool is empty
        """
        now = self.time_provider.now()
        deadline = as_utc(command.deadline)
        round_id = closure_round_id(command.product.key, deadline.isoformat())

        selection = select_offers(pool, self.policy.backup_offer_limit)
        status = (
            SelectionStatus.AUTO_SELECTED
            if selection.selected is not None
            else SelectionStatus.MANUAL_REVIEW
        )

        payload = events.ClosureRoundProcessed(
            round_id=round_id,
            product=command.product,
            deadline=deadline,
            total_buyers=total_buyers,
            pool_size=len(pool),
            selected_offer_id=selection.selected.offer_id if selection.selected else None,
            backup_offer_ids=list(selection.backups.offer_ids),
            not_selected_offer_ids=[o.offer_id for o in selection.not_selected],
            selection_status=status,
            selection_criteria=SELECTION_CRITERIA_LOWEST_PRICE,
            processed_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="ClosureRoundProcessed",
                stream_id=round_id,
                stream_type="closure_round",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_fulfillment_failure(
        self,
        command: commands.HandleFulfillmentFailure,
        command_id: str,
        actor_id: str | None,
        closure_round: ClosureRound,
        offer_book: OfferBook,
    ) -> list[Event]:
        """
        Promote the front backup, or record that none is left

        A round already FAILED with an empty queue emits nothing: the
        exhaustion was recorded the first time.

        Raises:
            InvalidRoundTransition: If the round is completed or under manual review
        """
        now = self.time_provider.now()
        if closure_round.selection_status not in (
            SelectionStatus.AUTO_SELECTED,
            SelectionStatus.FAILED,
        ):
            raise InvalidRoundTransition(
                closure_round.round_id,
                closure_round.selection_status.value,
                "handle a fulfillment failure",
            )

        failed = offer_book.get(command.selected_offer_id)
        if failed is None:
            raise OfferNotFound(command.selected_offer_id)

        if not closure_round.backup_queue:
            if closure_round.selection_status == SelectionStatus.FAILED:
                return []
            event_type = "FailoverExhausted"
            payload = events.FailoverExhausted(
                round_id=closure_round.round_id,
                failed_offer_id=failed.offer_id,
                failed_seller_id=failed.seller_id,
                reason=command.reason,
                failed_at=now,
            ).model_dump(mode="json")
        else:
            promoted, remaining = closure_round.backup_queue.pop_front()
            event_type = "FulfillmentFailoverTriggered"
            payload = events.FulfillmentFailoverTriggered(
                round_id=closure_round.round_id,
                failed_offer_id=failed.offer_id,
                failed_seller_id=failed.seller_id,
                promoted_offer_id=promoted,
                remaining_backup_ids=list(remaining.offer_ids),
                reason=command.reason,
                failed_at=now,
            ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type=event_type,
                stream_id=closure_round.round_id,
                stream_type="closure_round",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=closure_round.version + 1,
            )
        ]

    def handle_complete_round(
        self,
        command: commands.CompleteRound,
        command_id: str,
        actor_id: str | None,
        closure_round: ClosureRound,
    ) -> list[Event]:
        now = self.time_provider.now()
        if (
            closure_round.selection_status != SelectionStatus.AUTO_SELECTED
            or closure_round.selected_offer_id is None
        ):
            raise InvalidRoundTransition(
                closure_round.round_id, closure_round.selection_status.value, "complete"
            )

        payload = events.ClosureRoundCompleted(
            round_id=closure_round.round_id,
            selected_offer_id=closure_round.selected_offer_id,
            completed_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="ClosureRoundCompleted",
                stream_id=closure_round.round_id,
                stream_type="closure_round",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=closure_round.version + 1,
            )
        ]

    def handle_acknowledge_legal_notice(
        self,
        command: commands.AcknowledgeLegalNotice,
        command_id: str,
        actor_id: str | None,
        closure_round: ClosureRound,
    ) -> list[Event]:
        """Record the switch disclosure; a no-op when already acknowledged"""
        now = self.time_provider.now()
        if closure_round.legal_notice_shown:
            return []

        payload = events.LegalNoticeAcknowledged(
            round_id=closure_round.round_id,
            acknowledged_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                event_type="LegalNoticeAcknowledged",
                stream_id=closure_round.round_id,
                stream_type="closure_round",
                occurred_at=now,
                actor_id=actor_id,
                command_id=command_id,
                payload=payload,
                version=closure_round.version + 1,
            )
        ]
