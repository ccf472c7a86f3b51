"""
Closure Projections - Read models built from events

OfferBook tracks offers and their status; ClosureRegistry tracks rounds,
their backup queues and the offers they superseded.
"""

from datetime import datetime
from typing import Any

from order_lifecycle.closure.models import (
    BackupQueue,
    ClosureRound,
    Offer,
    OfferStatus,
    SelectionStatus,
    SupersededOffer,
)
from order_lifecycle.kernel.events import Event


def _ts(value: Any) -> datetime:
    return datetime.fromisoformat(value) if isinstance(value, str) else value


class OfferBook:
    """
    Projection: registered offers

    Statuses follow the round events. Those events belong to the round
    stream, so they do not move an offer's version.
    """

    def __init__(self) -> None:
        self.offers: dict[str, Offer] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        payload = event.payload
        if event.event_type == "OfferRegistered":
            self.offers[payload["offer_id"]] = Offer(
                offer_id=payload["offer_id"],
                seller_id=payload["seller_id"],
                seller_name=payload.get("seller_name"),
                product=payload["product"],
                price=payload["price"],
                created_at=payload["registered_at"],
                metadata=payload.get("metadata", {}),
                version=event.version,
            )
        elif event.event_type == "ClosureRoundProcessed":
            self._set_status(payload.get("selected_offer_id"), OfferStatus.SELECTED)
            for offer_id in payload["backup_offer_ids"]:
                self._set_status(offer_id, OfferStatus.BACKUP)
            for offer_id in payload["not_selected_offer_ids"]:
                self._set_status(offer_id, OfferStatus.NOT_SELECTED)
        elif event.event_type == "FulfillmentFailoverTriggered":
            self._set_status(payload["failed_offer_id"], OfferStatus.FAILED)
            self._set_status(payload["promoted_offer_id"], OfferStatus.SELECTED)
        elif event.event_type == "FailoverExhausted":
            self._set_status(payload["failed_offer_id"], OfferStatus.FAILED)
        elif event.event_type == "ClosureRoundCompleted":
            self._set_status(payload["selected_offer_id"], OfferStatus.FULFILLED)

    def _set_status(self, offer_id: str | None, status: OfferStatus) -> None:
        if offer_id and offer_id in self.offers:
            self.offers[offer_id].status = status

    def get(self, offer_id: str) -> Offer | None:
        """Get offer by ID"""
        return self.offers.get(offer_id)

    def list_for_product(
        self, product_key: str, status: OfferStatus | None = None
    ) -> list[Offer]:
        return [
            o
            for o in self.offers.values()
            if o.product.key == product_key and (status is None or o.status == status)
        ]

    def open_offers(self, product_key: str) -> list[Offer]:
        """Offers not yet claimed by any processed round"""
        return self.list_for_product(product_key, OfferStatus.OPEN)


class ClosureRegistry:
    """Projection: closure rounds by id"""

    def __init__(self) -> None:
        self.rounds: dict[str, ClosureRound] = {}

    def apply_event(self, event: Event) -> None:
        """Apply an event to update projection state"""
        payload = event.payload
        if event.event_type == "ClosureRoundProcessed":
            self.rounds[payload["round_id"]] = ClosureRound(
                round_id=payload["round_id"],
                product=payload["product"],
                deadline=payload["deadline"],
                total_buyers=payload["total_buyers"],
                selected_offer_id=payload.get("selected_offer_id"),
                backup_queue=BackupQueue(offer_ids=tuple(payload["backup_offer_ids"])),
                selection_status=payload["selection_status"],
                selection_criteria=payload["selection_criteria"],
                processed_at=payload["processed_at"],
                version=event.version,
            )
            return

        closure_round = self.rounds.get(payload.get("round_id", ""))
        if closure_round is None:
            return

        if event.event_type == "FulfillmentFailoverTriggered":
            closure_round.superseded.append(
                SupersededOffer(
                    offer_id=payload["failed_offer_id"],
                    seller_id=payload["failed_seller_id"],
                    reason=payload["reason"],
                    superseded_at=payload["failed_at"],
                    replaced_by=payload["promoted_offer_id"],
                )
            )
            closure_round.selected_offer_id = payload["promoted_offer_id"]
            closure_round.backup_queue = BackupQueue(
                offer_ids=tuple(payload["remaining_backup_ids"])
            )
            closure_round.selection_status = SelectionStatus.AUTO_SELECTED
            closure_round.legal_notice_shown = False
        elif event.event_type == "FailoverExhausted":
            closure_round.superseded.append(
                SupersededOffer(
                    offer_id=payload["failed_offer_id"],
                    seller_id=payload["failed_seller_id"],
                    reason=payload["reason"],
                    superseded_at=payload["failed_at"],
                )
            )
            closure_round.selection_status = SelectionStatus.FAILED
        elif event.event_type == "ClosureRoundCompleted":
            closure_round.selection_status = SelectionStatus.COMPLETED
            closure_round.completed_at = _ts(payload["completed_at"])
        elif event.event_type == "LegalNoticeAcknowledged":
            closure_round.legal_notice_shown = True

        closure_round.version = event.version

    def get(self, round_id: str) -> ClosureRound | None:
        return self.rounds.get(round_id)

    def latest_for_product(self, product_key: str) -> ClosureRound | None:
        """Most recently processed round for a product"""
        rounds = [r for r in self.rounds.values() if r.product.key == product_key]
        if not rounds:
            return None
        return max(rounds, key=lambda r: (r.processed_at, r.deadline))

    def find_by_selected_offer(self, offer_id: str) -> ClosureRound | None:
        """Latest round whose current selection is ``offer_id``"""
        matches = [r for r in self.rounds.values() if r.selected_offer_id == offer_id]
        if not matches:
            return None
        return max(matches, key=lambda r: (r.processed_at, r.deadline))
