"""
Offer ranking for closure rounds

Lowest price wins. Equal prices go to the offer registered first, and equal
registration times fall back to the offer id, so any snapshot of a pool has
exactly one ranking. That is what makes re-processing a round safe.
"""

from typing import NamedTuple

from order_lifecycle.closure.models import BackupQueue, Offer


class Selection(NamedTuple):
    selected: Offer | None
    backups: BackupQueue
    not_selected: list[Offer]


def rank_offers(pool: list[Offer]) -> list[Offer]:
    """
    Total order over a pool: (price, created_at, offer_id) ascending

    Example:
        >>> [o.offer_id for o in rank_offers([b_1049, a_999, c_1079])]
        ['A', 'B', 'C']
    """
    return sorted(pool, key=lambda o: (o.price, o.created_at, o.offer_id))


def select_offers(pool: list[Offer], backup_limit: int) -> Selection:
    """
    Pick the winner and up to ``backup_limit`` runners-up

    Offers ranked below the backup queue are never considered again, even if
    every backup later fails.
    """
    ranked = rank_offers(pool)
    if not ranked:
        return Selection(selected=None, backups=BackupQueue(), not_selected=[])

    backups = ranked[1 : 1 + backup_limit]
    return Selection(
        selected=ranked[0],
        backups=BackupQueue(offer_ids=tuple(o.offer_id for o in backups)),
        not_selected=ranked[1 + backup_limit :],
    )
