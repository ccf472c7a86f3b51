#!/usr/bin/env python3
"""
Deadline Walkthrough - Cancellation, Advancement and Failover

Follows one product from the first purchase intention to a fulfilled
closure round, on a frozen clock so every number is reproducible.

Scenario:
- Four buyers pledge to buy a phone by June 1st
- One buyer cancels four times in a month and is suspended for 30 days
- Another buyer moves their deadline two months earlier for a 2% bonus
- Five sellers compete at closure; the cheapest is selected, three wait
- The winner runs out of stock, then so does the next one
- The third-cheapest seller delivers

Run:
    python examples/deadline_walkthrough.py
"""

import tempfile
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from order_lifecycle import OrderLifecycle
from order_lifecycle.commitments.models import ProductKey
from order_lifecycle.kernel.audit import InMemoryAuditSink
from order_lifecycle.kernel.errors import AccountSuspended
from order_lifecycle.kernel.time import TestTimeProvider

PHONE = ProductKey(category="phones", product_name="iPhone 15 Pro")


def print_section(title: str) -> None:
    """Print section header"""
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def main() -> None:
    print_section("Order Lifecycle - Deadline Walkthrough")

    db_path = Path(tempfile.mkdtemp()) / "walkthrough.db"
    clock = TestTimeProvider(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))
    audit = InMemoryAuditSink()
    engine = OrderLifecycle(db_path, time_provider=clock, audit_sink=audit)

    print(f"Database: {db_path}")
    print(f"Clock: {clock.now().isoformat()}")

    # ------------------------------------------------------------------
    print_section("1. Buyers pledge")
    intentions = {
        buyer: engine.open_intention(buyer, PHONE, date(2025, 6, 1), "999")
        for buyer in ("alice", "bob", "carol", "dave")
    }
    for buyer, intention in intentions.items():
        print(f"  {buyer}: {intention.commitment_id} (cancel before "
              f"{intention.cancellation_deadline:%Y-%m-%d %H:%M})")

    # ------------------------------------------------------------------
    print_section("2. A buyer who keeps changing their mind")
    deadline = clock.now() + timedelta(days=45)
    for attempt in range(1, 5):
        pledge = engine.open_intention("mallory", PHONE, deadline, "999")
        result = engine.cancel("mallory", pledge.commitment_id, reason="changed my mind")
        print(f"  Cancellation {attempt}: penalty={result.penalty_applied} "
              f"status={result.account_status.value}")

    status = engine.get_cancellation_status("mallory")
    print(f"\n  {status.suspension_reason}")
    print(f"  Suspended until {status.suspension_until:%Y-%m-%d}")
    try:
        engine.open_intention("mallory", PHONE, deadline, "999")
    except AccountSuspended as e:
        print(f"  ✗ {e}")

    # ------------------------------------------------------------------
    print_section("3. Sellers register offers")
    offers = {}
    for name, price in (("A", "999"), ("B", "1049"), ("C", "1079"), ("D", "1099"), ("E", "1129")):
        offers[name] = engine.register_offer(f"seller-{name}", PHONE, price, seller_name=f"Seller {name}")
        clock.advance_seconds(1)
        print(f"  Seller {name}: {price}")

    # ------------------------------------------------------------------
    print_section("4. Alice moves her deadline two months earlier")
    check = engine.can_advance(intentions["alice"].commitment_id, date(2025, 4, 1))
    print(f"  Quote: {check.days_advanced} days earlier for {check.max_bonus_percent}%")
    result = engine.advance("alice", intentions["alice"].commitment_id, date(2025, 4, 1))
    reward = engine.get_reward(result.reward_id)
    print(f"  ✓ Bonus {reward.bonus_discount_percent}% for alice, "
          f"{reward.counterpart_incentive_percent}% for {reward.counterpart_id}")

    # ------------------------------------------------------------------
    print_section("5. Closure at the deadline")
    closure_round = engine.process_closure(PHONE, deadline=date(2025, 6, 1))
    print(f"  Buyers waiting: {closure_round.total_buyers}")
    print(f"  Selected: {engine.get_offer(closure_round.selected_offer_id).seller_id}")
    print("  Backups: " + ", ".join(
        engine.get_offer(offer_id).seller_id for offer_id in closure_round.backup_offer_ids
    ))

    # ------------------------------------------------------------------
    print_section("6. Sellers fail to deliver")
    for name in ("A", "B"):
        outcome = engine.handle_fulfillment_failure(offers[name].offer_id, "out of stock")
        print(f"  Seller {name} failed → {outcome.next_best_offer.seller_id} at "
              f"{outcome.next_best_offer.price} ({outcome.remaining_backups} backups left)")

    engine.acknowledge_legal_notice(closure_round.round_id, actor_id="notifier")
    completed = engine.complete_round(closure_round.round_id, actor_id="ops")
    print(f"\n  ✓ Round {completed.selection_status.value}: "
          f"{engine.get_offer(completed.selected_offer_id).seller_id} delivered")

    # ------------------------------------------------------------------
    print_section("7. Audit trail")
    for record in audit.records:
        print(f"  {record.occurred_at:%Y-%m-%d %H:%M:%S}  {record.record_type.value:<22} {record.subject_id}")


if __name__ == "__main__":
    main()
