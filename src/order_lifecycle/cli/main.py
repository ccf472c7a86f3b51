"""
Order Lifecycle CLI

Command-line interface for the order lifecycle engine.
Provides commands for commitments, cancellation standing, advancement
rewards, offers and deadline closure.

Usage:
    order-lifecycle init --db orders.db
    order-lifecycle intention open --actor buyer-1 --product phones:iPhone --deadline 2025-06-01 --target-price 999
    order-lifecycle commitment can-cancel --id <commitment_id>
    order-lifecycle commitment advance --id <commitment_id> --actor buyer-1 --new-date 2025-04-01
    order-lifecycle offer add --seller seller-9 --product phones:iPhone --price 989
    order-lifecycle closure process --product phones:iPhone --deadline 2025-06-01
    order-lifecycle closure fail --offer <offer_id> --reason "out of stock"
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from order_lifecycle.closure.models import ClosureRound, OfferStatus
from order_lifecycle.commitments.models import RFQ
from order_lifecycle.engine import OrderLifecycle
from order_lifecycle.kernel.errors import NotFound, OrderLifecycleError
from order_lifecycle.kernel.logging import configure_logging

# Logs go to stderr; stdout carries command output
configure_logging(log_level=os.environ.get("ORDER_LIFECYCLE_LOG_LEVEL", "INFO"))

app = typer.Typer(
    name="order-lifecycle",
    help="Order lifecycle - cancellation, advancement and deadline closure",
    add_completion=False,
)

# Sub-apps
intention_app = typer.Typer(help="Consumer purchase intention commands")
rfq_app = typer.Typer(help="Business request-for-quote commands")
commitment_app = typer.Typer(help="Cancellation, advancement and completion")
actor_app = typer.Typer(help="Actor standing commands")
reward_app = typer.Typer(help="Advancement reward ledger commands")
offer_app = typer.Typer(help="Seller offer commands")
closure_app = typer.Typer(help="Deadline closure and failover commands")

app.add_typer(intention_app, name="intention")
app.add_typer(rfq_app, name="rfq")
app.add_typer(commitment_app, name="commitment")
app.add_typer(actor_app, name="actor")
app.add_typer(reward_app, name="reward")
app.add_typer(offer_app, name="offer")
app.add_typer(closure_app, name="closure")

# Global state
DEFAULT_DB = Path(os.environ.get("ORDER_LIFECYCLE_DB", ".order_lifecycle.db"))

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M"]


def get_engine(db_path: Optional[Path] = None) -> OrderLifecycle:
    """Get engine instance"""
    db = db_path or DEFAULT_DB
    if not db.exists():
        typer.echo(f"Error: Database not found: {db}", err=True)
        typer.echo(f"Run 'order-lifecycle init --db {db}' to initialize", err=True)
        raise typer.Exit(1)
    return OrderLifecycle(str(db))


def fail(error: OrderLifecycleError) -> None:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


def echo_json(model) -> None:
    typer.echo(json.dumps(model.model_dump(mode="json"), indent=2, default=str))


def echo_round(closure_round: ClosureRound) -> None:
    typer.echo(f"Round: {closure_round.round_id}")
    typer.echo(f"  Product: {closure_round.product}")
    typer.echo(f"  Status: {closure_round.selection_status.value}")
    typer.echo(f"  Selected: {closure_round.selected_offer_id or '-'}")
    typer.echo(f"  Backups: {', '.join(closure_round.backup_offer_ids) or '-'}")
    typer.echo(f"  Total buyers: {closure_round.total_buyers}")
    typer.echo(f"  Legal notice shown: {closure_round.legal_notice_shown}")
    for superseded in closure_round.superseded:
        typer.echo(f"  Superseded: {superseded.offer_id} ({superseded.reason})")


# Initialization command


@app.command()
def init(
    db: Annotated[
        Path,
        typer.Option(help="Database path"),
    ] = DEFAULT_DB,
) -> None:
    """Initialize a new order lifecycle database"""
    if db.exists():
        typer.echo(f"Error: Database already exists: {db}", err=True)
        raise typer.Exit(1)

    # Create database by initializing the engine
    OrderLifecycle(str(db))
    typer.echo(f"✓ Initialized database: {db}")


# Opening commands


@intention_app.command("open")
def intention_open(
    actor: Annotated[str, typer.Option("--actor", help="Consumer opening the intention")],
    product: Annotated[str, typer.Option("--product", help="Product key (category:name)")],
    deadline: Annotated[datetime, typer.Option("--deadline", formats=DATE_FORMATS, help="Deadline (UTC)")],
    target_price: Annotated[str, typer.Option("--target-price", help="Target price")],
    quantity: Annotated[int, typer.Option("--quantity", help="Quantity")] = 1,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Open a consumer purchase intention"""
    engine = get_engine(db)

    try:
        intention = engine.open_intention(
            actor, product, deadline=deadline, target_price=target_price, quantity=quantity
        )
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Opened intention: {intention.commitment_id}")
    typer.echo(f"  Product: {intention.product}")
    typer.echo(f"  Deadline: {intention.deadline.isoformat()}")
    typer.echo(f"  Cancel before: {intention.cancellation_deadline.isoformat()}")


@rfq_app.command("open")
def rfq_open(
    actor: Annotated[str, typer.Option("--actor", help="Business opening the RFQ")],
    product: Annotated[str, typer.Option("--product", help="Product key (category:name)")],
    deadline: Annotated[datetime, typer.Option("--deadline", formats=DATE_FORMATS, help="Deadline (UTC)")],
    target_price: Annotated[str, typer.Option("--target-price", help="Target price")],
    quantity: Annotated[int, typer.Option("--quantity", help="Quantity")] = 1,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Open a business request for quote"""
    engine = get_engine(db)

    try:
        rfq = engine.open_rfq(
            actor, product, deadline=deadline, target_price=target_price, quantity=quantity
        )
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Opened RFQ: {rfq.commitment_id}")
    typer.echo(f"  Product: {rfq.product}")
    typer.echo(f"  Deadline: {rfq.deadline.isoformat()}")
    typer.echo(f"  Cancel before: {rfq.cancellation_deadline.isoformat()}")


@rfq_app.command("respond")
def rfq_respond(
    rfq_id: Annotated[str, typer.Option("--id", help="RFQ ID")],
    supplier: Annotated[str, typer.Option("--supplier", help="Responding supplier")],
    price: Annotated[Optional[str], typer.Option("--price", help="Quoted price")] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Record a supplier response to an RFQ"""
    engine = get_engine(db)

    try:
        rfq = engine.record_rfq_response(rfq_id, supplier, quoted_price=price)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Recorded response from {supplier}")
    typer.echo(f"  Responses: {len(rfq.responses)}")


# Commitment commands


@commitment_app.command("can-cancel")
def commitment_can_cancel(
    commitment_id: Annotated[str, typer.Option("--id", help="Commitment ID")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Check whether a commitment can be cancelled now"""
    engine = get_engine(db)

    try:
        check = engine.can_cancel(commitment_id)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"Allowed: {check.allowed}")
    typer.echo(f"  Hours to deadline: {check.hours_to_deadline}")
    if check.reason:
        typer.echo(f"  Reason: {check.reason}")


@commitment_app.command("cancel")
def commitment_cancel(
    commitment_id: Annotated[str, typer.Option("--id", help="Commitment ID")],
    actor: Annotated[str, typer.Option("--actor", help="Owner of the commitment")],
    reason: Annotated[str, typer.Option("--reason", help="Cancellation reason")] = "",
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Cancel a commitment"""
    engine = get_engine(db)

    try:
        result = engine.cancel(actor, commitment_id, reason=reason)
    except OrderLifecycleError as e:
        fail(e)

    if not result.success:
        typer.echo(f"✗ Cancellation declined: {result.reason}")
        raise typer.Exit(2)

    typer.echo(f"✓ Cancelled commitment: {commitment_id}")
    typer.echo(f"  Account status: {result.account_status.value}")
    if result.compensation_required is not None:
        typer.echo(f"  Compensation: {result.compensation_required}")
    if result.penalty_applied:
        typer.echo(f"  Suspended until: {result.suspension_until.isoformat()}")


@commitment_app.command("can-advance")
def commitment_can_advance(
    commitment_id: Annotated[str, typer.Option("--id", help="Commitment ID")],
    new_date: Annotated[datetime, typer.Option("--new-date", formats=DATE_FORMATS, help="Proposed deadline (UTC)")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Check whether a deadline can be moved earlier, and for what bonus"""
    engine = get_engine(db)

    try:
        check = engine.can_advance(commitment_id, new_date)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"Allowed: {check.allowed}")
    typer.echo(f"  Days advanced: {check.days_advanced}")
    typer.echo(f"  Bonus: {check.max_bonus_percent}%")
    if check.cost_savings is not None:
        typer.echo(f"  Cost savings: {check.cost_savings}")
    if check.reason:
        typer.echo(f"  Reason: {check.reason}")


@commitment_app.command("advance")
def commitment_advance(
    commitment_id: Annotated[str, typer.Option("--id", help="Commitment ID")],
    actor: Annotated[str, typer.Option("--actor", help="Owner of the commitment")],
    new_date: Annotated[datetime, typer.Option("--new-date", formats=DATE_FORMATS, help="New deadline (UTC)")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Move a commitment's deadline earlier"""
    engine = get_engine(db)

    try:
        result = engine.advance(actor, commitment_id, new_date)
    except OrderLifecycleError as e:
        fail(e)

    if not result.success:
        typer.echo(f"✗ Advancement declined: {result.reason}")
        raise typer.Exit(2)

    typer.echo(f"✓ Advanced commitment: {commitment_id}")
    typer.echo(f"  Days advanced: {result.days_advanced}")
    typer.echo(f"  Bonus: {result.bonus_discount_percent}%")
    if result.cost_savings is not None:
        typer.echo(f"  Cost savings: {result.cost_savings}")
    if result.reward_id:
        typer.echo(f"  Reward: {result.reward_id} (counterpart {result.counterpart_id})")


@commitment_app.command("complete")
def commitment_complete(
    commitment_id: Annotated[str, typer.Option("--id", help="Commitment ID")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Mark a commitment fulfilled"""
    engine = get_engine(db)

    try:
        commitment = engine.complete_commitment(commitment_id)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Completed commitment: {commitment.commitment_id}")


@commitment_app.command("show")
def commitment_show(
    commitment_id: Annotated[str, typer.Option("--id", help="Commitment ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show commitment details"""
    engine = get_engine(db)

    try:
        commitment = engine.get_commitment(commitment_id)
    except NotFound:
        typer.echo(f"Error: Commitment not found: {commitment_id}", err=True)
        raise typer.Exit(1)

    if json_output:
        echo_json(commitment)
        return

    typer.echo(f"Commitment: {commitment.commitment_id} ({commitment.kind})")
    typer.echo(f"  Actor: {commitment.actor_id}")
    typer.echo(f"  Product: {commitment.product}")
    typer.echo(f"  Status: {commitment.status.value}")
    typer.echo(f"  Target price: {commitment.target_price}")
    typer.echo(f"  Deadline: {commitment.deadline.isoformat()}")
    if commitment.original_date:
        typer.echo(f"  Original date: {commitment.original_date.isoformat()}")
        typer.echo(f"  Days advanced: {commitment.days_advanced}")
    if isinstance(commitment, RFQ):
        typer.echo(f"  Responses: {len(commitment.responses)}")


# Actor commands


@actor_app.command("status")
def actor_status(
    actor: Annotated[str, typer.Option("--actor", help="Actor ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show an actor's cancellation counters and standing"""
    engine = get_engine(db)

    status = engine.get_cancellation_status(actor)

    if json_output:
        echo_json(status)
        return

    typer.echo(f"Actor: {status.actor_id}")
    typer.echo(f"  Account status: {status.account_status.value}")
    typer.echo(f"  Cancellations this month: {status.cancellations_this_month}")
    typer.echo(f"  RFQ cancellations this month: {status.rfq_cancellations_this_month}")
    typer.echo(f"  Can make new orders: {status.can_make_new_orders}")
    if status.suspension_until:
        typer.echo(f"  Suspended until: {status.suspension_until.isoformat()}")
        typer.echo(f"  Reason: {status.suspension_reason}")


@actor_app.command("ban")
def actor_ban(
    actor: Annotated[str, typer.Option("--actor", help="Actor ID")],
    reason: Annotated[str, typer.Option("--reason", help="Ban reason")],
    operator: Annotated[str, typer.Option("--operator", help="Operator issuing the ban")] = "system",
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Ban an actor from opening commitments"""
    engine = get_engine(db)

    status = engine.ban_actor(actor, reason, operator_id=operator)

    typer.echo(f"✓ Banned actor: {status.actor_id}")
    typer.echo(f"  Account status: {status.account_status.value}")


# Reward commands


@reward_app.command("list")
def reward_list(
    actor: Annotated[str, typer.Option("--actor", help="Actor ID")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """List an actor's advancement rewards"""
    engine = get_engine(db)

    rewards = engine.list_advancement_rewards(actor)

    if not rewards:
        typer.echo(f"No advancement rewards for {actor}")
        return

    typer.echo(f"Advancement rewards ({len(rewards)}):")
    for reward in rewards:
        typer.echo(
            f"  {reward.reward_id}: {reward.bonus_discount_percent}% "
            f"[{reward.status.value}] counterpart {reward.counterpart_id}"
        )


@reward_app.command("approve")
def reward_approve(
    reward_id: Annotated[str, typer.Option("--id", help="Reward ID")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Approve a pending reward"""
    engine = get_engine(db)

    try:
        reward = engine.approve_reward(reward_id)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Approved reward: {reward.reward_id}")


@reward_app.command("redeem")
def reward_redeem(
    reward_id: Annotated[str, typer.Option("--id", help="Reward ID")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Redeem an approved reward"""
    engine = get_engine(db)

    try:
        reward = engine.redeem_reward(reward_id)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Redeemed reward: {reward.reward_id}")


# Offer commands


@offer_app.command("add")
def offer_add(
    seller: Annotated[str, typer.Option("--seller", help="Seller ID")],
    product: Annotated[str, typer.Option("--product", help="Product key (category:name)")],
    price: Annotated[str, typer.Option("--price", help="Offer price")],
    seller_name: Annotated[Optional[str], typer.Option("--seller-name", help="Display name")] = None,
    metadata: Annotated[
        Optional[str],
        typer.Option("--metadata", help="Offer metadata (JSON)"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Register a seller offer"""
    engine = get_engine(db)

    metadata_dict = json.loads(metadata) if metadata else {}
    offer = engine.register_offer(
        seller, product, price, seller_name=seller_name, metadata=metadata_dict
    )

    typer.echo(f"✓ Registered offer: {offer.offer_id}")
    typer.echo(f"  Product: {offer.product}")
    typer.echo(f"  Price: {offer.price}")


@offer_app.command("list")
def offer_list(
    product: Annotated[str, typer.Option("--product", help="Product key (category:name)")],
    status: Annotated[
        Optional[str],
        typer.Option("--status", help="Filter by status (open, selected, backup, ...)"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """List offers for a product, best-ranked first"""
    engine = get_engine(db)

    offers = engine.list_offers(product, OfferStatus(status) if status else None)

    if not offers:
        typer.echo(f"No offers{f' with status {status}' if status else ''}")
        return

    typer.echo(f"Offers ({len(offers)}):")
    for offer in offers:
        typer.echo(f"  {offer.offer_id}: {offer.price} by {offer.seller_id} [{offer.status.value}]")


# Closure commands


@closure_app.command("process")
def closure_process(
    product: Annotated[str, typer.Option("--product", help="Product key (category:name)")],
    deadline: Annotated[
        datetime,
        typer.Option("--deadline", formats=DATE_FORMATS, help="Deadline being resolved"),
    ],
    offers: Annotated[
        Optional[str],
        typer.Option("--offers", help="Offer IDs in the pool (comma-separated; default: all open)"),
    ] = None,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Select the winning offer and backups at a deadline"""
    engine = get_engine(db)

    pool = [o.strip() for o in offers.split(",") if o.strip()] if offers else None
    try:
        closure_round = engine.process_closure(product, pool=pool, deadline=deadline)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo("✓ Closure processed")
    echo_round(closure_round)


@closure_app.command("fail")
def closure_fail(
    offer_id: Annotated[str, typer.Option("--offer", help="Currently selected offer ID")],
    reason: Annotated[str, typer.Option("--reason", help="Why the seller cannot fulfill")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Report a fulfillment failure and promote the next backup"""
    engine = get_engine(db)

    try:
        result = engine.handle_fulfillment_failure(offer_id, reason)
    except OrderLifecycleError as e:
        fail(e)

    if not result.success:
        typer.echo(f"✗ No backup offers left; round {result.round_id} needs manual review")
        raise typer.Exit(2)

    typer.echo(f"✓ Promoted offer: {result.next_best_offer.offer_id}")
    typer.echo(f"  Seller: {result.next_best_offer.seller_id}")
    typer.echo(f"  Price: {result.next_best_offer.price}")
    typer.echo(f"  Remaining backups: {result.remaining_backups}")


@closure_app.command("complete")
def closure_complete(
    round_id: Annotated[str, typer.Option("--id", help="Round ID")],
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Mark a round fulfilled by its selected seller"""
    engine = get_engine(db)

    try:
        closure_round = engine.complete_round(round_id)
    except OrderLifecycleError as e:
        fail(e)

    typer.echo(f"✓ Completed round: {closure_round.round_id}")


@closure_app.command("show")
def closure_show(
    product: Annotated[str, typer.Option("--product", help="Product key (category:name)")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", help="Database path"),
    ] = None,
) -> None:
    """Show the latest closure round for a product"""
    engine = get_engine(db)

    try:
        closure_round = engine.get_fulfillment_status(product)
    except NotFound:
        typer.echo(f"Error: No closure round for product: {product}", err=True)
        raise typer.Exit(1)

    if json_output:
        echo_json(closure_round)
    else:
        echo_round(closure_round)


def main() -> None:
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
