"""
The stored event envelope

A commitment, an actor's cancellation record, an offer, a closure round
and an advancement reward are each one stream. Projections rebuild all
read state by folding these envelopes in stream-version order.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Event(BaseModel):
    """
    One recorded state change, frozen once created

    ``version`` is the stream's version after this event; the store rejects
    an append whose expected version is stale. ``command_id`` is shared by
    every event one command produced, which is what makes a retried command
    a no-op.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str
    stream_id: str = Field(..., description="commitment, actor-<id>, offer, round or reward id")
    stream_type: str = Field(..., description="commitment | actor | offer | closure_round | reward")
    event_type: str
    occurred_at: datetime
    command_id: str
    version: int = Field(..., ge=1)
    actor_id: str | None = Field(default=None, description="None for scheduler-driven changes")
    payload: dict[str, Any] = Field(default_factory=dict)


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: str,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> Event:
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        command_id=command_id,
        version=version,
        actor_id=actor_id,
        payload=payload or {},
    )


def group_by_stream(events: list[Event]) -> dict[str, tuple[int, list[Event]]]:
    """
    Split a command's events per stream, keyed to the version each stream
    must be at before they are appended

    A cancellation that also suspends yields one group for the commitment
    and one for the actor.
    """
    grouped: dict[str, tuple[int, list[Event]]] = {}
    for event in events:
        _, batch = grouped.setdefault(event.stream_id, (event.version - 1, []))
        batch.append(event)
    return grouped
