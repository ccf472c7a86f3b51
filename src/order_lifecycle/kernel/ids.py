"""
Identifiers for commitments, offers, rounds, rewards and events

Fresh ids put the creation millisecond in front of random bits, so ids
minted later sort later (offer registration order doubles as the price
tie-break). Closure rounds get name-based ids instead: processing the same
product and deadline twice lands on the same stream.
"""

import os
import time
import uuid

# Namespace for name-based ids derived from business keys
ORDER_LIFECYCLE_NAMESPACE = uuid.UUID("6f1c2b1e-8a4d-5c3e-9b2f-0d7e4a6c1f38")


def generate_id() -> str:
    """Time-ordered random id in canonical UUID form (version 7 layout)"""
    millis = time.time_ns() // 1_000_000
    raw = bytearray(millis.to_bytes(6, "big") + os.urandom(10))
    raw[6] = 0x70 | (raw[6] & 0x0F)
    raw[8] = 0x80 | (raw[8] & 0x3F)
    return str(uuid.UUID(bytes=bytes(raw)))


def deterministic_id(*parts: str) -> str:
    """
    Stable id for a business key

    >>> deterministic_id("closure-round", "phones:iPhone 15 Pro", "2025-06-01T00:00:00+00:00")
    ... # same string on every call and every machine
    """
    return str(uuid.uuid5(ORDER_LIFECYCLE_NAMESPACE, "|".join(parts)))
