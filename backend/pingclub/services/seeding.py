"""
Seeding Engine: order participants before they are placed into groups or
bracket slots.

Input order is taken as registration order (callers pass the list the
repository returns). No hidden RNG state: RANDOM takes an explicit seed.
"""

import random
from enum import Enum
from typing import List, Optional, Sequence, TypeVar

from pingclub.errors import InvalidInputError

T = TypeVar("T")


class SeedingMethod(str, Enum):
    LIST_ORDER = "LIST_ORDER"
    RANDOM = "RANDOM"
    SEEDED_BY_RATING = "SEEDED_BY_RATING"


def seed_participants(
    participants: Sequence[T],
    method: SeedingMethod = SeedingMethod.LIST_ORDER,
    rng_seed: Optional[int] = None,
) -> List[T]:
    """
    Return a new list of participants in seeding order.

    - LIST_ORDER: input order, unchanged
    - RANDOM: uniform shuffle driven by random.Random(rng_seed)
    - SEEDED_BY_RATING: rating descending, ties keep input order

    Raises:
        InvalidInputError: fewer than 2 participants, unknown method, or a
            missing rating when rating seeding is requested
    """
    if len(participants) < 2:
        raise InvalidInputError(
            f"At least 2 participants are required for seeding, got {len(participants)}",
            code="NOT_ENOUGH_PARTICIPANTS",
        )

    try:
        method = SeedingMethod(method)
    except ValueError as e:
        raise InvalidInputError(f"Unknown seeding method: {method}") from e

    ordered = list(participants)

    if method == SeedingMethod.LIST_ORDER:
        return ordered

    if method == SeedingMethod.RANDOM:
        random.Random(rng_seed).shuffle(ordered)
        return ordered

    missing = [p for p in ordered if getattr(p, "rating", None) is None]
    if missing:
        names = ", ".join(str(getattr(p, "display_name", p)) for p in missing[:5])
        raise InvalidInputError(
            f"Rating seeding requires a rating on every participant (missing: {names})",
            code="RATING_MISSING",
        )
    # sorted() is stable, so equal ratings keep registration order
    return sorted(ordered, key=lambda p: -p.rating)
