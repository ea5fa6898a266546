"""
Single-elimination layout: pure planning, no persistence.

Places seeded entrants into a power-of-two bracket using the standard fold
so that, if seeds hold, seed 1 meets seed 2 only in the final. Every round
is laid out up front; later rounds only record which earlier matches feed
them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pingclub.errors import InvalidInputError


class SeedOrder(str, Enum):
    STANDARD = "STANDARD"
    REVERSE = "REVERSE"  # swap bracket halves


@dataclass
class BracketEntrant:
    """Lightweight struct for a first-round occupant (real or to-be-created virtual)."""
    label: str
    participant_id: Optional[int] = None
    group_id: Optional[int] = None
    rank: Optional[int] = None

    @property
    def is_qualifier(self) -> bool:
        return self.participant_id is None and self.group_id is not None


@dataclass
class FeedRef:
    round: int
    match_number: int
    position: str  # "winner" | "loser"


@dataclass
class PlannedMatch:
    round: int
    match_number: int
    bracket_position: int
    side_a: Optional[BracketEntrant] = None
    side_b: Optional[BracketEntrant] = None
    feeds: List[FeedRef] = field(default_factory=list)  # rounds 2+: [side_a source, side_b source]
    is_third_place: bool = False

    @property
    def is_bye(self) -> bool:
        return self.round == 1 and (self.side_a is None) != (self.side_b is None)


@dataclass
class BracketPlan:
    size: int
    total_rounds: int
    matches: List[PlannedMatch]

    @property
    def total_matches(self) -> int:
        return len(self.matches)

    def round_matches(self, round_num: int) -> List[PlannedMatch]:
        return [m for m in self.matches if m.round == round_num]

    def to_dict(self) -> Dict[str, Any]:
        def side(m: PlannedMatch, entrant: Optional[BracketEntrant], idx: int) -> Optional[str]:
            if entrant is not None:
                return entrant.label
            if m.feeds:
                ref = m.feeds[idx]
                return f"{ref.position.capitalize()} of R{ref.round} M{ref.match_number}"
            return None

        return {
            "size": self.size,
            "total_rounds": self.total_rounds,
            "total_matches": self.total_matches,
            "matches": [
                {
                    "round": m.round,
                    "round_name": round_name(m.round, self.total_rounds, m.is_third_place),
                    "match_number": m.match_number,
                    "side_a": side(m, m.side_a, 0),
                    "side_b": side(m, m.side_b, 1),
                    "side_a_participant_id": m.side_a.participant_id if m.side_a else None,
                    "side_b_participant_id": m.side_b.participant_id if m.side_b else None,
                    "is_bye": m.is_bye,
                    "is_third_place": m.is_third_place,
                }
                for m in self.matches
            ],
        }


def is_power_of_two(n: int) -> bool:
    return n >= 1 and n & (n - 1) == 0


def next_power_of_two(n: int) -> int:
    size = 1
    while size < n:
        size *= 2
    return size


def standard_seed_positions(n: int) -> List[int]:
    """Standard bracket-fold positions for *n* entries.

    Returns a flat list of seed numbers in bracket position order.
    Consecutive pairs indicate which seeds meet in round 1:
      4-entry  -> [1, 4, 2, 3]       -> (1v4), (2v3)
      8-entry  -> [1, 8, 4, 5, ...]   -> (1v8), (4v5), ...
      16-entry -> [1, 16, 8, 9, ...]   -> (1v16), (8v9), ...
    """
    if n == 2:
        return [1, 2]

    half = standard_seed_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def round_name(round_num: int, total_rounds: int, is_third_place: bool = False) -> str:
    if is_third_place:
        return "Third Place"
    remaining = total_rounds - round_num
    if remaining == 0:
        return "Final"
    if remaining == 1:
        return "Semi Final"
    if remaining == 2:
        return "Quarter Final"
    return f"Round of {2 ** (remaining + 1)}"


def resolve_bracket_size(entrant_count: int, size: Optional[int] = None) -> int:
    if entrant_count < 2:
        raise InvalidInputError(
            f"A bracket needs at least 2 entrants, got {entrant_count}",
            code="NOT_ENOUGH_PARTICIPANTS",
        )
    if size is None:
        return next_power_of_two(entrant_count)
    if not is_power_of_two(size) or size < 2:
        raise InvalidInputError(f"Bracket size must be a power of two, got {size}", code="INVALID_BRACKET_SIZE")
    if not entrant_count <= size < 2 * entrant_count:
        raise InvalidInputError(
            f"Bracket size {size} does not fit {entrant_count} entrants "
            f"(must be >= entrants and < twice the entrants)",
            code="INVALID_BRACKET_SIZE",
        )
    return size


def _first_round_pairs(
    entrants: Sequence[BracketEntrant], size: int, seed_order: SeedOrder
) -> List[Tuple[Optional[BracketEntrant], Optional[BracketEntrant]]]:
    positions = standard_seed_positions(size)
    if SeedOrder(seed_order) == SeedOrder.REVERSE:
        half = size // 2
        positions = positions[half:] + positions[:half]

    def at(seed: int) -> Optional[BracketEntrant]:
        return entrants[seed - 1] if seed <= len(entrants) else None

    return [(at(positions[i]), at(positions[i + 1])) for i in range(0, size, 2)]


def plan_bracket(
    entrants: Sequence[BracketEntrant],
    size: Optional[int] = None,
    seed_order: SeedOrder = SeedOrder.STANDARD,
    third_place: bool = False,
    custom_pairs: Optional[Sequence[Tuple[Optional[BracketEntrant], Optional[BracketEntrant]]]] = None,
) -> BracketPlan:
    """
    Lay out every round of a single-elimination bracket.

    entrants are in seed order (index 0 = seed 1). custom_pairs, when given,
    replaces seeded placement with explicit first-round pairs; their count
    must be a power of two.
    """
    try:
        seed_order = SeedOrder(seed_order)
    except ValueError as e:
        raise InvalidInputError(f"Unknown seed order: {seed_order}") from e

    if custom_pairs is not None:
        if not custom_pairs or not is_power_of_two(len(custom_pairs)):
            raise InvalidInputError(
                f"Custom pairs count must be a power of two, got {len(custom_pairs)}",
                code="INVALID_BRACKET_SIZE",
            )
        for a, b in custom_pairs:
            if a is None and b is None:
                raise InvalidInputError("A custom pair cannot be empty on both sides")
        pairs = list(custom_pairs)
        size = len(pairs) * 2
        if sum(1 for a, b in pairs for e in (a, b) if e is not None) < 2:
            raise InvalidInputError("A bracket needs at least 2 entrants", code="NOT_ENOUGH_PARTICIPANTS")
    else:
        size = resolve_bracket_size(len(entrants), size)
        pairs = _first_round_pairs(entrants, size, seed_order)

    total_rounds = size.bit_length() - 1
    matches: List[PlannedMatch] = []
    for number, (a, b) in enumerate(pairs, start=1):
        matches.append(PlannedMatch(round=1, match_number=number, bracket_position=number, side_a=a, side_b=b))

    for round_num in range(2, total_rounds + 1):
        count = size >> round_num
        for number in range(1, count + 1):
            matches.append(
                PlannedMatch(
                    round=round_num,
                    match_number=number,
                    bracket_position=number,
                    feeds=[
                        FeedRef(round_num - 1, 2 * number - 1, "winner"),
                        FeedRef(round_num - 1, 2 * number, "winner"),
                    ],
                )
            )

    if third_place and total_rounds >= 2:
        semis = total_rounds - 1
        semi_has_bye = semis == 1 and any(m.is_bye for m in matches if m.round == 1)
        if not semi_has_bye:
            matches.append(
                PlannedMatch(
                    round=total_rounds,
                    match_number=2,
                    bracket_position=2,
                    feeds=[FeedRef(semis, 1, "loser"), FeedRef(semis, 2, "loser")],
                    is_third_place=True,
                )
            )

    return BracketPlan(size=size, total_rounds=total_rounds, matches=matches)
