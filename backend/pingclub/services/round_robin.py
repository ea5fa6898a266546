"""
Round-robin scheduling and group distribution helpers.

Pure functions over positions/lists; nothing here touches the database.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from pingclub.errors import InvalidInputError

T = TypeVar("T")

MIN_GROUP_SIZE = 2
MAX_GROUP_SIZE = 20


class Distribution(str, Enum):
    STRAIGHT = "STRAIGHT"  # seed i -> group i % G
    SNAKE = "SNAKE"  # boustrophedon: A B C C B A A B C ...
    BLOCK = "BLOCK"  # contiguous seed blocks of balanced size


@dataclass
class Fixture:
    round: int
    match_number: int
    idx_a: int  # 0-based position in the seeded member list
    idx_b: int


@dataclass
class RoundRobinSchedule:
    fixtures: List[Fixture]
    rounds: int
    byes: Dict[int, List[int]] = field(default_factory=dict)  # round -> [idx]


def circle_rounds(n: int) -> Tuple[List[Tuple[int, int, int, int]], Dict[int, int]]:
    """
    Single round robin by the circle method.

    Returns (pairings, byes): pairings is a list of
    (round, sequence_in_round, idx_a, idx_b) with idx_a < idx_b; byes maps
    round -> idx sitting out (odd n only, exactly one per round).
    """
    n2 = n + 1 if n % 2 == 1 else n  # Add BYE for odd n
    half = n2 // 2
    rounds_count = n2 - 1
    bye_idx = n if n % 2 == 1 else -1

    pairings: List[Tuple[int, int, int, int]] = []
    byes: Dict[int, int] = {}
    positions = list(range(n2))

    for round_num in range(1, rounds_count + 1):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a == bye_idx or b == bye_idx:
                byes[round_num] = b if a == bye_idx else a
                continue
            seq += 1
            pairings.append((round_num, seq, min(a, b), max(a, b)))
        # Rotate: keep 0, move last to second, shift others
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]

    return pairings, byes


def schedule_round_robin(n: int, matchups_per_pair: int = 1) -> RoundRobinSchedule:
    """
    Full schedule for n members, each unordered pair meeting matchups_per_pair
    times. Cycle i repeats the circle schedule offset by i*R rounds with sides
    swapped on odd cycles.
    """
    if n < MIN_GROUP_SIZE:
        raise InvalidInputError(f"Round robin needs at least {MIN_GROUP_SIZE} members, got {n}")
    if matchups_per_pair < 1:
        raise InvalidInputError(f"matchups_per_pair must be >= 1, got {matchups_per_pair}")

    pairings, byes = circle_rounds(n)
    rounds_per_cycle = n - 1 if n % 2 == 0 else n

    fixtures: List[Fixture] = []
    all_byes: Dict[int, List[int]] = {}
    for cycle in range(matchups_per_pair):
        offset = cycle * rounds_per_cycle
        swap = cycle % 2 == 1
        for round_num, seq, a, b in pairings:
            if swap:
                a, b = b, a
            fixtures.append(Fixture(round=round_num + offset, match_number=seq, idx_a=a, idx_b=b))
        for round_num, idx in byes.items():
            all_byes[round_num + offset] = [idx]

    return RoundRobinSchedule(fixtures=fixtures, rounds=rounds_per_cycle * matchups_per_pair, byes=all_byes)


def group_name(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA, 27 -> AB ..."""
    name = ""
    index += 1
    while index > 0:
        index, rem = divmod(index - 1, 26)
        name = chr(ord("A") + rem) + name
    return name


def resolve_group_count(
    total: int,
    number_of_groups: Optional[int] = None,
    participants_per_group: Optional[int] = None,
) -> int:
    """Exactly one of number_of_groups / participants_per_group must be given."""
    if (number_of_groups is None) == (participants_per_group is None):
        raise InvalidInputError(
            "Exactly one of number_of_groups or participants_per_group must be provided",
            code="GROUP_SIZING_AMBIGUOUS",
        )
    if number_of_groups is not None:
        if number_of_groups < 1:
            raise InvalidInputError(f"number_of_groups must be >= 1, got {number_of_groups}")
        count = number_of_groups
    else:
        if not MIN_GROUP_SIZE <= participants_per_group <= MAX_GROUP_SIZE:
            raise InvalidInputError(
                f"participants_per_group must be between {MIN_GROUP_SIZE} and {MAX_GROUP_SIZE}, "
                f"got {participants_per_group}"
            )
        count = -(-total // participants_per_group)

    if total < count * MIN_GROUP_SIZE:
        raise InvalidInputError(
            f"{total} participants cannot fill {count} groups with at least {MIN_GROUP_SIZE} members each",
            code="GROUP_TOO_SMALL",
        )
    return count


def distribute(seeded: Sequence[T], group_count: int, distribution: Distribution = Distribution.STRAIGHT) -> List[List[T]]:
    """Split a seed-ordered list into group_count buckets."""
    try:
        distribution = Distribution(distribution)
    except ValueError as e:
        raise InvalidInputError(f"Unknown distribution: {distribution}") from e

    buckets: List[List[T]] = [[] for _ in range(group_count)]
    if distribution == Distribution.STRAIGHT:
        for i, item in enumerate(seeded):
            buckets[i % group_count].append(item)
    elif distribution == Distribution.SNAKE:
        for i, item in enumerate(seeded):
            row, pos = divmod(i, group_count)
            if row % 2 == 1:
                pos = group_count - 1 - pos
            buckets[pos].append(item)
    else:
        base, extra = divmod(len(seeded), group_count)
        start = 0
        for g in range(group_count):
            size = base + (1 if g < extra else 0)
            buckets[g] = list(seeded[start : start + size])
            start += size
    return buckets
