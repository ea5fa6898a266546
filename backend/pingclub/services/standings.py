"""
Standings Calculator

Per-group ranking from recorded match results:
- Aggregate wins/losses/draws/byes, games and points per member
- Primary key: match points from the stage rule
- Ties: apply the rule's tie-break chain; whenever a rule splits a tied
  cluster, each smaller cluster restarts from the first rule restricted to
  its own members (head-to-head is always computed among the current tie)
- Exhausted chain: seed ascending (nulls last), then participant id
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pingclub.errors import InvalidInputError
from pingclub.models.match import Match, MatchStatus
from pingclub.models.participant import Participant
from pingclub.models.stage import DEFAULT_TIE_BREAK_ORDER, H2hMode, StageRule, TieBreak
from pingclub.repository import CompetitionRepository

UNFINISHED_STATUSES = (MatchStatus.DRAFT.value, MatchStatus.SCHEDULED.value, MatchStatus.IN_PROGRESS.value)

SEED_ORDER_RULE = "SEED_ORDER"

_RULE_LABELS = {
    TieBreak.WINS_VS_TIED.value: "head-to-head",
    TieBreak.GAME_SET_DIFFERENCE.value: "game difference",
    TieBreak.POINTS_DIFFERENCE.value: "points difference",
    SEED_ORDER_RULE: "seed order",
}


@dataclass
class StandingsRule:
    win_points: int = 1
    loss_points: int = 0
    draw_points: int = 0
    bye_points: int = 1
    count_walkover_as_played: bool = True
    tie_break_order: List[str] = field(default_factory=lambda: list(DEFAULT_TIE_BREAK_ORDER))
    h2h_mode: str = H2hMode.WINS_ONLY.value

    def __post_init__(self):
        self.tie_break_order = validate_tie_break_order(self.tie_break_order)
        try:
            self.h2h_mode = H2hMode(self.h2h_mode).value
        except ValueError as e:
            raise InvalidInputError(f"Unknown head-to-head mode: {self.h2h_mode}") from e

    @classmethod
    def from_stage_rule(cls, rule: Optional[StageRule]) -> "StandingsRule":
        if rule is None:
            return cls()
        return cls(
            win_points=rule.win_points,
            loss_points=rule.loss_points,
            draw_points=rule.draw_points,
            bye_points=rule.bye_points,
            count_walkover_as_played=rule.count_walkover_as_played,
            tie_break_order=list(rule.tie_break_order or []),
            h2h_mode=rule.h2h_mode,
        )


def validate_tie_break_order(order: Sequence[str]) -> List[str]:
    valid = {t.value for t in TieBreak}
    result = []
    for name in order:
        value = name.value if isinstance(name, TieBreak) else str(name)
        if value not in valid:
            raise InvalidInputError(
                f"Unknown tie-break rule: {value}. Valid: {sorted(valid)}",
                code="UNKNOWN_TIE_BREAK",
            )
        if value in result:
            raise InvalidInputError(f"Tie-break rule listed twice: {value}", code="UNKNOWN_TIE_BREAK")
        result.append(value)
    return result


@dataclass
class StandingEntry:
    participant_id: int
    display_name: str
    seed: Optional[int]
    played: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    byes: int = 0
    games_won: int = 0
    games_lost: int = 0
    points_for: int = 0
    points_against: int = 0
    match_points: int = 0
    rank: int = 0
    is_advancing: bool = False
    tie_break_rule: Optional[str] = None
    tie_break_description: Optional[str] = None

    @property
    def game_difference(self) -> int:
        return self.games_won - self.games_lost

    @property
    def points_difference(self) -> int:
        return self.points_for - self.points_against

    def to_dict(self) -> Dict[str, Any]:
        return {
            "participant_id": self.participant_id,
            "display_name": self.display_name,
            "seed": self.seed,
            "rank": self.rank,
            "played": self.played,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "byes": self.byes,
            "games_won": self.games_won,
            "games_lost": self.games_lost,
            "game_difference": self.game_difference,
            "points_for": self.points_for,
            "points_against": self.points_against,
            "points_difference": self.points_difference,
            "match_points": self.match_points,
            "is_advancing": self.is_advancing,
            "tie_break_rule": self.tie_break_rule,
            "tie_break_description": self.tie_break_description,
        }


@dataclass
class _Outcome:
    """One counted match reduced to what standings need."""

    side_a: int
    side_b: int
    winner: Optional[int]  # None = draw
    games_a: int
    games_b: int
    points_a: int
    points_b: int


def _games(match: Match) -> Tuple[int, int, int, int]:
    games_a = games_b = points_a = points_b = 0
    for game in match.game_scores or []:
        a = int(game.get("side_a", 0))
        b = int(game.get("side_b", 0))
        points_a += a
        points_b += b
        if a > b:
            games_a += 1
        elif b > a:
            games_b += 1
    return games_a, games_b, points_a, points_b


def _counted_outcomes(member_ids: set, matches: Sequence[Match], rule: StandingsRule) -> List[_Outcome]:
    counted = [MatchStatus.COMPLETED.value]
    if rule.count_walkover_as_played:
        counted.append(MatchStatus.WALKOVER.value)

    outcomes = []
    for m in matches:
        if m.status not in counted:
            continue
        if m.side_a_participant_id not in member_ids or m.side_b_participant_id not in member_ids:
            continue
        games_a, games_b, points_a, points_b = _games(m)
        outcomes.append(
            _Outcome(
                side_a=m.side_a_participant_id,
                side_b=m.side_b_participant_id,
                winner=m.winner_participant_id,
                games_a=games_a,
                games_b=games_b,
                points_a=points_a,
                points_b=points_b,
            )
        )
    return outcomes


def _bye_counts(member_ids: set, matches: Sequence[Match]) -> Dict[int, int]:
    """A member absent from a round whose matches are all finished had a bye."""
    by_round: Dict[int, List[Match]] = {}
    for m in matches:
        by_round.setdefault(m.round, []).append(m)

    byes = {pid: 0 for pid in member_ids}
    for round_matches in by_round.values():
        if any(m.status in UNFINISHED_STATUSES for m in round_matches):
            continue
        present = set()
        for m in round_matches:
            present.update(m.side_ids())
        for pid in member_ids - present:
            byes[pid] += 1
    return byes


def _aggregate(entries: Dict[int, StandingEntry], outcomes: Sequence[_Outcome], rule: StandingsRule) -> None:
    for o in outcomes:
        a, b = entries[o.side_a], entries[o.side_b]
        a.played += 1
        b.played += 1
        a.games_won += o.games_a
        a.games_lost += o.games_b
        b.games_won += o.games_b
        b.games_lost += o.games_a
        a.points_for += o.points_a
        a.points_against += o.points_b
        b.points_for += o.points_b
        b.points_against += o.points_a
        if o.winner == o.side_a:
            a.wins += 1
            b.losses += 1
        elif o.winner == o.side_b:
            b.wins += 1
            a.losses += 1
        else:
            a.draws += 1
            b.draws += 1

    for e in entries.values():
        e.match_points = (
            e.wins * rule.win_points
            + e.losses * rule.loss_points
            + e.draws * rule.draw_points
            + e.byes * rule.bye_points
        )


def _head_to_head_key(
    cluster: Sequence[StandingEntry], outcomes: Sequence[_Outcome], rule: StandingsRule
) -> Callable[[StandingEntry], Any]:
    ids = {e.participant_id for e in cluster}
    among = [o for o in outcomes if o.side_a in ids and o.side_b in ids]

    if rule.h2h_mode == H2hMode.WINS_ONLY.value:
        wins = {pid: 0 for pid in ids}
        for o in among:
            if o.winner in wins:
                wins[o.winner] += 1
        return lambda e: wins[e.participant_id]

    mini = {
        e.participant_id: StandingEntry(participant_id=e.participant_id, display_name=e.display_name, seed=e.seed)
        for e in cluster
    }
    _aggregate(mini, among, rule)
    return lambda e: (
        mini[e.participant_id].match_points,
        mini[e.participant_id].game_difference,
        mini[e.participant_id].points_difference,
    )


def _rule_key(
    name: str, cluster: Sequence[StandingEntry], outcomes: Sequence[_Outcome], rule: StandingsRule
) -> Callable[[StandingEntry], Any]:
    if name == TieBreak.WINS_VS_TIED.value:
        return _head_to_head_key(cluster, outcomes, rule)
    if name == TieBreak.GAME_SET_DIFFERENCE.value:
        return lambda e: e.game_difference
    return lambda e: e.points_difference


def _seed_key(e: StandingEntry):
    return (e.seed is None, e.seed if e.seed is not None else 0, e.participant_id)


def _split(cluster: List[StandingEntry], key: Callable[[StandingEntry], Any]) -> List[List[StandingEntry]]:
    """Sort descending by key (seed order within equal keys) and cut into equal-key runs."""
    ordered = sorted(sorted(cluster, key=_seed_key), key=key, reverse=True)
    runs: List[List[StandingEntry]] = []
    for e in ordered:
        if runs and key(runs[-1][0]) == key(e):
            runs[-1].append(e)
        else:
            runs.append([e])
    return runs


def _break_tie(
    cluster: List[StandingEntry], outcomes: Sequence[_Outcome], rule: StandingsRule
) -> List[StandingEntry]:
    if len(cluster) == 1:
        return cluster

    for name in rule.tie_break_order:
        runs = _split(cluster, _rule_key(name, cluster, outcomes, rule))
        if len(runs) == 1:
            continue
        description = f"Separated by {_RULE_LABELS[name]} among {len(cluster)} tied participants"
        for e in cluster:
            e.tie_break_rule = name
            e.tie_break_description = description
        result: List[StandingEntry] = []
        for run in runs:
            result.extend(_break_tie(run, outcomes, rule))
        return result

    for e in cluster:
        e.tie_break_rule = SEED_ORDER_RULE
        e.tie_break_description = f"Tied on every rule; {len(cluster)} participants ordered by seed"
    return sorted(cluster, key=_seed_key)


def compute_standings(
    members: Sequence[Participant],
    matches: Sequence[Match],
    rule: Optional[StandingsRule] = None,
    participants_advancing: int = 0,
) -> List[StandingEntry]:
    """
    Ranked standings for a group.

    Only matches between two members count; COMPLETED always, WALKOVER when
    the rule says so. Recomputing from the same inputs yields the same list.
    """
    rule = rule or StandingsRule()
    member_ids = {p.id for p in members}
    entries = {p.id: StandingEntry(participant_id=p.id, display_name=p.display_name, seed=p.seed) for p in members}

    for pid, count in _bye_counts(member_ids, matches).items():
        entries[pid].byes = count

    outcomes = _counted_outcomes(member_ids, matches, rule)
    _aggregate(entries, outcomes, rule)

    ranked: List[StandingEntry] = []
    for cluster in _split(list(entries.values()), lambda e: e.match_points):
        ranked.extend(_break_tie(cluster, outcomes, rule))

    for position, e in enumerate(ranked, start=1):
        e.rank = position
        e.is_advancing = position <= participants_advancing
    return ranked


@dataclass
class GroupStandings:
    group_id: int
    group_name: str
    status: str
    participants_advancing: int
    rule: StandingsRule
    entries: List[StandingEntry]

    def participant_at_rank(self, rank: int) -> Optional[int]:
        for e in self.entries:
            if e.rank == rank:
                return e.participant_id
        return None

    def rank_of(self, participant_id: int) -> Optional[int]:
        for e in self.entries:
            if e.participant_id == participant_id:
                return e.rank
        return None


class StandingsService:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo

    def get_standings(self, tournament_id: int, group_id: int) -> GroupStandings:
        group = self.repo.get_group(group_id, tournament_id)
        rule = StandingsRule.from_stage_rule(self.repo.get_stage_rule(group.stage_id))
        entries = compute_standings(
            self.repo.group_members(group_id),
            self.repo.find_matches(tournament_id, group_id=group_id),
            rule,
            group.participants_advancing,
        )
        return GroupStandings(
            group_id=group.id,
            group_name=group.name,
            status=group.status,
            participants_advancing=group.participants_advancing,
            rule=rule,
            entries=entries,
        )
