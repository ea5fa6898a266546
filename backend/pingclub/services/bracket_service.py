"""
Bracket Generator

Builds the whole single-elimination tree in one transaction:
- Round 1 holds real participants, or group qualifier placeholders
  ({group, rank}) for two-stage tournaments
- Rounds 2+ (and the third place match) hold placeholders fed by
  {match, winner|loser} of the preceding round
- Byes are round-1 match records with a single occupant, already
  COMPLETED with that occupant as winner
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pingclub.errors import InvalidInputError, StateError
from pingclub.models.group import GroupStatus, TournamentGroup
from pingclub.models.match import Match, MatchStage, MatchStatus
from pingclub.models.participant import GroupSource, MatchSource, Participant
from pingclub.models.stage import StageType
from pingclub.models.tournament import TournamentStatus
from pingclub.repository import CompetitionRepository
from pingclub.services.advancement_service import AdvancementResolver
from pingclub.services.bracket_layout import (
    BracketEntrant,
    BracketPlan,
    PlannedMatch,
    SeedOrder,
    plan_bracket,
    round_name,
)
from pingclub.services.seeding import SeedingMethod, seed_participants
from pingclub.utils.guards import require_participants_locked, require_tournament_open
from pingclub.utils.locks import tournament_lock

logger = logging.getLogger(__name__)


class BracketSourceType(str, Enum):
    SEED = "SEED"
    RANDOM = "RANDOM"
    CUSTOM = "CUSTOM"
    GROUP_RANK = "GROUP_RANK"


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def group_sort_key(group: TournamentGroup):
    """A..Z before AA.."""
    return (len(group.name), group.name)


@dataclass
class BracketOptions:
    source_type: BracketSourceType = BracketSourceType.SEED
    include_third_place_match: Optional[bool] = None  # None -> tournament default
    size: Optional[int] = None
    seed_order: SeedOrder = SeedOrder.STANDARD
    rng_seed: Optional[int] = None
    pairs: Optional[List[List[Optional[int]]]] = None  # CUSTOM: [[a, b], ...], None = bye
    top_n_per_group: Optional[int] = None  # GROUP_RANK

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BracketOptions":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return cls(**known)


@dataclass
class BracketResult:
    total_rounds: int
    total_matches: int
    matches: List[Match] = field(default_factory=list)


class BracketGenerator:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo
        self.resolver = AdvancementResolver(repo)

    # ------------------------------------------------------------------
    # Entrants
    # ------------------------------------------------------------------

    def _entrants(
        self, tournament_id: int, options: BracketOptions
    ) -> Tuple[List[BracketEntrant], Optional[List[Tuple[Optional[BracketEntrant], Optional[BracketEntrant]]]]]:
        try:
            source_type = BracketSourceType(options.source_type)
        except ValueError as e:
            raise InvalidInputError(f"Unknown bracket source type: {options.source_type}") from e

        if source_type == BracketSourceType.GROUP_RANK:
            return self._qualifier_entrants(tournament_id, options.top_n_per_group), None

        participants = self.repo.find_participants(tournament_id)

        if source_type == BracketSourceType.CUSTOM:
            return [], self._custom_pairs(participants, options.pairs)

        method = SeedingMethod.RANDOM if source_type == BracketSourceType.RANDOM else SeedingMethod.LIST_ORDER
        ordered = seed_participants(participants, method, options.rng_seed)
        return [BracketEntrant(label=p.display_name, participant_id=p.id) for p in ordered], None

    def _custom_pairs(
        self, participants: List[Participant], pairs: Optional[List[List[Optional[int]]]]
    ) -> List[Tuple[Optional[BracketEntrant], Optional[BracketEntrant]]]:
        if not pairs:
            raise InvalidInputError("CUSTOM brackets require 'pairs'", code="PAIRS_REQUIRED")
        by_id = {p.id: p for p in participants}
        seen = set()
        result = []
        for pair in pairs:
            if len(pair) != 2:
                raise InvalidInputError(f"Each pair must have exactly two entries, got {pair}")
            sides = []
            for pid in pair:
                if pid is None:
                    sides.append(None)
                    continue
                if pid not in by_id:
                    raise InvalidInputError(
                        f"Participant {pid} is not an active participant of this tournament",
                        code="UNKNOWN_PARTICIPANT",
                    )
                if pid in seen:
                    raise InvalidInputError(f"Participant {pid} appears in more than one slot", code="DUPLICATE_ENTRANT")
                seen.add(pid)
                sides.append(BracketEntrant(label=by_id[pid].display_name, participant_id=pid))
            result.append((sides[0], sides[1]))
        return result

    def _qualifier_entrants(self, tournament_id: int, top_n: Optional[int]) -> List[BracketEntrant]:
        """All rank-1 qualifiers by group name, then rank-2, ..."""
        groups = sorted(self.repo.find_groups(tournament_id), key=group_sort_key)
        if not groups:
            raise StateError("GROUP_RANK brackets need a generated group stage", code="NO_GROUPS")

        per_group: Dict[int, int] = {}
        for group in groups:
            n = top_n if top_n is not None else group.participants_advancing
            members = len(self.repo.group_members(group.id))
            if not 1 <= n <= members:
                raise InvalidInputError(
                    f"Cannot take {n} qualifiers from {group.display_name} ({members} members)",
                    code="INVALID_ADVANCING_COUNT",
                )
            per_group[group.id] = n

        entrants = []
        for rank in range(1, max(per_group.values()) + 1):
            for group in groups:
                if rank <= per_group[group.id]:
                    entrants.append(
                        BracketEntrant(
                            label=f"{ordinal(rank)} {group.display_name}",
                            group_id=group.id,
                            rank=rank,
                        )
                    )
        return entrants

    def _plan(self, tournament, options: BracketOptions) -> Tuple[BracketPlan, bool]:
        entrants, custom_pairs = self._entrants(tournament.id, options)
        third_place = options.include_third_place_match
        if third_place is None:
            third_place = tournament.has_third_place_match
        plan = plan_bracket(entrants, options.size, options.seed_order, bool(third_place), custom_pairs)
        return plan, bool(third_place)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def preview_bracket(self, tournament_id: int, options: BracketOptions) -> Dict[str, Any]:
        """Bracket layout without writing anything."""
        tournament = self.repo.get_tournament(tournament_id)
        require_tournament_open(tournament)
        plan, _ = self._plan(tournament, options)
        return plan.to_dict()

    def generate_bracket(self, tournament_id: int, options: BracketOptions) -> BracketResult:
        """
        Create every knockout match and placeholder.

        Raises:
            StateError: participants not locked, tournament closed, bracket exists
            InvalidInputError: bad options
        """
        with tournament_lock(tournament_id), self.repo.transaction():
            tournament = self.repo.lock_tournament_row(tournament_id)
            require_tournament_open(tournament)
            require_participants_locked(tournament)
            if self.repo.find_matches(tournament_id, stage=MatchStage.FINAL.value):
                raise StateError(
                    f"Tournament {tournament_id} already has a bracket",
                    code="BRACKET_EXISTS",
                )

            plan, third_place = self._plan(tournament, options)
            has_groups = bool(self.repo.find_groups(tournament_id))
            stage = self.repo.get_or_create_stage(
                tournament_id, StageType.KNOCKOUT.value, "Knockout", 2 if has_groups else 1
            )

            created = self._persist(tournament_id, stage.id, plan)

            # Byes with a real occupant pass it on right away
            for match in created:
                if match.is_bye:
                    self.resolver.resolve_match_outcome(match)

            for group in self.repo.find_groups(tournament_id):
                if group.status == GroupStatus.COMPLETED.value and self.repo.find_virtual_participants(
                    tournament_id, source_group_id=group.id, pending_only=True
                ):
                    self.resolver.resolve_group_qualifiers(tournament_id, group.id)

            if third_place and not any(m.is_third_place for m in created):
                logger.info("Third place match skipped for tournament %d: no semifinal losers", tournament_id)
            tournament.has_third_place_match = any(m.is_third_place for m in created)
            if tournament.status == TournamentStatus.DRAFT.value:
                tournament.status = TournamentStatus.PENDING.value
            self.repo.session.add(tournament)

            logger.info(
                "Generated bracket for tournament %d: size %d, %d rounds, %d matches (%d byes)",
                tournament_id,
                plan.size,
                plan.total_rounds,
                len(created),
                sum(1 for m in created if m.is_bye),
            )

        for match in created:
            self.repo.session.refresh(match)
        return BracketResult(total_rounds=plan.total_rounds, total_matches=len(created), matches=created)

    def _persist(self, tournament_id: int, stage_id: int, plan: BracketPlan) -> List[Match]:
        now = datetime.utcnow()
        by_key: Dict[Tuple[int, int], Match] = {}
        created: List[Match] = []

        def placeholder_for_entrant(entrant: Optional[BracketEntrant]) -> Optional[int]:
            if entrant is None:
                return None
            if entrant.participant_id is not None:
                return entrant.participant_id
            virtual = Participant(tournament_id=tournament_id, display_name=entrant.label)
            virtual.set_advancing_source(GroupSource(group_id=entrant.group_id, rank=entrant.rank))
            return self.repo.add_participant(virtual).id

        def placeholder_for_feed(planned: PlannedMatch, idx: int) -> int:
            ref = planned.feeds[idx]
            source = by_key[(ref.round, ref.match_number)]
            virtual = Participant(
                tournament_id=tournament_id,
                display_name=f"{ref.position.capitalize()} of {round_name(ref.round, plan.total_rounds)} "
                f"#{ref.match_number}",
            )
            virtual.set_advancing_source(MatchSource(match_id=source.id, position=ref.position))
            return self.repo.add_participant(virtual).id

        for round_num in range(1, plan.total_rounds + 1):
            batch: List[Match] = []
            for planned in plan.round_matches(round_num):
                if round_num == 1:
                    side_a = placeholder_for_entrant(planned.side_a)
                    side_b = placeholder_for_entrant(planned.side_b)
                else:
                    side_a = placeholder_for_feed(planned, 0)
                    side_b = placeholder_for_feed(planned, 1)

                match = Match(
                    tournament_id=tournament_id,
                    stage_id=stage_id,
                    stage=MatchStage.FINAL.value,
                    round=planned.round,
                    match_number=planned.match_number,
                    bracket_position=planned.bracket_position,
                    side_a_participant_id=side_a,
                    side_b_participant_id=side_b,
                    status=MatchStatus.SCHEDULED.value,
                    is_third_place=planned.is_third_place,
                )
                if planned.is_bye:
                    match.is_bye = True
                    match.status = MatchStatus.COMPLETED.value
                    match.winner_participant_id = side_a if side_a is not None else side_b
                    match.completed_at = now
                batch.append(match)

            for match in self.repo.create_matches(batch):
                if not match.is_third_place:
                    by_key[(match.round, match.match_number)] = match
                created.append(match)

        return created

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def get_bracket(self, tournament_id: int) -> Dict[str, Any]:
        self.repo.get_tournament(tournament_id)
        matches = self.repo.find_matches(tournament_id, stage=MatchStage.FINAL.value)
        if not matches:
            return {"tournament_id": tournament_id, "total_rounds": 0, "total_matches": 0, "rounds": []}

        total_rounds = max(m.round for m in matches)
        main = {(m.round, m.match_number): m for m in matches if not m.is_third_place}
        third = next((m for m in matches if m.is_third_place), None)
        names: Dict[int, Participant] = {}

        def side(pid: Optional[int]) -> Optional[Dict[str, Any]]:
            if pid is None:
                return None
            if pid not in names:
                names[pid] = self.repo.get_participant(pid)
            p = names[pid]
            return {"participant_id": p.id, "display_name": p.display_name, "is_virtual": p.is_virtual}

        rounds: Dict[int, List[Dict[str, Any]]] = {}
        for m in matches:
            next_match = None if m.is_third_place else main.get((m.round + 1, (m.match_number + 1) // 2))
            loser_next = third if third is not None and not m.is_third_place and m.round == total_rounds - 1 else None
            rounds.setdefault(m.round, []).append(
                {
                    "id": m.id,
                    "round": m.round,
                    "round_name": round_name(m.round, total_rounds, m.is_third_place),
                    "match_number": m.match_number,
                    "bracket_position": m.bracket_position,
                    "side_a": side(m.side_a_participant_id),
                    "side_b": side(m.side_b_participant_id),
                    "winner_participant_id": m.winner_participant_id,
                    "status": m.status,
                    "final_score": m.final_score,
                    "is_bye": m.is_bye,
                    "is_third_place": m.is_third_place,
                    "next_match_id": next_match.id if next_match else None,
                    "loser_next_match_id": loser_next.id if loser_next else None,
                }
            )

        return {
            "tournament_id": tournament_id,
            "total_rounds": total_rounds,
            "total_matches": len(matches),
            "rounds": [
                {"round": r, "name": round_name(r, total_rounds), "matches": rounds[r]} for r in sorted(rounds)
            ],
        }
