"""
Group Stage Generator

Creates groups for a tournament, assigns the seeded participants to them and
generates round-robin fixtures per group. Each generation call is a single
transaction: either every group/match is written or nothing is.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pingclub.errors import InvalidInputError, StateError
from pingclub.models.group import GroupStatus, TournamentGroup
from pingclub.models.match import Match, MatchStage, MatchStatus
from pingclub.models.participant import Participant
from pingclub.models.stage import StageType
from pingclub.models.tournament import TournamentStatus
from pingclub.repository import CompetitionRepository
from pingclub.services.round_robin import (
    Distribution,
    distribute,
    group_name,
    resolve_group_count,
    schedule_round_robin,
)
from pingclub.services.seeding import SeedingMethod, seed_participants
from pingclub.utils.guards import require_participants_locked, require_tournament_open
from pingclub.utils.locks import tournament_lock

logger = logging.getLogger(__name__)


@dataclass
class GroupOptions:
    number_of_groups: Optional[int] = None
    participants_per_group: Optional[int] = None
    participants_advancing: int = 2
    group_name_prefix: str = "Group"
    distribution: Distribution = Distribution.STRAIGHT
    seeding_method: SeedingMethod = SeedingMethod.LIST_ORDER
    rng_seed: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupOptions":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        return cls(**known)


@dataclass
class PlannedGroup:
    name: str
    display_name: str
    capacity: int
    participants_advancing: int
    members: List[Participant]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "participants_per_group": self.capacity,
            "participants_advancing": self.participants_advancing,
            "participant_ids": [p.id for p in self.members],
        }


class GroupStageGenerator:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo

    # ------------------------------------------------------------------
    # Group creation
    # ------------------------------------------------------------------

    def preview_groups(self, tournament_id: int, options: GroupOptions) -> List[PlannedGroup]:
        """Compute the group split without writing anything."""
        tournament = self.repo.get_tournament(tournament_id)
        require_tournament_open(tournament)
        participants = self.repo.find_participants(tournament_id)
        return self._plan(participants, options)

    def _plan(self, participants: List[Participant], options: GroupOptions) -> List[PlannedGroup]:
        seeded = seed_participants(participants, options.seeding_method, options.rng_seed)
        count = resolve_group_count(len(seeded), options.number_of_groups, options.participants_per_group)
        buckets = distribute(seeded, count, options.distribution)

        smallest = min(len(b) for b in buckets)
        if not 1 <= options.participants_advancing <= smallest:
            raise InvalidInputError(
                f"participants_advancing must be between 1 and the smallest group size ({smallest}), "
                f"got {options.participants_advancing}",
                code="INVALID_ADVANCING_COUNT",
            )

        capacity = options.participants_per_group or max(len(b) for b in buckets)
        prefix = (options.group_name_prefix or "Group").strip()
        planned = []
        for index, members in enumerate(buckets):
            name = group_name(index)
            planned.append(
                PlannedGroup(
                    name=name,
                    display_name=f"{prefix} {name}",
                    capacity=capacity,
                    participants_advancing=options.participants_advancing,
                    members=members,
                )
            )
        return planned

    def auto_generate_groups(self, tournament_id: int, options: GroupOptions) -> List[TournamentGroup]:
        """
        Create groups and assign every active participant to one of them.

        Raises:
            StateError: participants not locked, tournament closed, groups exist
            InvalidInputError: bad sizing options
        """
        with tournament_lock(tournament_id), self.repo.transaction():
            tournament = self.repo.lock_tournament_row(tournament_id)
            require_tournament_open(tournament)
            require_participants_locked(tournament)
            if self.repo.find_groups(tournament_id):
                raise StateError(
                    f"Tournament {tournament_id} already has groups",
                    code="GROUPS_EXIST",
                )

            planned = self._plan(self.repo.find_participants(tournament_id), options)
            stage = self.repo.get_or_create_stage(tournament_id, StageType.GROUP.value, "Group Stage", 1)

            groups: List[TournamentGroup] = []
            for plan in planned:
                group = self.repo.create_group(
                    TournamentGroup(
                        tournament_id=tournament_id,
                        stage_id=stage.id,
                        name=plan.name,
                        display_name=plan.display_name,
                        participants_per_group=plan.capacity,
                        participants_advancing=plan.participants_advancing,
                    )
                )
                for participant in plan.members:
                    self.repo.update_participant(participant, group_id=group.id)
                groups.append(group)

            if tournament.status == TournamentStatus.DRAFT.value:
                tournament.status = TournamentStatus.PENDING.value
                self.repo.session.add(tournament)

            logger.info(
                "Generated %d groups for tournament %d (%s distribution, %d participants)",
                len(groups),
                tournament_id,
                Distribution(options.distribution).value,
                sum(len(p.members) for p in planned),
            )

        for group in groups:
            self.repo.session.refresh(group)
        return groups

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    def generate_matches(self, tournament_id: int, group_id: int, matchups_per_pair: int = 1) -> List[Match]:
        """
        Round-robin fixtures for one group: every unordered pair of members
        meets matchups_per_pair times, rounds assigned by the circle method.
        """
        with tournament_lock(tournament_id), self.repo.transaction():
            tournament = self.repo.lock_tournament_row(tournament_id)
            require_tournament_open(tournament)
            require_participants_locked(tournament)
            group = self.repo.get_group(group_id, tournament_id)

            if self.repo.find_matches(tournament_id, group_id=group_id):
                raise StateError(f"Group {group.name} already has matches", code="MATCHES_EXIST")
            if group.status != GroupStatus.PENDING.value:
                raise StateError(f"Group {group.name} is {group.status}", code="GROUP_NOT_PENDING")

            members = self.repo.group_members(group_id)
            if len(members) < 2:
                raise StateError(
                    f"Group {group.name} has {len(members)} members; at least 2 are required",
                    code="GROUP_TOO_SMALL",
                )
            if len(members) > group.participants_per_group:
                raise StateError(
                    f"Group {group.name} has {len(members)} members, capacity is {group.participants_per_group}"
                )

            schedule = schedule_round_robin(len(members), matchups_per_pair)
            matches = self.repo.create_matches(
                [
                    Match(
                        tournament_id=tournament_id,
                        stage_id=group.stage_id,
                        stage=MatchStage.GROUP.value,
                        group_id=group_id,
                        round=fx.round,
                        match_number=fx.match_number,
                        side_a_participant_id=members[fx.idx_a].id,
                        side_b_participant_id=members[fx.idx_b].id,
                        status=MatchStatus.SCHEDULED.value,
                    )
                    for fx in schedule.fixtures
                ]
            )
            logger.info(
                "Generated %d matches over %d rounds for group %s (tournament %d, %d members, x%d)",
                len(matches),
                schedule.rounds,
                group.name,
                tournament_id,
                len(members),
                matchups_per_pair,
            )

        for match in matches:
            self.repo.session.refresh(match)
        return matches

    def generate_all_matches(self, tournament_id: int, matchups_per_pair: int = 1) -> List[Match]:
        """Fixtures for every group of the tournament in one transaction."""
        with tournament_lock(tournament_id), self.repo.transaction():
            groups = self.repo.find_groups(tournament_id)
            if not groups:
                raise StateError(f"Tournament {tournament_id} has no groups", code="NO_GROUPS")
            matches: List[Match] = []
            for group in groups:
                matches.extend(self.generate_matches(tournament_id, group.id, matchups_per_pair))
        return matches
