"""
Advancement: substitute virtual placeholders with the real participants who
earned the slot, once the source match or group result is known.

The only mutation path is rewriting match sides that reference the
placeholder; matches are never re-created and placeholders are never
deleted (they stay as RESOLVED with a pointer to the real participant).
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pingclub.errors import AlreadyResolvedError, InvalidInputError, StateError
from pingclub.models.group import GroupStatus
from pingclub.models.match import Match
from pingclub.models.participant import Participant, ResolutionStatus
from pingclub.repository import CompetitionRepository
from pingclub.services.standings import StandingsService
from pingclub.utils.locks import tournament_lock

logger = logging.getLogger(__name__)

POSITION_WINNER = "winner"
POSITION_LOSER = "loser"
POSITIONS = (POSITION_WINNER, POSITION_LOSER)


class AdvancementResolver:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo

    # ------------------------------------------------------------------
    # Core substitution
    # ------------------------------------------------------------------

    def replace(self, virtual_participant_id: int, real_participant_id: int) -> List[int]:
        """
        Resolve one placeholder: every match side (and recorded winner)
        referencing it is rewritten to the real participant.

        Returns:
            Ids of every match updated, including matches updated by bye
            cascades triggered by this resolution

        Raises:
            InvalidInputError: not a placeholder / candidate is virtual /
                different tournament / substitution would create self-play
            AlreadyResolvedError: placeholder was resolved before
        """
        virtual = self.repo.get_participant(virtual_participant_id)
        if not virtual.is_virtual:
            raise InvalidInputError(
                f"Participant {virtual_participant_id} is not a virtual placeholder",
                code="NOT_VIRTUAL",
            )

        with tournament_lock(virtual.tournament_id), self.repo.transaction():
            self.repo.lock_tournament_row(virtual.tournament_id)
            self.repo.session.refresh(virtual)
            real = self._require_real(real_participant_id, virtual.tournament_id)

            if virtual.is_resolved:
                raise AlreadyResolvedError(
                    f"Placeholder {virtual.display_name} was already resolved to participant "
                    f"{virtual.resolved_participant_id}",
                    details={
                        "virtual_participant_id": virtual.id,
                        "resolved_participant_id": virtual.resolved_participant_id,
                    },
                )

            matches = self.repo.find_matches_by_side(virtual.id)
            for match in matches:
                other = [pid for pid in match.side_ids() if pid != virtual.id]
                if real.id in other:
                    raise InvalidInputError(
                        f"Resolving {virtual.display_name} to {real.display_name} would make them play "
                        f"themselves in match {match.id}",
                        code="SELF_PLAY",
                    )

            updated: List[int] = []
            for match in matches:
                self.repo.substitute_participant(match, virtual.id, real.id)
                updated.append(match.id)

            self.repo.update_participant(
                virtual,
                resolution_status=ResolutionStatus.RESOLVED.value,
                resolved_participant_id=real.id,
                resolved_at=datetime.utcnow(),
            )
            logger.info(
                "Resolved placeholder %d (%s) to participant %d (%s); %d matches updated",
                virtual.id,
                virtual.display_name,
                real.id,
                real.display_name,
                len(updated),
            )

            # A bye whose sole occupant just became real passes it straight on
            for match in matches:
                if match.is_bye and match.winner_participant_id == real.id:
                    for match_id in self.resolve_match_outcome(match):
                        if match_id not in updated:
                            updated.append(match_id)

        return updated

    def _require_real(self, participant_id: int, tournament_id: int) -> Participant:
        real = self.repo.get_participant(participant_id)
        if real.is_virtual:
            raise InvalidInputError(
                f"Participant {participant_id} is itself a virtual placeholder",
                code="CANDIDATE_IS_VIRTUAL",
            )
        if real.tournament_id != tournament_id:
            raise InvalidInputError(
                f"Participant {participant_id} does not belong to tournament {tournament_id}",
                code="WRONG_TOURNAMENT",
            )
        return real

    # ------------------------------------------------------------------
    # Source-driven resolution
    # ------------------------------------------------------------------

    def resolve_match_outcome(self, match: Match) -> List[int]:
        """
        Resolve pending placeholders fed by a finished match (winner and
        loser). Sides that are still virtual are left for a later cascade.
        """
        updated: List[int] = []
        outcomes = {POSITION_WINNER: match.winner_participant_id, POSITION_LOSER: match.loser_participant_id()}
        for position, participant_id in outcomes.items():
            if participant_id is None:
                continue
            if self.repo.get_participant(participant_id).is_virtual:
                continue
            pending = self.repo.find_virtual_participants(
                match.tournament_id,
                source_match_id=match.id,
                source_position=position,
                pending_only=True,
            )
            for virtual in pending:
                updated.extend(mid for mid in self.replace(virtual.id, participant_id) if mid not in updated)
        return updated

    def advance(
        self, tournament_id: int, source_match_id: int, position: str, real_participant_id: int
    ) -> List[int]:
        """
        Manual advancement: resolve the placeholders sourced from
        (source_match_id, position) with real_participant_id. With no
        match-sourced placeholder, fall back to group placeholders matching
        the participant's group and current rank.
        """
        if position not in POSITIONS:
            raise InvalidInputError(f"position must be one of {POSITIONS}, got {position!r}")

        with tournament_lock(tournament_id), self.repo.transaction():
            self.repo.lock_tournament_row(tournament_id)
            source = self.repo.get_match(source_match_id, tournament_id)
            real = self._require_real(real_participant_id, tournament_id)

            candidates = self.repo.find_virtual_participants(
                tournament_id, source_match_id=source.id, source_position=position
            )
            if candidates:
                self._check_match_position(source, position, real.id)
            else:
                candidates = self._group_candidates(tournament_id, real)

            if not candidates:
                raise InvalidInputError(
                    f"No placeholder is sourced from the {position} of match {source_match_id} "
                    f"or from participant {real.id}'s group rank",
                    code="NO_MATCHING_SOURCE",
                )

            updated: List[int] = []
            for virtual in candidates:
                updated.extend(mid for mid in self.replace(virtual.id, real.id) if mid not in updated)
        return updated

    def _check_match_position(self, source: Match, position: str, participant_id: int) -> None:
        if participant_id not in source.side_ids():
            raise InvalidInputError(
                f"Participant {participant_id} did not play match {source.id}",
                code="NOT_A_SIDE",
            )
        if source.winner_participant_id is None:
            return
        expected = source.winner_participant_id if position == POSITION_WINNER else source.loser_participant_id()
        if expected != participant_id:
            raise InvalidInputError(
                f"Participant {participant_id} is not the recorded {position} of match {source.id}",
                code="RESULT_MISMATCH",
            )

    def _group_candidates(self, tournament_id: int, real: Participant) -> List[Participant]:
        if real.group_id is None:
            return []
        standings = StandingsService(self.repo).get_standings(tournament_id, real.group_id)
        rank = standings.rank_of(real.id)
        if rank is None:
            return []
        return self.repo.find_virtual_participants(tournament_id, source_group_id=real.group_id, source_rank=rank)

    # ------------------------------------------------------------------
    # Group -> bracket handoff
    # ------------------------------------------------------------------

    def resolve_group_qualifiers(self, tournament_id: int, group_id: int) -> Dict[str, Any]:
        """
        Resolve every placeholder sourced from a completed group using its
        current standings. Already-resolved placeholders are skipped and
        reported rather than raising.
        """
        with tournament_lock(tournament_id), self.repo.transaction():
            group = self.repo.get_group(group_id, tournament_id)
            if group.status != GroupStatus.COMPLETED.value:
                raise StateError(
                    f"Group {group.name} is {group.status}; qualifiers are known only once it is completed",
                    code="GROUP_NOT_COMPLETED",
                )
            standings = StandingsService(self.repo).get_standings(tournament_id, group_id)
            resolved: List[Dict[str, Any]] = []
            skipped: List[int] = []
            for virtual in self.repo.find_virtual_participants(tournament_id, source_group_id=group_id):
                if virtual.is_resolved:
                    skipped.append(virtual.id)
                    continue
                participant_id: Optional[int] = standings.participant_at_rank(virtual.source_rank)
                if participant_id is None:
                    skipped.append(virtual.id)
                    continue
                match_ids = self.replace(virtual.id, participant_id)
                resolved.append(
                    {
                        "virtual_participant_id": virtual.id,
                        "participant_id": participant_id,
                        "rank": virtual.source_rank,
                        "match_ids": match_ids,
                    }
                )
            if resolved:
                logger.info("Group %s qualifiers resolved: %d placeholders", group.name, len(resolved))
        return {"group_id": group_id, "resolved": resolved, "skipped": skipped}
