"""
Match result recording with automatic advancement.

Recording a knockout result resolves the placeholders fed by that match;
finishing the last match of a group resolves the group's qualifier
placeholders from its standings.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pingclub.errors import InvalidInputError, StateError
from pingclub.models.group import GroupStatus
from pingclub.models.match import Match, MatchStage, MatchStatus
from pingclub.models.tournament import TournamentStatus
from pingclub.repository import CompetitionRepository
from pingclub.services.advancement_service import AdvancementResolver
from pingclub.utils.guards import require_tournament_open
from pingclub.utils.locks import tournament_lock

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (MatchStatus.COMPLETED.value, MatchStatus.WALKOVER.value, MatchStatus.CANCELLED.value)
RECORDABLE_STATUSES = (
    MatchStatus.IN_PROGRESS.value,
    MatchStatus.COMPLETED.value,
    MatchStatus.WALKOVER.value,
    MatchStatus.CANCELLED.value,
)


@dataclass
class ResultOutcome:
    match: Match
    advanced_match_ids: List[int] = field(default_factory=list)
    group_completed: bool = False
    tournament_completed: bool = False


def _validate_scores(game_scores: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, int]]]:
    if game_scores is None:
        return None
    cleaned = []
    for i, game in enumerate(game_scores, start=1):
        try:
            a = int(game["side_a"])
            b = int(game["side_b"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidInputError(f"Game {i}: expected integer side_a/side_b scores") from e
        if a < 0 or b < 0:
            raise InvalidInputError(f"Game {i}: scores cannot be negative")
        cleaned.append({"side_a": a, "side_b": b})
    return cleaned


def _games_won(game_scores: List[Dict[str, int]]):
    a = sum(1 for g in game_scores if g["side_a"] > g["side_b"])
    b = sum(1 for g in game_scores if g["side_b"] > g["side_a"])
    return a, b


class MatchResultService:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo
        self.resolver = AdvancementResolver(repo)

    def record_result(
        self,
        tournament_id: int,
        match_id: int,
        status: str,
        winner_participant_id: Optional[int] = None,
        game_scores: Optional[List[Dict[str, Any]]] = None,
    ) -> ResultOutcome:
        if status not in RECORDABLE_STATUSES:
            raise InvalidInputError(f"status must be one of {RECORDABLE_STATUSES}, got {status!r}")
        scores = _validate_scores(game_scores)

        with tournament_lock(tournament_id), self.repo.transaction():
            tournament = self.repo.lock_tournament_row(tournament_id)
            require_tournament_open(tournament)
            match = self.repo.get_match(match_id, tournament_id)
            if match.status in TERMINAL_STATUSES:
                raise StateError(f"Match {match.id} is already {match.status}", code="MATCH_FINISHED")

            outcome = ResultOutcome(match=match)
            now = datetime.utcnow()

            if status == MatchStatus.CANCELLED.value:
                match.status = status
                match.completed_at = now
            else:
                self._require_real_sides(match)
                if scores is not None:
                    match.game_scores = scores
                if status == MatchStatus.IN_PROGRESS.value:
                    match.status = status
                    match.started_at = match.started_at or now
                else:
                    self._finish(match, status, winner_participant_id, scores, now)

            self.repo.session.add(match)
            self.repo.session.flush()

            if tournament.status in (TournamentStatus.DRAFT.value, TournamentStatus.PENDING.value):
                tournament.status = TournamentStatus.IN_PROGRESS.value

            if match.stage == MatchStage.GROUP.value and match.group_id is not None:
                outcome.group_completed = self._update_group(tournament_id, match)
            elif match.is_finished:
                outcome.advanced_match_ids = self.resolver.resolve_match_outcome(match)

            outcome.tournament_completed = self._update_tournament(tournament)
            self.repo.session.add(tournament)

            logger.info(
                "Match %d (tournament %d) -> %s, winner %s, %d downstream matches updated",
                match.id,
                tournament_id,
                match.status,
                match.winner_participant_id,
                len(outcome.advanced_match_ids),
            )

        self.repo.session.refresh(match)
        return outcome

    def _require_real_sides(self, match: Match) -> None:
        for pid in (match.side_a_participant_id, match.side_b_participant_id):
            if pid is None or self.repo.get_participant(pid).is_virtual:
                raise StateError(
                    f"Match {match.id} still has an undetermined side",
                    code="SIDES_UNRESOLVED",
                )

    def _finish(
        self,
        match: Match,
        status: str,
        winner_id: Optional[int],
        scores: Optional[List[Dict[str, int]]],
        now: datetime,
    ) -> None:
        if winner_id is None and scores:
            games_a, games_b = _games_won(scores)
            if games_a != games_b:
                winner_id = match.side_a_participant_id if games_a > games_b else match.side_b_participant_id

        if winner_id is not None and winner_id not in match.side_ids():
            raise InvalidInputError(
                f"Winner {winner_id} is not a side of match {match.id}",
                code="WINNER_NOT_A_SIDE",
            )
        if winner_id is None and (match.stage == MatchStage.FINAL.value or status == MatchStatus.WALKOVER.value):
            raise InvalidInputError(
                "A knockout or walkover result needs a winner",
                code="WINNER_REQUIRED",
            )

        match.status = status
        match.winner_participant_id = winner_id
        match.completed_at = now
        if scores:
            games_a, games_b = _games_won(scores)
            match.final_score = f"{games_a}-{games_b}"

    def _update_group(self, tournament_id: int, match: Match) -> bool:
        group = self.repo.get_group(match.group_id, tournament_id)
        group_matches = self.repo.find_matches(tournament_id, group_id=group.id)
        if group.status == GroupStatus.PENDING.value:
            group.status = GroupStatus.IN_PROGRESS.value
        if group_matches and all(m.status in TERMINAL_STATUSES for m in group_matches):
            group.status = GroupStatus.COMPLETED.value
            self.repo.session.add(group)
            self.repo.session.flush()
            logger.info("Group %s (tournament %d) completed", group.name, tournament_id)
            if self.repo.find_virtual_participants(tournament_id, source_group_id=group.id, pending_only=True):
                self.resolver.resolve_group_qualifiers(tournament_id, group.id)
            return True
        self.repo.session.add(group)
        return False

    def _update_tournament(self, tournament) -> bool:
        knockout = self.repo.find_matches(tournament.id, stage=MatchStage.FINAL.value)
        if knockout and all(m.status in TERMINAL_STATUSES for m in knockout):
            tournament.status = TournamentStatus.COMPLETED.value
            logger.info("Tournament %d completed", tournament.id)
            return True
        return False
