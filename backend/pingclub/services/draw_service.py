"""
Draw sessions: preview a generation, review it, then apply or cancel.

A draw stores the generator options (payload) and the previewed outcome
(result). Random draws get an rng_seed fixed at creation so that applying
reproduces the preview exactly.
"""

import logging
import secrets
from datetime import datetime
from typing import Any, Dict

from pingclub.errors import InvalidInputError, StateError
from pingclub.models.draw import Draw, DrawStatus, DrawType
from pingclub.models.match import MatchStage
from pingclub.repository import CompetitionRepository
from pingclub.services.bracket_service import BracketGenerator, BracketOptions, BracketSourceType
from pingclub.services.group_stage import GroupOptions, GroupStageGenerator
from pingclub.services.seeding import SeedingMethod
from pingclub.utils.guards import require_participants_locked
from pingclub.utils.locks import tournament_lock

logger = logging.getLogger(__name__)


def _draw_type(value: str) -> DrawType:
    try:
        return DrawType(value)
    except ValueError as e:
        raise InvalidInputError(f"Unknown draw type: {value}") from e


class DrawService:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo
        self.groups = GroupStageGenerator(repo)
        self.bracket = BracketGenerator(repo)

    def _with_rng_seed(self, draw_type: DrawType, payload: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(payload or {})
        if draw_type == DrawType.GROUP_ASSIGNMENT:
            is_random = payload.get("seeding_method") == SeedingMethod.RANDOM.value
        else:
            is_random = payload.get("source_type") == BracketSourceType.RANDOM.value
        if is_random and payload.get("rng_seed") is None:
            payload["rng_seed"] = secrets.randbelow(2**31)
        return payload

    def _require_applicable(self, tournament_id: int, draw_type: DrawType) -> None:
        """Refuse a draft the generator would refuse to apply."""
        tournament = self.repo.get_tournament(tournament_id)
        require_participants_locked(tournament)
        if draw_type == DrawType.GROUP_ASSIGNMENT:
            if self.repo.find_groups(tournament_id):
                raise StateError(f"Tournament {tournament_id} already has groups", code="GROUPS_EXIST")
        elif self.repo.find_matches(tournament_id, stage=MatchStage.FINAL.value):
            raise StateError(f"Tournament {tournament_id} already has a bracket", code="BRACKET_EXISTS")

    def _preview(self, tournament_id: int, draw_type: DrawType, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._require_applicable(tournament_id, draw_type)
        if draw_type == DrawType.GROUP_ASSIGNMENT:
            planned = self.groups.preview_groups(tournament_id, GroupOptions.from_dict(payload))
            return {"groups": [g.to_dict() for g in planned]}
        return self.bracket.preview_bracket(tournament_id, BracketOptions.from_dict(payload))

    def create_draw(self, tournament_id: int, draw_type: str, payload: Dict[str, Any]) -> Draw:
        """Compute and store a preview. Creates no group, match or participant."""
        kind = _draw_type(draw_type)
        payload = self._with_rng_seed(kind, payload)
        result = self._preview(tournament_id, kind, payload)
        with self.repo.transaction():
            draw = self.repo.add_draw(
                Draw(tournament_id=tournament_id, draw_type=kind.value, payload=payload, result=result)
            )
        self.repo.session.refresh(draw)
        logger.info("Draw %d (%s) previewed for tournament %d", draw.id, kind.value, tournament_id)
        return draw

    def apply_draw(self, draw_id: int) -> Draw:
        """Run the real generator with the stored payload in one transaction."""
        draw = self.repo.get_draw(draw_id)
        with tournament_lock(draw.tournament_id), self.repo.transaction():
            self.repo.session.refresh(draw)
            if draw.status != DrawStatus.DRAFT.value:
                raise StateError(f"Draw {draw.id} is {draw.status}; only DRAFT draws can be applied", code="DRAW_NOT_DRAFT")

            kind = DrawType(draw.draw_type)
            result = dict(draw.result or {})
            if kind == DrawType.GROUP_ASSIGNMENT:
                groups = self.groups.auto_generate_groups(draw.tournament_id, GroupOptions.from_dict(draw.payload))
                result["group_ids"] = [g.id for g in groups]
            else:
                bracket = self.bracket.generate_bracket(draw.tournament_id, BracketOptions.from_dict(draw.payload))
                result["match_ids"] = [m.id for m in bracket.matches]

            draw.result = result
            draw.status = DrawStatus.APPLIED.value
            draw.applied_at = datetime.utcnow()
            self.repo.session.add(draw)
            logger.info("Draw %d (%s) applied to tournament %d", draw.id, kind.value, draw.tournament_id)

        self.repo.session.refresh(draw)
        return draw

    def cancel_draw(self, draw_id: int) -> Draw:
        with self.repo.transaction():
            draw = self.repo.get_draw(draw_id)
            if draw.status == DrawStatus.APPLIED.value:
                raise StateError(f"Draw {draw.id} was already applied", code="DRAW_APPLIED")
            if draw.status == DrawStatus.DRAFT.value:
                draw.status = DrawStatus.CANCELLED.value
                self.repo.session.add(draw)
                logger.info("Draw %d cancelled", draw.id)
        self.repo.session.refresh(draw)
        return draw
