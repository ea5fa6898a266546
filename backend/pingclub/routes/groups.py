from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from pingclub.database import get_session
from pingclub.repository import CompetitionRepository
from pingclub.routes.matches import MatchResponse
from pingclub.services.advancement_service import AdvancementResolver
from pingclub.services.group_stage import GroupOptions, GroupStageGenerator
from pingclub.services.round_robin import Distribution
from pingclub.services.seeding import SeedingMethod
from pingclub.services.standings import StandingsService

router = APIRouter()


class GroupGenerateRequest(BaseModel):
    number_of_groups: Optional[int] = Field(default=None, ge=1)
    participants_per_group: Optional[int] = None
    participants_advancing: int = 2
    group_name_prefix: str = "Group"
    distribution: Distribution = Distribution.STRAIGHT
    seeding_method: SeedingMethod = SeedingMethod.LIST_ORDER
    rng_seed: Optional[int] = None

    def to_options(self) -> GroupOptions:
        return GroupOptions(**self.model_dump())


class MatchGenerateRequest(BaseModel):
    matchups_per_pair: int = Field(default=1, ge=1, le=4)


class GroupMemberResponse(BaseModel):
    id: int
    display_name: str
    seed: Optional[int]


class GroupResponse(BaseModel):
    id: int
    name: str
    display_name: str
    participants_per_group: int
    participants_advancing: int
    status: str
    members: List[GroupMemberResponse] = []


def _group_response(repo: CompetitionRepository, group) -> GroupResponse:
    members = repo.group_members(group.id)
    return GroupResponse(
        id=group.id,
        name=group.name,
        display_name=group.display_name,
        participants_per_group=group.participants_per_group,
        participants_advancing=group.participants_advancing,
        status=group.status,
        members=[GroupMemberResponse(id=m.id, display_name=m.display_name, seed=m.seed) for m in members],
    )


@router.get("/tournaments/{tournament_id}/groups", response_model=List[GroupResponse])
def list_groups(tournament_id: int, session: Session = Depends(get_session)):
    repo = CompetitionRepository(session)
    repo.get_tournament(tournament_id)
    return [_group_response(repo, g) for g in repo.find_groups(tournament_id)]


@router.post("/tournaments/{tournament_id}/groups/generate", response_model=List[GroupResponse], status_code=201)
def generate_groups(tournament_id: int, data: GroupGenerateRequest, session: Session = Depends(get_session)):
    """Create groups and distribute the locked participant list across them"""
    repo = CompetitionRepository(session)
    groups = GroupStageGenerator(repo).auto_generate_groups(tournament_id, data.to_options())
    return [_group_response(repo, g) for g in groups]


@router.post(
    "/tournaments/{tournament_id}/groups/matches", response_model=List[MatchResponse], status_code=201
)
def generate_all_group_matches(
    tournament_id: int, data: MatchGenerateRequest, session: Session = Depends(get_session)
):
    repo = CompetitionRepository(session)
    return GroupStageGenerator(repo).generate_all_matches(tournament_id, data.matchups_per_pair)


@router.post(
    "/tournaments/{tournament_id}/groups/{group_id}/matches", response_model=List[MatchResponse], status_code=201
)
def generate_group_matches(
    tournament_id: int, group_id: int, data: MatchGenerateRequest, session: Session = Depends(get_session)
):
    """Round-robin fixtures for one group"""
    repo = CompetitionRepository(session)
    return GroupStageGenerator(repo).generate_matches(tournament_id, group_id, data.matchups_per_pair)


@router.get("/tournaments/{tournament_id}/groups/{group_id}/standings")
def get_group_standings(tournament_id: int, group_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    standings = StandingsService(CompetitionRepository(session)).get_standings(tournament_id, group_id)
    return {
        "group_id": standings.group_id,
        "group_name": standings.group_name,
        "status": standings.status,
        "participants_advancing": standings.participants_advancing,
        "tie_break_order": standings.rule.tie_break_order,
        "h2h_mode": standings.rule.h2h_mode,
        "entries": [e.to_dict() for e in standings.entries],
    }


@router.post("/tournaments/{tournament_id}/groups/{group_id}/advance-qualifiers")
def advance_group_qualifiers(
    tournament_id: int, group_id: int, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """Resolve this group's bracket placeholders from its final standings"""
    return AdvancementResolver(CompetitionRepository(session)).resolve_group_qualifiers(tournament_id, group_id)
