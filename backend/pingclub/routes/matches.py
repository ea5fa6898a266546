from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from pingclub.database import get_session
from pingclub.models.match import MatchStage
from pingclub.repository import CompetitionRepository
from pingclub.services.advancement_service import AdvancementResolver
from pingclub.services.match_results import MatchResultService

router = APIRouter()


class GameScore(BaseModel):
    side_a: int = Field(ge=0)
    side_b: int = Field(ge=0)


class MatchResultUpdate(BaseModel):
    status: Literal["IN_PROGRESS", "COMPLETED", "WALKOVER", "CANCELLED"]
    winner_participant_id: Optional[int] = None
    game_scores: Optional[List[GameScore]] = None


class AdvanceRequest(BaseModel):
    real_participant_id: int
    position: Literal["winner", "loser"] = "winner"


class MatchResponse(BaseModel):
    id: int
    tournament_id: int
    stage: str
    group_id: Optional[int]
    round: int
    match_number: int
    bracket_position: Optional[int]
    side_a_participant_id: Optional[int]
    side_b_participant_id: Optional[int]
    winner_participant_id: Optional[int]
    status: str
    game_scores: Optional[List[Dict[str, Any]]] = None
    final_score: Optional[str] = None
    is_bye: bool
    is_third_place: bool
    version: int
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MatchResultResponse(BaseModel):
    match: MatchResponse
    advanced_match_ids: List[int]
    group_completed: bool
    tournament_completed: bool


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(
    tournament_id: int,
    stage: Optional[MatchStage] = None,
    group_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    repo = CompetitionRepository(session)
    repo.get_tournament(tournament_id)
    return repo.find_matches(tournament_id, stage=stage.value if stage else None, group_id=group_id)


@router.get("/tournaments/{tournament_id}/matches/{match_id}", response_model=MatchResponse)
def get_match(tournament_id: int, match_id: int, session: Session = Depends(get_session)):
    return CompetitionRepository(session).get_match(match_id, tournament_id)


@router.patch("/tournaments/{tournament_id}/matches/{match_id}", response_model=MatchResultResponse)
def record_match_result(
    tournament_id: int, match_id: int, data: MatchResultUpdate, session: Session = Depends(get_session)
):
    """Record a status/result; knockout winners and group qualifiers advance automatically"""
    scores = [g.model_dump() for g in data.game_scores] if data.game_scores is not None else None
    outcome = MatchResultService(CompetitionRepository(session)).record_result(
        tournament_id, match_id, data.status, data.winner_participant_id, scores
    )
    return MatchResultResponse(
        match=MatchResponse.model_validate(outcome.match),
        advanced_match_ids=outcome.advanced_match_ids,
        group_completed=outcome.group_completed,
        tournament_completed=outcome.tournament_completed,
    )


@router.post("/tournaments/{tournament_id}/matches/{match_id}/advance")
def advance_participant(
    tournament_id: int, match_id: int, data: AdvanceRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    """Manually place a real participant into the slot fed by this match"""
    updated = AdvancementResolver(CompetitionRepository(session)).advance(
        tournament_id, match_id, data.position, data.real_participant_id
    )
    return {"updated_matches": updated}
