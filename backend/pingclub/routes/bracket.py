from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from pingclub.database import get_session
from pingclub.repository import CompetitionRepository
from pingclub.routes.matches import MatchResponse
from pingclub.services.bracket_layout import SeedOrder
from pingclub.services.bracket_service import BracketGenerator, BracketOptions, BracketSourceType

router = APIRouter()


class BracketRequest(BaseModel):
    source_type: BracketSourceType = BracketSourceType.SEED
    include_third_place_match: Optional[bool] = None
    size: Optional[int] = Field(default=None, ge=2)
    seed_order: SeedOrder = SeedOrder.STANDARD
    rng_seed: Optional[int] = None
    pairs: Optional[List[List[Optional[int]]]] = None
    top_n_per_group: Optional[int] = Field(default=None, ge=1)

    def to_options(self) -> BracketOptions:
        return BracketOptions(**self.model_dump())


class BracketResponse(BaseModel):
    total_rounds: int
    total_matches: int
    matches: List[MatchResponse]


@router.post("/tournaments/{tournament_id}/bracket/preview")
def preview_bracket(tournament_id: int, data: BracketRequest, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Bracket layout without creating anything"""
    return BracketGenerator(CompetitionRepository(session)).preview_bracket(tournament_id, data.to_options())


@router.post("/tournaments/{tournament_id}/bracket", response_model=BracketResponse, status_code=201)
def generate_bracket(tournament_id: int, data: BracketRequest, session: Session = Depends(get_session)):
    """Create every knockout round up front, with placeholders for undecided slots"""
    result = BracketGenerator(CompetitionRepository(session)).generate_bracket(tournament_id, data.to_options())
    return BracketResponse(
        total_rounds=result.total_rounds,
        total_matches=result.total_matches,
        matches=[MatchResponse.model_validate(m) for m in result.matches],
    )


@router.get("/tournaments/{tournament_id}/bracket")
def get_bracket(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return BracketGenerator(CompetitionRepository(session)).get_bracket(tournament_id)
