from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from pingclub.database import get_session
from pingclub.errors import InvalidInputError
from pingclub.models.draw import DrawType
from pingclub.repository import CompetitionRepository
from pingclub.routes.bracket import BracketRequest
from pingclub.routes.groups import GroupGenerateRequest
from pingclub.services.draw_service import DrawService

router = APIRouter()


class GroupDrawPayload(GroupGenerateRequest):
    class Config:
        extra = "forbid"


class KnockoutDrawPayload(BracketRequest):
    class Config:
        extra = "forbid"


_PAYLOAD_MODELS = {
    DrawType.GROUP_ASSIGNMENT: GroupDrawPayload,
    DrawType.KNOCKOUT_PAIRING: KnockoutDrawPayload,
}


class DrawCreate(BaseModel):
    draw_type: DrawType
    payload: Dict[str, Any] = {}


class DrawResponse(BaseModel):
    id: int
    tournament_id: int
    draw_type: str
    payload: Dict[str, Any]
    result: Optional[Dict[str, Any]]
    status: str
    created_at: datetime
    applied_at: Optional[datetime]

    class Config:
        from_attributes = True


def _validated_payload(draw_type: DrawType, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Check the payload against the generator's request model for this draw type"""
    try:
        options = _PAYLOAD_MODELS[draw_type].model_validate(payload)
    except ValidationError as e:
        errors = [{"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]} for err in e.errors()]
        raise InvalidInputError(
            f"Invalid {draw_type.value} payload", code="INVALID_DRAW_PAYLOAD", details={"errors": errors}
        ) from e
    return options.model_dump(mode="json")


@router.get("/tournaments/{tournament_id}/draws", response_model=List[DrawResponse])
def list_draws(tournament_id: int, session: Session = Depends(get_session)):
    repo = CompetitionRepository(session)
    repo.get_tournament(tournament_id)
    return repo.find_draws(tournament_id)


@router.post("/tournaments/{tournament_id}/draws", response_model=DrawResponse, status_code=201)
def create_draw(tournament_id: int, data: DrawCreate, session: Session = Depends(get_session)):
    """Preview a group assignment or knockout pairing; nothing is generated until applied"""
    payload = _validated_payload(data.draw_type, data.payload)
    return DrawService(CompetitionRepository(session)).create_draw(tournament_id, data.draw_type.value, payload)


@router.get("/draws/{draw_id}", response_model=DrawResponse)
def get_draw(draw_id: int, session: Session = Depends(get_session)):
    return CompetitionRepository(session).get_draw(draw_id)


@router.post("/draws/{draw_id}/apply", response_model=DrawResponse)
def apply_draw(draw_id: int, session: Session = Depends(get_session)):
    return DrawService(CompetitionRepository(session)).apply_draw(draw_id)


@router.post("/draws/{draw_id}/cancel", response_model=DrawResponse)
def cancel_draw(draw_id: int, session: Session = Depends(get_session)):
    return DrawService(CompetitionRepository(session)).cancel_draw(draw_id)
