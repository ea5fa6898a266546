from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlmodel import Session, select

from pingclub.database import get_session
from pingclub.errors import InvalidInputError
from pingclub.models.tournament import GameType, Tournament, TournamentStatus
from pingclub.repository import CompetitionRepository
from pingclub.services.registration import ParticipantRegistry

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    game_type: GameType = GameType.SINGLE_STAGE
    has_third_place_match: bool = False
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TournamentUpdate(BaseModel):
    name: Optional[str] = None
    game_type: Optional[GameType] = None
    status: Optional[TournamentStatus] = None
    has_third_place_match: Optional[bool] = None
    notes: Optional[str] = None


class TournamentResponse(BaseModel):
    id: int
    name: str
    game_type: str
    status: str
    notes: Optional[str]
    participants_locked: bool
    has_third_place_match: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.id)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    tournament = Tournament(**tournament_data.model_dump(mode="json"))
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return CompetitionRepository(session).get_tournament(tournament_id)


@router.patch("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Update a tournament. Status may only be moved to CANCELLED by hand."""
    repo = CompetitionRepository(session)
    with repo.transaction():
        tournament = repo.get_tournament(tournament_id)
        changes = tournament_data.model_dump(exclude_unset=True, mode="json")
        if "status" in changes and changes["status"] not in (tournament.status, TournamentStatus.CANCELLED.value):
            raise InvalidInputError(
                "Tournament status advances automatically; only CANCELLED can be set by hand",
                code="STATUS_NOT_SETTABLE",
            )
        for key, value in changes.items():
            setattr(tournament, key, value)
        session.add(tournament)
    session.refresh(tournament)
    return tournament


@router.post("/tournaments/{tournament_id}/participants/lock", response_model=TournamentResponse)
def lock_participants(tournament_id: int, session: Session = Depends(get_session)):
    """Freeze the participant list so groups/brackets can be generated"""
    return ParticipantRegistry(CompetitionRepository(session)).lock(tournament_id)


@router.post("/tournaments/{tournament_id}/participants/unlock", response_model=TournamentResponse)
def unlock_participants(tournament_id: int, session: Session = Depends(get_session)):
    return ParticipantRegistry(CompetitionRepository(session)).unlock(tournament_id)
