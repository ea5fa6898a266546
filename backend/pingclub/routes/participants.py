from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from pingclub.database import get_session
from pingclub.models.participant import Participant, ParticipantStatus
from pingclub.repository import CompetitionRepository
from pingclub.services.registration import ParticipantRegistry
from pingclub.services.seeding import SeedingMethod

router = APIRouter()


class ParticipantCreate(BaseModel):
    display_name: str = Field(min_length=1)
    seed: Optional[int] = Field(default=None, ge=1)
    rating: Optional[float] = None
    status: ParticipantStatus = ParticipantStatus.REGISTERED


class ParticipantBulkCreate(BaseModel):
    participants: List[ParticipantCreate] = Field(min_length=1)


class ParticipantUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1)
    seed: Optional[int] = Field(default=None, ge=1)
    rating: Optional[float] = None
    status: Optional[ParticipantStatus] = None


class SeedRequest(BaseModel):
    method: SeedingMethod = SeedingMethod.LIST_ORDER
    rng_seed: Optional[int] = None


class ParticipantResponse(BaseModel):
    id: int
    tournament_id: int
    display_name: str
    seed: Optional[int]
    rating: Optional[float]
    status: str
    group_id: Optional[int]
    is_virtual: bool
    source_kind: Optional[str] = None
    source_match_id: Optional[int] = None
    source_position: Optional[str] = None
    source_group_id: Optional[int] = None
    source_rank: Optional[int] = None
    resolution_status: Optional[str] = None
    resolved_participant_id: Optional[int] = None
    registered_at: datetime

    class Config:
        from_attributes = True


@router.get("/tournaments/{tournament_id}/participants", response_model=List[ParticipantResponse])
def list_participants(tournament_id: int, include_virtual: bool = False, session: Session = Depends(get_session)):
    """Participants in seed order; placeholders only when include_virtual is set"""
    repo = CompetitionRepository(session)
    repo.get_tournament(tournament_id)
    participants = repo.find_participants(tournament_id, include_inactive=True)
    if include_virtual:
        virtuals = session.exec(
            select(Participant)
            .where(Participant.tournament_id == tournament_id, Participant.is_virtual == True)  # noqa: E712
            .order_by(Participant.id)
        ).all()
        participants = participants + list(virtuals)
    return participants


@router.post("/tournaments/{tournament_id}/participants", response_model=ParticipantResponse, status_code=201)
def create_participant(tournament_id: int, data: ParticipantCreate, session: Session = Depends(get_session)):
    registry = ParticipantRegistry(CompetitionRepository(session))
    return registry.add_participants(tournament_id, [data.model_dump(mode="json")])[0]


@router.post(
    "/tournaments/{tournament_id}/participants/bulk", response_model=List[ParticipantResponse], status_code=201
)
def create_participants_bulk(tournament_id: int, data: ParticipantBulkCreate, session: Session = Depends(get_session)):
    """Register several participants in one transaction"""
    registry = ParticipantRegistry(CompetitionRepository(session))
    return registry.add_participants(tournament_id, [p.model_dump(mode="json") for p in data.participants])


@router.patch("/tournaments/{tournament_id}/participants/{participant_id}", response_model=ParticipantResponse)
def update_participant(
    tournament_id: int, participant_id: int, data: ParticipantUpdate, session: Session = Depends(get_session)
):
    registry = ParticipantRegistry(CompetitionRepository(session))
    return registry.update_participant(tournament_id, participant_id, data.model_dump(exclude_unset=True, mode="json"))


@router.post("/tournaments/{tournament_id}/participants/seed", response_model=List[ParticipantResponse])
def seed_participants(tournament_id: int, data: SeedRequest, session: Session = Depends(get_session)):
    """Run the seeding engine and store seed numbers 1..N"""
    registry = ParticipantRegistry(CompetitionRepository(session))
    ordered = registry.apply_seeding(tournament_id, data.method.value, data.rng_seed)
    for p in ordered:
        session.refresh(p)
    return ordered
