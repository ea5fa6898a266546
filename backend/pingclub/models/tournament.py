from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingclub.models.group import TournamentGroup
    from pingclub.models.stage import Stage


class GameType(str, Enum):
    SINGLE_STAGE = "SINGLE_STAGE"
    TWO_STAGES = "TWO_STAGES"


class TournamentStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    game_type: str = Field(default=GameType.SINGLE_STAGE.value)  # GameType
    status: str = Field(default=TournamentStatus.DRAFT.value)  # TournamentStatus
    notes: Optional[str] = None

    # Coarse lock: generation requires it, participant edits are refused while set
    participants_locked: bool = Field(default=False)
    has_third_place_match: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    stages: List["Stage"] = Relationship(back_populates="tournament")
    groups: List["TournamentGroup"] = Relationship(back_populates="tournament")
