from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from pingclub.models.tournament import Tournament


class StageType(str, Enum):
    GROUP = "GROUP"
    KNOCKOUT = "KNOCKOUT"


class TieBreak(str, Enum):
    WINS_VS_TIED = "WINS_VS_TIED"
    GAME_SET_DIFFERENCE = "GAME_SET_DIFFERENCE"
    POINTS_DIFFERENCE = "POINTS_DIFFERENCE"


class H2hMode(str, Enum):
    WINS_ONLY = "WINS_ONLY"  # count wins among the tied participants
    MINI_TABLE = "MINI_TABLE"  # full sub-standings restricted to the tied participants


DEFAULT_TIE_BREAK_ORDER = [
    TieBreak.WINS_VS_TIED.value,
    TieBreak.GAME_SET_DIFFERENCE.value,
    TieBreak.POINTS_DIFFERENCE.value,
]


class Stage(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "stage_type", name="uq_tournament_stage_type"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    stage_type: str  # StageType
    stage_order: int = Field(default=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="stages")
    rule: Optional["StageRule"] = Relationship(
        back_populates="stage", sa_relationship_kwargs={"uselist": False}
    )


class StageRule(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", unique=True)
    win_points: int = Field(default=1)
    loss_points: int = Field(default=0)
    draw_points: int = Field(default=0)
    bye_points: int = Field(default=1)
    count_walkover_as_played: bool = Field(default=True)
    tie_break_order: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TIE_BREAK_ORDER), sa_column=Column(JSON, nullable=False)
    )
    h2h_mode: str = Field(default=H2hMode.WINS_ONLY.value)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    stage: "Stage" = Relationship(back_populates="rule")


class StageRulePreset(SQLModel, table=True):
    """Reusable rule set an admin copies onto a stage"""

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    description: Optional[str] = None
    is_active: bool = Field(default=True)
    win_points: int = Field(default=1)
    loss_points: int = Field(default=0)
    draw_points: int = Field(default=0)
    bye_points: int = Field(default=1)
    count_walkover_as_played: bool = Field(default=True)
    tie_break_order: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TIE_BREAK_ORDER), sa_column=Column(JSON, nullable=False)
    )
    h2h_mode: str = Field(default=H2hMode.WINS_ONLY.value)
    created_at: datetime = Field(default_factory=datetime.utcnow)
