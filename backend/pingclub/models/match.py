from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class MatchStage(str, Enum):
    GROUP = "GROUP"
    FINAL = "FINAL"


class MatchStatus(str, Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    WALKOVER = "WALKOVER"
    CANCELLED = "CANCELLED"


FINISHED_STATUSES = (MatchStatus.COMPLETED.value, MatchStatus.WALKOVER.value)


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage_id: Optional[int] = Field(default=None, foreign_key="stage.id")
    stage: str  # MatchStage
    group_id: Optional[int] = Field(default=None, foreign_key="tournamentgroup.id", index=True)
    round: int
    match_number: int  # 1-based within the round
    bracket_position: Optional[int] = Field(default=None)  # knockout only, 1-based across the round

    # Sides hold real or virtual participant ids; None only for an empty bye slot
    side_a_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    side_b_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    winner_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")

    status: str = Field(default=MatchStatus.SCHEDULED.value)  # MatchStatus
    game_scores: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    final_score: Optional[str] = Field(default=None)  # "3-1"

    is_bye: bool = Field(default=False)
    is_third_place: bool = Field(default=False)

    # Optimistic concurrency: every side substitution bumps this
    version: int = Field(default=1)

    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def side_ids(self) -> List[int]:
        return [pid for pid in (self.side_a_participant_id, self.side_b_participant_id) if pid is not None]

    def loser_participant_id(self) -> Optional[int]:
        if self.winner_participant_id is None:
            return None
        if self.winner_participant_id == self.side_a_participant_id:
            return self.side_b_participant_id
        if self.winner_participant_id == self.side_b_participant_id:
            return self.side_a_participant_id
        return None
