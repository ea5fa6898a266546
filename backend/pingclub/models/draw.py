from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class DrawType(str, Enum):
    GROUP_ASSIGNMENT = "GROUP_ASSIGNMENT"
    KNOCKOUT_PAIRING = "KNOCKOUT_PAIRING"


class DrawStatus(str, Enum):
    DRAFT = "DRAFT"
    APPLIED = "APPLIED"
    CANCELLED = "CANCELLED"


class Draw(SQLModel, table=True):
    """A stored, reviewable draw: parameters + computed outcome, applied later"""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    draw_type: str  # DrawType
    payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    result: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    status: str = Field(default=DrawStatus.DRAFT.value)  # DrawStatus
    created_at: datetime = Field(default_factory=datetime.utcnow)
    applied_at: Optional[datetime] = Field(default=None)
