from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ValidationError, TypeAdapter
from pydantic import Field as PydanticField
from sqlmodel import Field, SQLModel

from pingclub.errors import InvalidInputError


class ParticipantStatus(str, Enum):
    REGISTERED = "REGISTERED"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    WITHDRAWN = "WITHDRAWN"
    DISQUALIFIED = "DISQUALIFIED"


ACTIVE_STATUSES = (
    ParticipantStatus.REGISTERED.value,
    ParticipantStatus.CONFIRMED.value,
    ParticipantStatus.CHECKED_IN.value,
)


class ResolutionStatus(str, Enum):
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"


class MatchSource(BaseModel):
    """Placeholder fed by the winner or loser of an earlier match"""

    kind: Literal["match"] = "match"
    match_id: int
    position: Literal["winner", "loser"]


class GroupSource(BaseModel):
    """Placeholder fed by the Nth-ranked participant of a group"""

    kind: Literal["group"] = "group"
    group_id: int
    rank: int = PydanticField(ge=1)


AdvancingSource = Annotated[Union[MatchSource, GroupSource], PydanticField(discriminator="kind")]
_source_adapter = TypeAdapter(AdvancingSource)


def parse_advancing_source(data: dict) -> Union[MatchSource, GroupSource]:
    try:
        return _source_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid advancing source: {e.errors()[0]['msg']}") from e


class Participant(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    display_name: str
    seed: Optional[int] = Field(default=None)
    rating: Optional[float] = Field(default=None)
    status: str = Field(default=ParticipantStatus.REGISTERED.value)  # ParticipantStatus
    group_id: Optional[int] = Field(default=None, foreign_key="tournamentgroup.id", index=True)
    registered_at: datetime = Field(default_factory=datetime.utcnow)

    # Virtual placeholders stand in for "winner of match X" / "rank N of group G"
    is_virtual: bool = Field(default=False)
    source_kind: Optional[str] = Field(default=None)  # "match" | "group"
    source_match_id: Optional[int] = Field(default=None, index=True)  # match.id
    source_position: Optional[str] = Field(default=None)  # "winner" | "loser"
    source_group_id: Optional[int] = Field(default=None, foreign_key="tournamentgroup.id")
    source_rank: Optional[int] = Field(default=None)
    resolution_status: Optional[str] = Field(default=None)  # ResolutionStatus, virtual only
    resolved_participant_id: Optional[int] = Field(default=None, foreign_key="participant.id")
    resolved_at: Optional[datetime] = Field(default=None)

    @property
    def advancing_source(self) -> Optional[Union[MatchSource, GroupSource]]:
        if not self.is_virtual or self.source_kind is None:
            return None
        if self.source_kind == "match":
            return parse_advancing_source(
                {"kind": "match", "match_id": self.source_match_id, "position": self.source_position}
            )
        return parse_advancing_source({"kind": "group", "group_id": self.source_group_id, "rank": self.source_rank})

    def set_advancing_source(self, source: Union[MatchSource, GroupSource]) -> None:
        self.is_virtual = True
        self.source_kind = source.kind
        if isinstance(source, MatchSource):
            self.source_match_id = source.match_id
            self.source_position = source.position
        else:
            self.source_group_id = source.group_id
            self.source_rank = source.rank
        self.resolution_status = ResolutionStatus.PENDING.value

    @property
    def is_resolved(self) -> bool:
        return self.resolution_status == ResolutionStatus.RESOLVED.value
