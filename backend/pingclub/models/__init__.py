from pingclub.models.draw import Draw, DrawStatus, DrawType
from pingclub.models.group import GroupStatus, TournamentGroup
from pingclub.models.match import Match, MatchStage, MatchStatus
from pingclub.models.participant import (
    GroupSource,
    MatchSource,
    Participant,
    ParticipantStatus,
    ResolutionStatus,
)
from pingclub.models.stage import H2hMode, Stage, StageRule, StageRulePreset, StageType, TieBreak
from pingclub.models.tournament import GameType, Tournament, TournamentStatus

__all__ = [
    "Tournament",
    "TournamentStatus",
    "GameType",
    "Stage",
    "StageType",
    "StageRule",
    "StageRulePreset",
    "TieBreak",
    "H2hMode",
    "TournamentGroup",
    "GroupStatus",
    "Participant",
    "ParticipantStatus",
    "ResolutionStatus",
    "MatchSource",
    "GroupSource",
    "Match",
    "MatchStage",
    "MatchStatus",
    "Draw",
    "DrawType",
    "DrawStatus",
]
