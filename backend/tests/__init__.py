# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from pingclub.models.draw import Draw  # noqa: F401
from pingclub.models.group import TournamentGroup  # noqa: F401
from pingclub.models.match import Match  # noqa: F401
from pingclub.models.participant import Participant  # noqa: F401
from pingclub.models.stage import Stage, StageRule, StageRulePreset  # noqa: F401
from pingclub.models.tournament import Tournament  # noqa: F401
