"""
Tournament State Guards

Reusable preconditions for structural operations:
- Participant list must be locked before generating anything
- Finished tournaments are read-only
- Participant edits only while the list is open
"""

from pingclub.errors import StateError
from pingclub.models.tournament import Tournament, TournamentStatus

CLOSED_STATUSES = (TournamentStatus.COMPLETED.value, TournamentStatus.CANCELLED.value)


def require_tournament_open(tournament: Tournament) -> Tournament:
    """
    Raise StateError if the tournament is COMPLETED or CANCELLED.

    Returns:
        The tournament, for chaining
    """
    if tournament.status in CLOSED_STATUSES:
        raise StateError(
            f"Tournament {tournament.id} is {tournament.status}; no further changes allowed",
            code="TOURNAMENT_CLOSED",
        )
    return tournament


def require_participants_locked(tournament: Tournament) -> Tournament:
    if not tournament.participants_locked:
        raise StateError(
            "Participant list must be locked before generating groups or brackets",
            code="PARTICIPANTS_NOT_LOCKED",
        )
    return tournament


def require_participants_unlocked(tournament: Tournament) -> Tournament:
    if tournament.participants_locked:
        raise StateError(
            "Participant list is locked; unlock it before editing participants",
            code="PARTICIPANTS_LOCKED",
        )
    return tournament
