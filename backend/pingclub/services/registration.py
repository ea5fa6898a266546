"""
Participant registration: the list that generation works from.

Edits are only allowed while the list is unlocked; locking freezes it for
group/bracket generation.
"""

import logging
from typing import Any, Dict, List, Optional

from pingclub.errors import InvalidInputError, StateError
from pingclub.models.participant import Participant, ParticipantStatus
from pingclub.models.tournament import Tournament
from pingclub.repository import CompetitionRepository
from pingclub.services.seeding import seed_participants
from pingclub.utils.guards import require_participants_unlocked, require_tournament_open
from pingclub.utils.locks import tournament_lock

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("display_name", "seed", "rating", "status")


def _check_status(status: Optional[str]) -> None:
    if status is None:
        return
    try:
        ParticipantStatus(status)
    except ValueError as e:
        raise InvalidInputError(f"Unknown participant status: {status}") from e


class ParticipantRegistry:
    def __init__(self, repo: CompetitionRepository):
        self.repo = repo

    def _open_list(self, tournament_id: int) -> Tournament:
        tournament = self.repo.lock_tournament_row(tournament_id)
        require_tournament_open(tournament)
        require_participants_unlocked(tournament)
        return tournament

    def add_participants(self, tournament_id: int, entries: List[Dict[str, Any]]) -> List[Participant]:
        if not entries:
            raise InvalidInputError("No participants given")
        with tournament_lock(tournament_id), self.repo.transaction():
            self._open_list(tournament_id)
            created = []
            for entry in entries:
                name = (entry.get("display_name") or "").strip()
                if not name:
                    raise InvalidInputError("display_name is required")
                _check_status(entry.get("status"))
                created.append(
                    self.repo.add_participant(
                        Participant(
                            tournament_id=tournament_id,
                            display_name=name,
                            seed=entry.get("seed"),
                            rating=entry.get("rating"),
                            status=entry.get("status") or ParticipantStatus.REGISTERED.value,
                        )
                    )
                )
        for p in created:
            self.repo.session.refresh(p)
        return created

    def update_participant(self, tournament_id: int, participant_id: int, changes: Dict[str, Any]) -> Participant:
        with tournament_lock(tournament_id), self.repo.transaction():
            self._open_list(tournament_id)
            participant = self.repo.get_participant(participant_id)
            if participant.tournament_id != tournament_id or participant.is_virtual:
                raise InvalidInputError(f"Participant {participant_id} is not editable in tournament {tournament_id}")
            _check_status(changes.get("status"))
            self.repo.update_participant(participant, **{k: v for k, v in changes.items() if k in EDITABLE_FIELDS})
        self.repo.session.refresh(participant)
        return participant

    def apply_seeding(self, tournament_id: int, method: str, rng_seed: Optional[int] = None) -> List[Participant]:
        """Run the Seeding Engine over active participants and store seeds 1..N."""
        with tournament_lock(tournament_id), self.repo.transaction():
            self._open_list(tournament_id)
            # Registration order, not current seed order
            participants = sorted(
                self.repo.find_participants(tournament_id), key=lambda p: (p.registered_at, p.id)
            )
            ordered = seed_participants(participants, method, rng_seed)
            for number, participant in enumerate(ordered, start=1):
                self.repo.update_participant(participant, seed=number)
            logger.info("Seeded %d participants of tournament %d by %s", len(ordered), tournament_id, method)
        return ordered

    def lock(self, tournament_id: int) -> Tournament:
        with tournament_lock(tournament_id), self.repo.transaction():
            tournament = self.repo.lock_tournament_row(tournament_id)
            require_tournament_open(tournament)
            active = self.repo.find_participants(tournament_id)
            if len(active) < 2:
                raise StateError(
                    f"At least 2 active participants are required to lock, got {len(active)}",
                    code="NOT_ENOUGH_PARTICIPANTS",
                )
            tournament.participants_locked = True
            self.repo.session.add(tournament)
            logger.info("Participant list of tournament %d locked (%d active)", tournament_id, len(active))
        self.repo.session.refresh(tournament)
        return tournament

    def unlock(self, tournament_id: int) -> Tournament:
        with tournament_lock(tournament_id), self.repo.transaction():
            tournament = self.repo.lock_tournament_row(tournament_id)
            if self.repo.find_groups(tournament_id) or self.repo.find_matches(tournament_id):
                raise StateError(
                    "Groups or matches were already generated; the participant list stays locked",
                    code="GENERATION_EXISTS",
                )
            tournament.participants_locked = False
            self.repo.session.add(tournament)
            logger.info("Participant list of tournament %d unlocked", tournament_id)
        self.repo.session.refresh(tournament)
        return tournament
