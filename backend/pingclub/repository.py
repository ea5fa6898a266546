"""
Persistence gateway for competition services.

All reads/writes used by the generators, resolver and result recording go
through CompetitionRepository so that a whole operation runs inside one
transaction and commits once.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import or_, update
from sqlmodel import Session, select

from pingclub.errors import CompetitionError, NotFoundError, StateError
from pingclub.models.draw import Draw
from pingclub.models.group import TournamentGroup
from pingclub.models.match import Match
from pingclub.models.participant import ACTIVE_STATUSES, Participant
from pingclub.models.stage import Stage, StageRule
from pingclub.models.tournament import Tournament

logger = logging.getLogger(__name__)


def participant_sort_key(p: Participant):
    """Deterministic ordering: seed asc (nulls last), registration time, id."""
    return (
        p.seed is None,
        p.seed if p.seed is not None else 0,
        p.registered_at or datetime.min,
        p.id or 0,
    )


class CompetitionRepository:
    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Re-entrant unit of work. Only the outermost level commits; any
        exception rolls the whole thing back and propagates.
        """
        self._depth += 1
        try:
            yield self.session
            if self._depth == 1:
                self.session.commit()
        except CompetitionError as e:
            if self._depth == 1:
                self.session.rollback()
                logger.info("Transaction rolled back: %s (%s)", e.message, e.code)
            raise
        except Exception:
            if self._depth == 1:
                self.session.rollback()
                logger.exception("Unexpected failure, transaction rolled back")
            raise
        finally:
            self._depth -= 1

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    def get_tournament(self, tournament_id: int) -> Tournament:
        tournament = self.session.get(Tournament, tournament_id)
        if not tournament:
            raise NotFoundError(f"Tournament {tournament_id} not found")
        return tournament

    def lock_tournament_row(self, tournament_id: int) -> Tournament:
        """SELECT ... FOR UPDATE on the tournament row (no-op on SQLite)."""
        tournament = self.session.exec(
            select(Tournament).where(Tournament.id == tournament_id).with_for_update()
        ).first()
        if not tournament:
            raise NotFoundError(f"Tournament {tournament_id} not found")
        return tournament

    # ------------------------------------------------------------------
    # Participants
    # ------------------------------------------------------------------

    def find_participants(self, tournament_id: int, include_inactive: bool = False) -> List[Participant]:
        """Real participants of a tournament in deterministic order."""
        stmt = select(Participant).where(
            Participant.tournament_id == tournament_id,
            Participant.is_virtual == False,  # noqa: E712
        )
        if not include_inactive:
            stmt = stmt.where(Participant.status.in_(ACTIVE_STATUSES))
        participants = list(self.session.exec(stmt).all())
        participants.sort(key=participant_sort_key)
        return participants

    def get_participant(self, participant_id: int) -> Participant:
        participant = self.session.get(Participant, participant_id)
        if not participant:
            raise NotFoundError(f"Participant {participant_id} not found")
        return participant

    def add_participant(self, participant: Participant) -> Participant:
        self.session.add(participant)
        self.session.flush()
        return participant

    def update_participant(self, participant: Participant, **changes) -> Participant:
        for key, value in changes.items():
            setattr(participant, key, value)
        self.session.add(participant)
        self.session.flush()
        return participant

    def find_virtual_participants(
        self,
        tournament_id: int,
        source_match_id: Optional[int] = None,
        source_position: Optional[str] = None,
        source_group_id: Optional[int] = None,
        source_rank: Optional[int] = None,
        pending_only: bool = False,
    ) -> List[Participant]:
        stmt = select(Participant).where(
            Participant.tournament_id == tournament_id,
            Participant.is_virtual == True,  # noqa: E712
        )
        if source_match_id is not None:
            stmt = stmt.where(Participant.source_kind == "match", Participant.source_match_id == source_match_id)
        if source_position is not None:
            stmt = stmt.where(Participant.source_position == source_position)
        if source_group_id is not None:
            stmt = stmt.where(Participant.source_kind == "group", Participant.source_group_id == source_group_id)
        if source_rank is not None:
            stmt = stmt.where(Participant.source_rank == source_rank)
        if pending_only:
            stmt = stmt.where(Participant.resolution_status == "PENDING")
        return list(self.session.exec(stmt.order_by(Participant.id)).all())

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(self, group: TournamentGroup) -> TournamentGroup:
        self.session.add(group)
        self.session.flush()
        return group

    def get_group(self, group_id: int, tournament_id: Optional[int] = None) -> TournamentGroup:
        group = self.session.get(TournamentGroup, group_id)
        if not group or (tournament_id is not None and group.tournament_id != tournament_id):
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def find_groups(self, tournament_id: int) -> List[TournamentGroup]:
        return list(
            self.session.exec(
                select(TournamentGroup)
                .where(TournamentGroup.tournament_id == tournament_id)
                .order_by(TournamentGroup.id)
            ).all()
        )

    def group_members(self, group_id: int) -> List[Participant]:
        members = list(
            self.session.exec(
                select(Participant).where(
                    Participant.group_id == group_id,
                    Participant.is_virtual == False,  # noqa: E712
                )
            ).all()
        )
        members.sort(key=participant_sort_key)
        return members

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def create_matches(self, matches: Sequence[Match]) -> List[Match]:
        for match in matches:
            self.session.add(match)
        self.session.flush()
        return list(matches)

    def get_match(self, match_id: int, tournament_id: Optional[int] = None) -> Match:
        match = self.session.get(Match, match_id)
        if not match or (tournament_id is not None and match.tournament_id != tournament_id):
            raise NotFoundError(f"Match {match_id} not found")
        return match

    def find_matches(
        self,
        tournament_id: int,
        stage: Optional[str] = None,
        group_id: Optional[int] = None,
    ) -> List[Match]:
        stmt = select(Match).where(Match.tournament_id == tournament_id)
        if stage is not None:
            stmt = stmt.where(Match.stage == stage)
        if group_id is not None:
            stmt = stmt.where(Match.group_id == group_id)
        return list(self.session.exec(stmt.order_by(Match.round, Match.match_number, Match.id)).all())

    def find_matches_by_side(self, participant_id: int) -> List[Match]:
        """Matches where the participant sits on either side or is recorded as winner."""
        return list(
            self.session.exec(
                select(Match)
                .where(
                    or_(
                        Match.side_a_participant_id == participant_id,
                        Match.side_b_participant_id == participant_id,
                        Match.winner_participant_id == participant_id,
                    )
                )
                .order_by(Match.id)
            ).all()
        )

    def substitute_participant(self, match: Match, old_id: int, new_id: int) -> None:
        """
        Swap every reference to old_id on a match for new_id.

        Conditional on the version we read: if another writer bumped it in
        the meantime no row matches and the substitution is refused.
        """
        values = {}
        if match.side_a_participant_id == old_id:
            values["side_a_participant_id"] = new_id
        if match.side_b_participant_id == old_id:
            values["side_b_participant_id"] = new_id
        if match.winner_participant_id == old_id:
            values["winner_participant_id"] = new_id
        if not values:
            return

        seen_version = match.version
        values["version"] = seen_version + 1
        result = self.session.execute(
            update(Match)
            .where(Match.id == match.id, Match.version == seen_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise StateError(
                f"Match {match.id} was modified concurrently",
                code="CONCURRENT_MODIFICATION",
            )
        self.session.refresh(match)

    # ------------------------------------------------------------------
    # Stages / rules
    # ------------------------------------------------------------------

    def get_or_create_stage(self, tournament_id: int, stage_type: str, name: str, stage_order: int) -> Stage:
        stage = self.session.exec(
            select(Stage).where(Stage.tournament_id == tournament_id, Stage.stage_type == stage_type)
        ).first()
        if stage:
            return stage
        stage = Stage(tournament_id=tournament_id, stage_type=stage_type, name=name, stage_order=stage_order)
        self.session.add(stage)
        self.session.flush()
        self.session.add(StageRule(stage_id=stage.id))
        self.session.flush()
        return stage

    def find_stages(self, tournament_id: int) -> List[Stage]:
        return list(
            self.session.exec(
                select(Stage).where(Stage.tournament_id == tournament_id).order_by(Stage.stage_order, Stage.id)
            ).all()
        )

    def get_stage(self, stage_id: int) -> Stage:
        stage = self.session.get(Stage, stage_id)
        if not stage:
            raise NotFoundError(f"Stage {stage_id} not found")
        return stage

    def get_stage_rule(self, stage_id: Optional[int]) -> Optional[StageRule]:
        if stage_id is None:
            return None
        return self.session.exec(select(StageRule).where(StageRule.stage_id == stage_id)).first()

    # ------------------------------------------------------------------
    # Draws
    # ------------------------------------------------------------------

    def add_draw(self, draw: Draw) -> Draw:
        self.session.add(draw)
        self.session.flush()
        return draw

    def get_draw(self, draw_id: int, tournament_id: Optional[int] = None) -> Draw:
        draw = self.session.get(Draw, draw_id)
        if not draw or (tournament_id is not None and draw.tournament_id != tournament_id):
            raise NotFoundError(f"Draw {draw_id} not found")
        return draw

    def find_draws(self, tournament_id: int) -> List[Draw]:
        return list(
            self.session.exec(select(Draw).where(Draw.tournament_id == tournament_id).order_by(Draw.id)).all()
        )
