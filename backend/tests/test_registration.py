"""
Participant registry: adding, editing, seeding, locking.
"""

import pytest
from sqlmodel import select

from pingclub.errors import InvalidInputError, StateError
from pingclub.models.participant import Participant
from pingclub.services.group_stage import GroupOptions, GroupStageGenerator
from pingclub.services.registration import ParticipantRegistry


class TestAddAndEdit:
    def test_add_participants(self, repo, make_tournament):
        t = make_tournament(0, locked=False)
        created = ParticipantRegistry(repo).add_participants(
            t.id, [{"display_name": " Ana "}, {"display_name": "Bo", "rating": 1710.0, "seed": 1}]
        )
        assert [p.display_name for p in created] == ["Ana", "Bo"]
        assert created[0].status == "REGISTERED"
        assert created[1].rating == 1710.0
        assert not any(p.is_virtual for p in created)

    def test_blank_name_rejects_whole_batch(self, session, repo, make_tournament):
        t = make_tournament(0, locked=False)
        with pytest.raises(InvalidInputError):
            ParticipantRegistry(repo).add_participants(t.id, [{"display_name": "Ana"}, {"display_name": "  "}])
        assert session.exec(select(Participant)).all() == []

    def test_locked_list_refuses_additions(self, repo, make_tournament):
        t = make_tournament(2)
        with pytest.raises(StateError) as exc:
            ParticipantRegistry(repo).add_participants(t.id, [{"display_name": "Late"}])
        assert exc.value.code == "PARTICIPANTS_LOCKED"

    def test_cancelled_tournament_is_read_only(self, repo, make_tournament):
        t = make_tournament(0, locked=False, status="CANCELLED")
        with pytest.raises(StateError) as exc:
            ParticipantRegistry(repo).add_participants(t.id, [{"display_name": "Ana"}])
        assert exc.value.code == "TOURNAMENT_CLOSED"

    def test_update_participant(self, session, repo, make_tournament):
        t = make_tournament(2, locked=False)
        target = session.exec(select(Participant).where(Participant.seed == 2)).one()
        updated = ParticipantRegistry(repo).update_participant(
            t.id, target.id, {"rating": 1234.0, "status": "WITHDRAWN", "is_virtual": True}
        )
        assert updated.rating == 1234.0
        assert updated.status == "WITHDRAWN"
        assert updated.is_virtual is False

    def test_unknown_status_rejected(self, session, repo, make_tournament):
        t = make_tournament(2, locked=False)
        target = session.exec(select(Participant)).first()
        with pytest.raises(InvalidInputError):
            ParticipantRegistry(repo).update_participant(t.id, target.id, {"status": "BANNED"})


class TestSeeding:
    def test_seed_by_rating(self, repo, make_tournament):
        t = make_tournament(3, locked=False, ratings=[1500.0, 1800.0, 1650.0])
        ordered = ParticipantRegistry(repo).apply_seeding(t.id, "SEEDED_BY_RATING")
        assert [(p.display_name, p.seed) for p in ordered] == [("Player 2", 1), ("Player 3", 2), ("Player 1", 3)]

    def test_random_seeding_is_reproducible(self, repo, make_tournament):
        first = make_tournament(6, locked=False, name="First")
        second = make_tournament(6, locked=False, name="Second")
        registry = ParticipantRegistry(repo)
        a = [p.display_name for p in registry.apply_seeding(first.id, "RANDOM", rng_seed=99)]
        b = [p.display_name for p in registry.apply_seeding(second.id, "RANDOM", rng_seed=99)]
        assert a == b


class TestLocking:
    def test_lock_needs_two_active(self, session, repo, make_tournament):
        t = make_tournament(2, locked=False)
        withdrawn = session.exec(select(Participant).where(Participant.seed == 2)).one()
        withdrawn.status = "WITHDRAWN"
        session.add(withdrawn)
        session.commit()

        with pytest.raises(StateError) as exc:
            ParticipantRegistry(repo).lock(t.id)
        assert exc.value.code == "NOT_ENOUGH_PARTICIPANTS"

    def test_lock_and_unlock(self, repo, make_tournament):
        t = make_tournament(4, locked=False)
        registry = ParticipantRegistry(repo)
        assert registry.lock(t.id).participants_locked is True
        assert registry.unlock(t.id).participants_locked is False

    def test_unlock_refused_after_generation(self, repo, make_tournament):
        t = make_tournament(4)
        GroupStageGenerator(repo).auto_generate_groups(t.id, GroupOptions(number_of_groups=1))
        with pytest.raises(StateError) as exc:
            ParticipantRegistry(repo).unlock(t.id)
        assert exc.value.code == "GENERATION_EXISTS"
