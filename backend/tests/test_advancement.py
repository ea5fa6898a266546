"""
Advancement Resolver: placeholder substitution from match results and
group standings.
"""

import pytest
from sqlalchemy import update
from sqlmodel import select

from pingclub.errors import AlreadyResolvedError, InvalidInputError, StateError
from pingclub.models.match import Match
from pingclub.models.participant import Participant
from pingclub.services.advancement_service import AdvancementResolver
from pingclub.services.bracket_service import BracketGenerator, BracketOptions, BracketSourceType
from pingclub.services.group_stage import GroupOptions, GroupStageGenerator
from pingclub.services.match_results import MatchResultService
from pingclub.services.standings import StandingsService

TWO_NIL = [{"side_a": 11, "side_b": 6}, {"side_a": 11, "side_b": 8}]


def _ids_by_name(session, tournament_id):
    players = session.exec(
        select(Participant).where(Participant.tournament_id == tournament_id, Participant.is_virtual == False)  # noqa: E712
    ).all()
    return {p.display_name: p.id for p in players}


def _match(matches, rnd, number):
    return next(m for m in matches if m.round == rnd and m.match_number == number and not m.is_third_place)


@pytest.fixture(name="six_player_bracket")
def six_player_bracket_fixture(session, repo, make_tournament):
    """size-8 bracket: QF1 and QF4 are byes for seeds 1 and 2"""
    t = make_tournament(6)
    result = BracketGenerator(repo).generate_bracket(t.id, BracketOptions())
    return t, {(m.round, m.match_number): m.id for m in result.matches}, _ids_by_name(session, t.id)


class TestMatchPropagation:
    def test_winner_fills_only_the_referencing_side(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        placeholder_id = repo.get_match(ids[(2, 1)]).side_b_participant_id
        downstream = [ids[(2, 1)], ids[(2, 2)], ids[(3, 1)]]
        # byes already moved seeds 1 and 2 into the semifinals
        before = {mid: repo.get_match(mid).version for mid in downstream}
        sides_before = {mid: repo.get_match(mid).side_ids() for mid in downstream}

        outcome = MatchResultService(repo).record_result(
            t.id, ids[(1, 2)], "COMPLETED", winner_participant_id=players["Player 4"]
        )

        assert outcome.advanced_match_ids == [ids[(2, 1)]]
        semi_1 = repo.get_match(ids[(2, 1)])
        assert semi_1.side_ids() == [players["Player 1"], players["Player 4"]]
        assert semi_1.version == before[ids[(2, 1)]] + 1

        for mid in (ids[(2, 2)], ids[(3, 1)]):
            unchanged = repo.get_match(mid)
            assert unchanged.version == before[mid]
            assert unchanged.side_ids() == sides_before[mid]
        final = repo.get_match(ids[(3, 1)])
        assert repo.get_participant(final.side_a_participant_id).is_virtual

        placeholder = repo.get_participant(placeholder_id)
        assert placeholder.resolution_status == "RESOLVED"
        assert placeholder.resolved_participant_id == players["Player 4"]
        assert placeholder.resolved_at is not None

    def test_second_resolution_refused(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        placeholder_id = repo.get_match(ids[(2, 1)]).side_b_participant_id
        resolver = AdvancementResolver(repo)
        resolver.replace(placeholder_id, players["Player 4"])

        with pytest.raises(AlreadyResolvedError) as exc:
            resolver.replace(placeholder_id, players["Player 5"])
        assert exc.value.details["resolved_participant_id"] == players["Player 4"]
        assert repo.get_match(ids[(2, 1)]).side_b_participant_id == players["Player 4"]

    def test_virtual_candidate_rejected(self, repo, six_player_bracket):
        _, ids, _ = six_player_bracket
        semi_1 = repo.get_match(ids[(2, 1)])
        semi_2 = repo.get_match(ids[(2, 2)])
        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).replace(semi_1.side_b_participant_id, semi_2.side_a_participant_id)
        assert exc.value.code == "CANDIDATE_IS_VIRTUAL"

    def test_real_participant_is_not_a_placeholder(self, repo, six_player_bracket):
        _, _, players = six_player_bracket
        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).replace(players["Player 3"], players["Player 4"])
        assert exc.value.code == "NOT_VIRTUAL"

    def test_participant_from_another_tournament_rejected(self, session, repo, make_tournament, six_player_bracket):
        _, ids, _ = six_player_bracket
        other = make_tournament(2, name="Other Club")
        outsider = next(iter(_ids_by_name(session, other.id).values()))
        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).replace(repo.get_match(ids[(2, 1)]).side_b_participant_id, outsider)
        assert exc.value.code == "WRONG_TOURNAMENT"

    def test_self_play_refused(self, repo, six_player_bracket):
        _, ids, players = six_player_bracket
        semi_1 = repo.get_match(ids[(2, 1)])
        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).replace(semi_1.side_b_participant_id, players["Player 1"])
        assert exc.value.code == "SELF_PLAY"

    def test_final_filled_after_semifinal(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        results = MatchResultService(repo)
        results.record_result(t.id, ids[(1, 2)], "COMPLETED", winner_participant_id=players["Player 4"])
        outcome = results.record_result(t.id, ids[(2, 1)], "COMPLETED", game_scores=TWO_NIL)

        assert outcome.advanced_match_ids == [ids[(3, 1)]]
        assert repo.get_match(ids[(3, 1)]).side_a_participant_id == players["Player 1"]


class TestManualAdvance:
    def test_advance_before_result(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        updated = AdvancementResolver(repo).advance(t.id, ids[(1, 2)], "winner", players["Player 5"])
        assert updated == [ids[(2, 1)]]
        assert repo.get_match(ids[(2, 1)]).side_b_participant_id == players["Player 5"]

    def test_participant_must_have_played_the_match(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).advance(t.id, ids[(1, 2)], "winner", players["Player 3"])
        assert exc.value.code == "NOT_A_SIDE"

    def test_must_match_recorded_result(self, session, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        qf_3 = repo.get_match(ids[(1, 3)])
        qf_3.winner_participant_id = players["Player 3"]
        session.add(qf_3)
        session.commit()

        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).advance(t.id, ids[(1, 3)], "winner", players["Player 6"])
        assert exc.value.code == "RESULT_MISMATCH"

    def test_no_matching_source(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        # no third place match, so nothing is fed by a quarterfinal loser
        with pytest.raises(InvalidInputError) as exc:
            AdvancementResolver(repo).advance(t.id, ids[(1, 2)], "loser", players["Player 5"])
        assert exc.value.code == "NO_MATCHING_SOURCE"

    def test_unknown_position(self, repo, six_player_bracket):
        t, ids, players = six_player_bracket
        with pytest.raises(InvalidInputError):
            AdvancementResolver(repo).advance(t.id, ids[(1, 2)], "runner_up", players["Player 5"])


class TestGroupHandoff:
    def _two_stage(self, repo, make_tournament, players, groups, advancing):
        t = make_tournament(players)
        created = GroupStageGenerator(repo).auto_generate_groups(
            t.id, GroupOptions(number_of_groups=groups, participants_advancing=advancing)
        )
        BracketGenerator(repo).generate_bracket(t.id, BracketOptions(source_type=BracketSourceType.GROUP_RANK))
        return t, created

    def _play_group(self, repo, tournament_id, group_id):
        GroupStageGenerator(repo).generate_matches(tournament_id, group_id)
        results = MatchResultService(repo)
        outcome = None
        for m in repo.find_matches(tournament_id, group_id=group_id):
            outcome = results.record_result(tournament_id, m.id, "COMPLETED", game_scores=TWO_NIL)
        return outcome

    def test_completed_group_resolves_its_qualifiers(self, repo, make_tournament):
        t, (group_a, group_b) = self._two_stage(repo, make_tournament, 8, 2, 2)

        outcome = self._play_group(repo, t.id, group_a.id)
        assert outcome.group_completed

        standings = StandingsService(repo).get_standings(t.id, group_a.id)
        semi_1, semi_2 = repo.find_matches(t.id, stage="FINAL")[:2]
        assert semi_1.side_a_participant_id == standings.participant_at_rank(1)
        assert semi_2.side_b_participant_id == standings.participant_at_rank(2)

        # group B has not played yet
        assert repo.get_participant(semi_1.side_b_participant_id).is_virtual
        pending = repo.find_virtual_participants(t.id, source_group_id=group_b.id, pending_only=True)
        assert len(pending) == 2

    def test_incomplete_group_refused(self, repo, make_tournament):
        t, (group_a, _) = self._two_stage(repo, make_tournament, 8, 2, 2)
        with pytest.raises(StateError) as exc:
            AdvancementResolver(repo).resolve_group_qualifiers(t.id, group_a.id)
        assert exc.value.code == "GROUP_NOT_COMPLETED"

    def test_repeat_handoff_skips_resolved(self, repo, make_tournament):
        t, (group_a, _) = self._two_stage(repo, make_tournament, 8, 2, 2)
        self._play_group(repo, t.id, group_a.id)

        report = AdvancementResolver(repo).resolve_group_qualifiers(t.id, group_a.id)
        assert report["resolved"] == []
        assert len(report["skipped"]) == 2

    def test_bye_cascades_into_next_round(self, repo, make_tournament):
        # three group winners in a 4-slot bracket: 1st Group A gets the bye
        t, (group_a, _, _) = self._two_stage(repo, make_tournament, 9, 3, 1)
        bye = repo.find_matches(t.id, stage="FINAL")[0]
        assert bye.is_bye
        assert repo.get_participant(bye.winner_participant_id).is_virtual

        self._play_group(repo, t.id, group_a.id)

        winner = StandingsService(repo).get_standings(t.id, group_a.id).participant_at_rank(1)
        bye = repo.get_match(bye.id)
        final = next(m for m in repo.find_matches(t.id, stage="FINAL") if m.round == 2)
        assert bye.side_a_participant_id == winner
        assert bye.winner_participant_id == winner
        assert final.side_a_participant_id == winner


class TestConcurrency:
    def test_stale_version_refused(self, session, repo, six_player_bracket):
        _, ids, players = six_player_bracket
        semi_1 = repo.get_match(ids[(2, 1)])
        placeholder_id = semi_1.side_b_participant_id

        # another writer bumps the row behind this session's back
        session.execute(
            update(Match)
            .where(Match.id == semi_1.id)
            .values(version=Match.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(StateError) as exc:
            repo.substitute_participant(semi_1, placeholder_id, players["Player 4"])
        assert exc.value.code == "CONCURRENT_MODIFICATION"
