"""
HTTP surface: routing, error envelope, and the main workflows end to end.
"""

import pytest


def _tournament(client, names, lock=True, **fields):
    response = client.post("/api/tournaments", json={"name": "Spring Open", **fields})
    assert response.status_code == 201
    tid = response.json()["id"]
    response = client.post(
        f"/api/tournaments/{tid}/participants/bulk",
        json={"participants": [{"display_name": n, "seed": i} for i, n in enumerate(names, start=1)]},
    )
    assert response.status_code == 201
    if lock:
        assert client.post(f"/api/tournaments/{tid}/participants/lock").status_code == 200
    return tid, {p["display_name"]: p["id"] for p in response.json()}


class TestBasics:
    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_and_get_tournament(self, client):
        created = client.post("/api/tournaments", json={"name": "  Club Night  "}).json()
        assert created["name"] == "Club Night"
        assert created["status"] == "DRAFT"
        assert created["participants_locked"] is False

        fetched = client.get(f"/api/tournaments/{created['id']}").json()
        assert fetched["id"] == created["id"]
        assert [t["id"] for t in client.get("/api/tournaments").json()] == [created["id"]]

    def test_blank_name_rejected(self, client):
        assert client.post("/api/tournaments", json={"name": "  "}).status_code == 422

    def test_not_found_envelope(self, client):
        response = client.get("/api/tournaments/999")
        assert response.status_code == 404
        assert response.json() == {"detail": "Tournament 999 not found", "code": "NOT_FOUND"}

    def test_status_only_cancellable_by_hand(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo"])
        response = client.patch(f"/api/tournaments/{tid}", json={"status": "COMPLETED"})
        assert response.status_code == 400
        assert response.json()["code"] == "STATUS_NOT_SETTABLE"

        response = client.patch(f"/api/tournaments/{tid}", json={"status": "CANCELLED"})
        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"


class TestParticipants:
    def test_locked_list_rejects_additions(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo"])
        response = client.post(f"/api/tournaments/{tid}/participants", json={"display_name": "Cy"})
        assert response.status_code == 409
        assert response.json()["code"] == "PARTICIPANTS_LOCKED"

    def test_seed_and_list(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo", "Cy"], lock=False)
        players = client.get(f"/api/tournaments/{tid}/participants").json()
        client.patch(f"/api/tournaments/{tid}/participants/{players[0]['id']}", json={"rating": 1500})
        client.patch(f"/api/tournaments/{tid}/participants/{players[1]['id']}", json={"rating": 1900})
        client.patch(f"/api/tournaments/{tid}/participants/{players[2]['id']}", json={"rating": 1700})

        response = client.post(f"/api/tournaments/{tid}/participants/seed", json={"method": "SEEDED_BY_RATING"})
        assert response.status_code == 200
        assert [(p["display_name"], p["seed"]) for p in response.json()] == [("Bo", 1), ("Cy", 2), ("Ana", 3)]

    def test_lock_requires_two(self, client):
        tid, _ = _tournament(client, ["Solo"], lock=False)
        response = client.post(f"/api/tournaments/{tid}/participants/lock")
        assert response.status_code == 409
        assert response.json()["code"] == "NOT_ENOUGH_PARTICIPANTS"


class TestGroupFlow:
    def test_generate_groups_matches_and_standings(self, client):
        tid, _ = _tournament(client, [f"P{i}" for i in range(1, 7)])

        response = client.post(f"/api/tournaments/{tid}/groups/generate", json={"number_of_groups": 2})
        assert response.status_code == 201
        groups = response.json()
        assert [len(g["members"]) for g in groups] == [3, 3]

        response = client.post(f"/api/tournaments/{tid}/groups/matches", json={})
        assert response.status_code == 201
        assert len(response.json()) == 6

        group_id = groups[0]["id"]
        for m in client.get(f"/api/tournaments/{tid}/matches", params={"group_id": group_id}).json():
            response = client.patch(
                f"/api/tournaments/{tid}/matches/{m['id']}",
                json={"status": "COMPLETED", "game_scores": [{"side_a": 11, "side_b": 3}, {"side_a": 11, "side_b": 4}]},
            )
            assert response.status_code == 200
        assert response.json()["group_completed"] is True

        standings = client.get(f"/api/tournaments/{tid}/groups/{group_id}/standings").json()
        assert standings["status"] == "COMPLETED"
        assert [e["rank"] for e in standings["entries"]] == [1, 2, 3]
        assert sum(e["is_advancing"] for e in standings["entries"]) == 2

    def test_generation_requires_lock(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo", "Cy", "Di"], lock=False)
        response = client.post(f"/api/tournaments/{tid}/groups/generate", json={"number_of_groups": 1})
        assert response.status_code == 409
        assert response.json() == {
            "detail": "Participant list must be locked before generating groups or brackets",
            "code": "PARTICIPANTS_NOT_LOCKED",
        }

    def test_qualifiers_only_after_completion(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo", "Cy", "Di"])
        group_id = client.post(f"/api/tournaments/{tid}/groups/generate", json={"number_of_groups": 1}).json()[0]["id"]
        response = client.post(f"/api/tournaments/{tid}/groups/{group_id}/advance-qualifiers")
        assert response.status_code == 409
        assert response.json()["code"] == "GROUP_NOT_COMPLETED"


class TestBracketFlow:
    def test_knockout_to_champion(self, client):
        tid, ids = _tournament(client, ["Ana", "Bo", "Cy", "Di"])

        preview = client.post(f"/api/tournaments/{tid}/bracket/preview", json={}).json()
        assert preview["total_matches"] == 3
        assert client.get(f"/api/tournaments/{tid}/matches").json() == []

        response = client.post(f"/api/tournaments/{tid}/bracket", json={})
        assert response.status_code == 201
        body = response.json()
        assert (body["total_rounds"], body["total_matches"]) == (2, 3)
        semi_1, semi_2, final = body["matches"]
        assert (semi_1["side_a_participant_id"], semi_1["side_b_participant_id"]) == (ids["Ana"], ids["Di"])

        response = client.patch(
            f"/api/tournaments/{tid}/matches/{semi_1['id']}",
            json={"status": "COMPLETED", "winner_participant_id": ids["Di"]},
        )
        assert response.json()["advanced_match_ids"] == [final["id"]]

        response = client.post(
            f"/api/tournaments/{tid}/matches/{semi_2['id']}/advance",
            json={"real_participant_id": ids["Bo"], "position": "winner"},
        )
        assert response.status_code == 200
        assert response.json() == {"updated_matches": [final["id"]]}

        # recording the result afterwards finds the slot already filled
        response = client.patch(
            f"/api/tournaments/{tid}/matches/{semi_2['id']}",
            json={"status": "COMPLETED", "winner_participant_id": ids["Bo"]},
        )
        assert response.json()["advanced_match_ids"] == []

        final = client.get(f"/api/tournaments/{tid}/matches/{final['id']}").json()
        assert (final["side_a_participant_id"], final["side_b_participant_id"]) == (ids["Di"], ids["Bo"])

        response = client.patch(
            f"/api/tournaments/{tid}/matches/{final['id']}",
            json={"status": "COMPLETED", "winner_participant_id": ids["Bo"]},
        )
        assert response.json()["tournament_completed"] is True
        assert client.get(f"/api/tournaments/{tid}").json()["status"] == "COMPLETED"

        view = client.get(f"/api/tournaments/{tid}/bracket").json()
        assert [r["name"] for r in view["rounds"]] == ["Semi Final", "Final"]

    def test_second_bracket_conflicts(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo"])
        assert client.post(f"/api/tournaments/{tid}/bracket", json={}).status_code == 201
        response = client.post(f"/api/tournaments/{tid}/bracket", json={})
        assert response.status_code == 409
        assert response.json()["code"] == "BRACKET_EXISTS"

    def test_invalid_size(self, client):
        tid, _ = _tournament(client, ["Ana", "Bo", "Cy"])
        response = client.post(f"/api/tournaments/{tid}/bracket", json={"size": 6})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_BRACKET_SIZE"

    def test_already_resolved_conflict(self, client):
        tid, ids = _tournament(client, ["Ana", "Bo", "Cy", "Di"])
        semi_1 = client.post(f"/api/tournaments/{tid}/bracket", json={}).json()["matches"][0]
        url = f"/api/tournaments/{tid}/matches/{semi_1['id']}/advance"
        assert client.post(url, json={"real_participant_id": ids["Ana"]}).status_code == 200
        response = client.post(url, json={"real_participant_id": ids["Di"]})
        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_RESOLVED"


class TestStageRules:
    def test_preset_lifecycle(self, client):
        body = {
            "name": "Club points",
            "win_points": 2,
            "loss_points": 1,
            "tie_break_order": ["GAME_SET_DIFFERENCE", "WINS_VS_TIED"],
        }
        response = client.post("/api/stage-rule-presets", json=body)
        assert response.status_code == 201
        preset = response.json()
        assert preset["win_points"] == 2
        assert preset["bye_points"] == 1

        duplicate = client.post("/api/stage-rule-presets", json=body)
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "PRESET_EXISTS"

        tid, _ = _tournament(client, ["Ana", "Bo", "Cy", "Di"])
        client.post(f"/api/tournaments/{tid}/groups/generate", json={"number_of_groups": 1})
        stage = client.get(f"/api/tournaments/{tid}/stages").json()[0]
        assert stage["stage_type"] == "GROUP"

        rule = client.put(f"/api/stages/{stage['id']}/rules", json={"preset_id": preset["id"], "draw_points": 1}).json()
        assert (rule["win_points"], rule["loss_points"], rule["draw_points"]) == (2, 1, 1)
        assert rule["tie_break_order"] == ["GAME_SET_DIFFERENCE", "WINS_VS_TIED"]

        assert client.delete(f"/api/stage-rule-presets/{preset['id']}").status_code == 204
        assert client.get(f"/api/stage-rule-presets/{preset['id']}").status_code == 404
        # the stage keeps its copy
        assert client.get(f"/api/stages/{stage['id']}/rules").json()["win_points"] == 2

    def test_inactive_preset_refused(self, client):
        preset = client.post("/api/stage-rule-presets", json={"name": "Old", "is_active": False}).json()
        tid, _ = _tournament(client, ["Ana", "Bo"])
        client.post(f"/api/tournaments/{tid}/groups/generate", json={"number_of_groups": 1})
        stage = client.get(f"/api/tournaments/{tid}/stages").json()[0]

        response = client.put(f"/api/stages/{stage['id']}/rules", json={"preset_id": preset["id"]})
        assert response.status_code == 409
        assert response.json()["code"] == "PRESET_INACTIVE"

    @pytest.mark.parametrize("order", [["COIN_TOSS"], ["WINS_VS_TIED", "WINS_VS_TIED"]])
    def test_bad_tie_break_order(self, client, order):
        response = client.post("/api/stage-rule-presets", json={"name": "Bad", "tie_break_order": order})
        assert response.status_code == 400
        assert response.json()["code"] == "UNKNOWN_TIE_BREAK"


class TestDraws:
    def test_draw_lifecycle(self, client):
        tid, _ = _tournament(client, [f"P{i}" for i in range(1, 9)])
        response = client.post(
            f"/api/tournaments/{tid}/draws",
            json={"draw_type": "GROUP_ASSIGNMENT", "payload": {"number_of_groups": 2, "distribution": "SNAKE"}},
        )
        assert response.status_code == 201
        draw = response.json()
        assert draw["status"] == "DRAFT"
        assert client.get(f"/api/tournaments/{tid}/groups").json() == []

        applied = client.post(f"/api/draws/{draw['id']}/apply").json()
        assert applied["status"] == "APPLIED"
        groups = client.get(f"/api/tournaments/{tid}/groups").json()
        assert [g["id"] for g in groups] == applied["result"]["group_ids"]

        response = client.post(f"/api/draws/{draw['id']}/cancel")
        assert response.status_code == 409
        assert response.json()["code"] == "DRAW_APPLIED"
        assert [d["id"] for d in client.get(f"/api/tournaments/{tid}/draws").json()] == [draw["id"]]

    @pytest.mark.parametrize(
        "draw_type,payload",
        [
            ("GROUP_ASSIGNMENT", {"number_of_groups": "two"}),
            ("GROUP_ASSIGNMENT", {"distribution": "ZIGZAG"}),
            ("GROUP_ASSIGNMENT", {"groups": 2}),
            ("KNOCKOUT_PAIRING", {"size": "eight"}),
            ("KNOCKOUT_PAIRING", {"pairs": "1-2"}),
        ],
    )
    def test_malformed_payload_is_400(self, client, draw_type, payload):
        tid, _ = _tournament(client, [f"P{i}" for i in range(1, 9)])
        response = client.post(f"/api/tournaments/{tid}/draws", json={"draw_type": draw_type, "payload": payload})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_DRAW_PAYLOAD"
        assert body["details"]["errors"]
        assert client.get(f"/api/tournaments/{tid}/draws").json() == []

    def test_payload_stored_with_defaults(self, client):
        tid, _ = _tournament(client, [f"P{i}" for i in range(1, 9)])
        draw = client.post(
            f"/api/tournaments/{tid}/draws",
            json={"draw_type": "KNOCKOUT_PAIRING", "payload": {"size": "8", "source_type": "RANDOM"}},
        ).json()
        assert draw["payload"]["size"] == 8
        assert draw["payload"]["seed_order"] == "STANDARD"
        assert draw["payload"]["rng_seed"] is not None

    def test_unknown_draw_is_404(self, client):
        assert client.get("/api/draws/42").status_code == 404
