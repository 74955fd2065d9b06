"""HTTP surface tests.

Covers the JSON endpoints end to end:
- POST /auth/register, POST /auth/login
- /api/habits: create, list, completions, state, stats, history
- /api/challenges: list, create, join, tag, progress, leave
- /api/social: leaderboard, privacy, friends
- CSRF header enforcement on writes
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

pytestmark = pytest.mark.integration

from habitpulse.domains.habits.models.habit_models import CompletionEvent
from habitpulse.extensions import db

MONDAY = "2026-03-02T12:00:00"
TUESDAY = "2026-03-03T12:00:00"


def _post_completion(client, headers, habit_id, delta=1, ts=MONDAY):
    return client.post(
        f"/api/habits/{habit_id}/completions",
        json={"delta": delta, "client_timestamp": ts},
        headers=headers,
    )


# ==================== Auth ====================


def test_register_then_login_returns_tokens(client):
    payload = {"email": "new@example.com", "password": "secret123", "full_name": "New", "timezone": "UTC"}

    resp = client.post("/auth/register", json=payload)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "new@example.com"
    assert body["access_token"] and body["csrf_token"]

    resp = client.post("/auth/login", json={"email": "new@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.get_json()["access_token"]


def test_register_duplicate_email_conflicts(client, make_user):
    make_user("taken")

    resp = client.post("/auth/register", json={"email": "taken@example.com", "password": "secret123"})

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "email_already_exists"


def test_login_with_bad_password_is_unauthorized(client, make_user):
    make_user("sam")

    resp = client.post("/auth/login", json={"email": "sam@example.com", "password": "wrong-pass"})

    assert resp.status_code == 401


def test_refresh_issues_access_token_with_current_roles(app, client, make_user):
    from flask_jwt_extended import decode_token

    user = make_user("rita")
    tokens = client.post("/auth/login", json={"email": "rita@example.com", "password": "secret123"}).get_json()

    resp = client.post("/auth/refresh", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})

    assert resp.status_code == 200
    claims = decode_token(resp.get_json()["access_token"])
    assert claims["sub"] == str(user.id)
    assert "habits:write" in claims["roles"]
    assert claims["tz"] == "UTC"


def test_refresh_rejects_access_token(client, make_user):
    tokens = client.post(
        "/auth/register", json={"email": "ari@example.com", "password": "secret123"}
    ).get_json()

    resp = client.post("/auth/refresh", headers={"Authorization": f"Bearer {tokens['access_token']}"})

    assert resp.status_code == 422


def test_protected_endpoint_requires_jwt(client):
    assert client.get("/api/habits").status_code == 401


# ==================== Habits ====================


def test_create_and_list_habits(client, make_user, auth_for):
    user = make_user()
    headers = auth_for(user)

    resp = client.post(
        "/api/habits",
        json={"name": "Water", "kind": "counter", "target_count": 8},
        headers=headers,
    )
    assert resp.status_code == 201

    resp = client.get("/api/habits", headers=headers)
    habits = resp.get_json()["habits"]
    assert [h["name"] for h in habits] == ["Water"]
    assert habits[0]["target_count"] == 8
    assert habits[0]["today"]["current_count"] == 0
    assert habits[0]["current_streak"] == 0


def test_create_habit_rejects_bad_schedule(client, make_user, auth_for):
    user = make_user()

    resp = client.post("/api/habits", json={"name": "Gym", "schedule_days": [7]}, headers=auth_for(user))

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"


def test_create_habit_with_duplicate_name_conflicts(client, make_user, make_habit, auth_for):
    user = make_user()
    make_habit(user, "Read")

    resp = client.post("/api/habits", json={"name": "Read"}, headers=auth_for(user))

    assert resp.status_code == 409


def test_completion_returns_updated_state(client, make_user, make_habit, auth_for):
    user = make_user()
    habit = make_habit(user, "Water", kind="counter", target_count=2)

    resp = _post_completion(client, auth_for(user), habit.id)

    assert resp.status_code == 201
    state = resp.get_json()["state"]
    assert state == {
        "habit_id": habit.id,
        "day": "2026-03-02",
        "current_count": 1,
        "target": 2,
        "is_complete": False,
        "event_count": 1,
    }


def test_decrement_at_zero_conflicts_without_writing(client, make_user, make_habit, auth_for):
    user = make_user()
    habit = make_habit(user)

    resp = _post_completion(client, auth_for(user), habit.id, delta=-1)

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "negative_count"


def test_habit_writes_need_the_habits_write_role(client, make_user, make_habit, auth_for):
    user = make_user("reader")
    habit = make_habit(user)
    user.roles = [role for role in user.roles if role.name != "habits:write"]
    db.session.commit()
    headers = auth_for(user)

    resp = _post_completion(client, headers, habit.id)

    assert resp.status_code == 403
    assert resp.get_json()["missing_roles"] == ["habits:write"]
    assert client.post("/api/habits", json={"name": "Walk"}, headers=headers).status_code == 403
    assert client.get("/api/habits", headers=headers).status_code == 200
    assert CompletionEvent.query.count() == 0


def test_completion_dated_in_the_future_conflicts(client, make_user, make_habit, auth_for):
    user = make_user()
    habit = make_habit(user)
    next_month = (datetime.utcnow() + timedelta(days=30)).isoformat()

    resp = _post_completion(client, auth_for(user), habit.id, ts=next_month)

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "future_timestamp"
    assert CompletionEvent.query.count() == 0
    assert CompletionEvent.query.count() == 0


def test_completion_on_foreign_habit_is_not_found(client, make_user, make_habit, auth_for):
    owner = make_user("owner")
    intruder = make_user("intruder")
    habit = make_habit(owner)

    resp = _post_completion(client, auth_for(intruder), habit.id)

    assert resp.status_code == 404


def test_completion_with_invalid_delta_is_bad_request(client, make_user, make_habit, auth_for):
    user = make_user()
    habit = make_habit(user)

    resp = _post_completion(client, auth_for(user), habit.id, delta=3)

    assert resp.status_code == 400


def test_completion_on_deleted_habit_conflicts(client, make_user, make_habit, auth_for):
    user = make_user()
    habit = make_habit(user)
    headers = auth_for(user)
    assert client.delete(f"/api/habits/{habit.id}", headers=headers).status_code == 200

    resp = _post_completion(client, headers, habit.id)

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "habit_deleted"


def test_state_stats_and_history_read_the_ledger(client, make_user, make_habit, complete, auth_for):
    user = make_user()
    habit = make_habit(user)
    complete(habit, date(2026, 3, 2))
    complete(habit, date(2026, 3, 3))
    headers = auth_for(user)

    state = client.get(f"/api/habits/{habit.id}/state?day=2026-03-03", headers=headers).get_json()["state"]
    stats = client.get(f"/api/habits/{habit.id}/stats?day=2026-03-03", headers=headers).get_json()["stats"]
    history = client.get(
        f"/api/habits/{habit.id}/history?start=2026-03-01&end=2026-03-03", headers=headers
    ).get_json()["history"]

    assert state["is_complete"] is True
    assert stats["current_streak"] == 2
    assert [(h["day"], h["is_complete"]) for h in history] == [
        ("2026-03-03", True),
        ("2026-03-02", True),
        ("2026-03-01", False),
    ]


def test_state_with_malformed_day_is_bad_request(client, make_user, make_habit, auth_for):
    user = make_user()
    habit = make_habit(user)

    resp = client.get(f"/api/habits/{habit.id}/state?day=yesterday", headers=auth_for(user))

    assert resp.status_code == 400


# ==================== Challenges ====================


def test_challenge_lifecycle_over_http(client, make_user, make_habit, complete, auth_for):
    host = make_user("host")
    runner = make_user("runner")
    habit = make_habit(runner, "Run")
    host_headers, runner_headers = auth_for(host), auth_for(runner)

    resp = client.post(
        "/api/challenges",
        json={"title": "Spring Miles", "start_day": "2026-03-01"},
        headers=host_headers,
    )
    assert resp.status_code == 201
    challenge_id = resp.get_json()["challenge_id"]

    assert client.post(f"/api/challenges/{challenge_id}/join", headers=runner_headers).status_code == 200
    resp = client.post(
        f"/api/challenges/{challenge_id}/habits",
        json={"habit_id": habit.id, "weight": 1.5},
        headers=runner_headers,
    )
    assert resp.status_code == 201

    detail = client.get(f"/api/challenges/{challenge_id}", headers=host_headers).get_json()["challenge"]
    assert detail["participant_count"] == 1
    assert detail["habit_count"] == 1

    resp = client.get(f"/api/challenges/{challenge_id}/progress", headers=runner_headers)
    progress = resp.get_json()["progress"]
    assert progress["is_member"] is True
    assert progress["user_id"] == runner.id

    assert client.post(f"/api/challenges/{challenge_id}/leave", headers=runner_headers).status_code == 200
    assert client.post(f"/api/challenges/{challenge_id}/leave", headers=runner_headers).status_code == 409


def test_challenge_with_inverted_window_is_rejected(client, make_user, auth_for):
    user = make_user()

    resp = client.post(
        "/api/challenges",
        json={"title": "Backwards", "start_day": "2026-03-10", "end_day": "2026-03-01"},
        headers=auth_for(user),
    )

    assert resp.status_code == 400


def test_challenges_can_be_discovered_and_filtered(client, make_user, auth_for):
    host = make_user("host")
    seeker = make_user("seeker")
    headers = auth_for(host)
    for title, start, end in (
        ("Spring Miles", "2026-03-01", None),
        ("Winter Reading", "2026-01-01", "2026-01-31"),
    ):
        client.post("/api/challenges", json={"title": title, "start_day": start, "end_day": end}, headers=headers)

    resp = client.get("/api/challenges?status=active&as_of=2026-03-10", headers=auth_for(seeker))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["total"] == 1
    assert body["challenges"][0]["title"] == "Spring Miles"
    assert body["challenges"][0]["participant_count"] == 0

    mine = client.get("/api/challenges?mine=true", headers=auth_for(seeker)).get_json()
    assert mine["challenges"] == [] and mine["total"] == 0

    assert client.get("/api/challenges?status=someday", headers=headers).status_code == 400
    assert client.get("/api/challenges?limit=0", headers=headers).status_code == 400
    assert client.get("/api/challenges?organization_id=42", headers=headers).status_code == 404


def test_progress_for_unknown_challenge_is_not_found(client, make_user, auth_for):
    user = make_user()

    resp = client.get("/api/challenges/9999/progress?as_of=2026-03-10", headers=auth_for(user))

    assert resp.status_code == 404


# ==================== Social ====================


def test_leaderboard_endpoint_pages_and_reports_my_rank(client, make_user, make_habit, complete, auth_for):
    leader = make_user("leader")
    trailer = make_user("trailer")
    complete(make_habit(leader), date(2026, 3, 9))
    complete(make_habit(leader, "Walk"), date(2026, 3, 9))

    resp = client.get(
        "/api/social/leaderboard?scope=global&as_of=2026-03-10&limit=1",
        headers=auth_for(trailer),
    )

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["total"] == 2
    assert [e["display_name"] for e in body["entries"]] == ["leader"]
    assert body["entries"][0]["score"] == 2
    assert body["my_rank"] == 2
    assert body["my_score"] == 0


def test_leaderboard_rejects_unknown_scope(client, make_user, auth_for):
    user = make_user()

    resp = client.get("/api/social/leaderboard?scope=galaxy", headers=auth_for(user))

    assert resp.status_code == 400


def test_leaderboard_challenge_scope_requires_ref_id(client, make_user, auth_for):
    user = make_user()

    resp = client.get("/api/social/leaderboard?scope=challenge", headers=auth_for(user))

    assert resp.status_code == 400


def test_privacy_update_hides_user_from_next_leaderboard(client, make_user, auth_for):
    shy = make_user("shy")
    viewer = make_user("viewer")
    url = "/api/social/leaderboard?scope=global&as_of=2026-03-10"

    before = client.get(url, headers=auth_for(viewer)).get_json()["entries"]
    resp = client.put(
        "/api/social/privacy",
        json={"scope_class": "global", "visibility": "hidden"},
        headers=auth_for(shy),
    )
    after = client.get(url, headers=auth_for(viewer)).get_json()["entries"]

    assert resp.status_code == 200
    assert "shy" in {e["display_name"] for e in before}
    assert "shy" not in {e["display_name"] for e in after}
    privacy = client.get("/api/social/privacy", headers=auth_for(shy)).get_json()["privacy"]
    assert privacy["global"] == "hidden"


def test_privacy_update_rejects_unknown_visibility(client, make_user, auth_for):
    user = make_user()

    resp = client.put(
        "/api/social/privacy",
        json={"scope_class": "global", "visibility": "invisible"},
        headers=auth_for(user),
    )

    assert resp.status_code == 400


def test_friend_edges_over_http(client, make_user, auth_for):
    ann = make_user("ann")
    bob = make_user("bob")

    assert client.post(f"/api/social/friends/{bob.id}", headers=auth_for(ann)).status_code == 201
    assert client.post(f"/api/social/friends/{bob.id}", headers=auth_for(ann)).status_code == 200
    body = client.get("/api/social/friends", headers=auth_for(ann)).get_json()
    assert body["following"] == [bob.id]
    assert body["mutual"] == []

    client.post(f"/api/social/friends/{ann.id}", headers=auth_for(bob))
    assert client.get("/api/social/friends", headers=auth_for(ann)).get_json()["mutual"] == [bob.id]

    assert client.delete(f"/api/social/friends/{bob.id}", headers=auth_for(ann)).status_code == 200
    assert client.delete(f"/api/social/friends/{bob.id}", headers=auth_for(ann)).status_code == 404


def test_befriending_self_is_rejected(client, make_user, auth_for):
    user = make_user()

    assert client.post(f"/api/social/friends/{user.id}", headers=auth_for(user)).status_code == 400


# ==================== CSRF ====================


def test_writes_require_csrf_header_when_enabled(app, client, make_user, make_habit, auth_for):
    app.config["WTF_CSRF_ENABLED"] = True
    user = make_user()
    habit = make_habit(user)
    headers = auth_for(user)
    bare = {"Authorization": headers["Authorization"]}

    missing = _post_completion(client, bare, habit.id)
    forged = _post_completion(client, {**bare, "X-CSRF-Token": "not-a-token"}, habit.id)
    accepted = _post_completion(client, headers, habit.id)

    assert missing.status_code == 403
    assert forged.status_code == 403
    assert accepted.status_code == 201


def test_csrf_token_is_bound_to_identity(app, client, make_user, make_habit, auth_for):
    app.config["WTF_CSRF_ENABLED"] = True
    alice = make_user("alice")
    mallory = make_user("mallory")
    habit = make_habit(alice)
    headers = {
        "Authorization": auth_for(alice)["Authorization"],
        "X-CSRF-Token": auth_for(mallory)["X-CSRF-Token"],
    }

    assert _post_completion(client, headers, habit.id).status_code == 403


def test_csrf_endpoint_issues_usable_token(app, client, make_user, make_habit, auth_for):
    app.config["WTF_CSRF_ENABLED"] = True
    user = make_user()
    habit = make_habit(user)
    bearer = {"Authorization": auth_for(user)["Authorization"]}

    token = client.get("/auth/csrf", headers=bearer).get_json()["csrf_token"]

    assert _post_completion(client, {**bearer, "X-CSRF-Token": token}, habit.id, ts=TUESDAY).status_code == 201
