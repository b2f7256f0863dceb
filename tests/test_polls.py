from datetime import datetime, timedelta, timezone

from conftest import auth_header
from models import Poll, PollOption


def _create_poll(client, user, options=("A", "B"), **extra):
    payload = dict({"question": "Which one?", "options": list(options)}, **extra)
    return client.post("/api/polls", json=payload, headers=auth_header(user))


def _vote(client, user, poll_id, option_id):
    return client.post(f"/api/polls/{poll_id}/vote", json={"option_id": option_id}, headers=auth_header(user))


def test_three_voters_with_a_switched_vote(client, make_user):
    user1, user2, user3 = make_user("user1"), make_user("user2"), make_user("user3")
    poll = _create_poll(client, user1).json()["poll"]
    option_a, option_b = (option["id"] for option in poll["options"])

    assert _vote(client, user1, poll["id"], option_a).status_code == 200
    assert _vote(client, user2, poll["id"], option_b).status_code == 200
    assert _vote(client, user3, poll["id"], option_b).status_code == 200
    response = _vote(client, user3, poll["id"], option_a)
    assert response.status_code == 200

    results = client.get(f"/api/polls/{poll['id']}").json()["poll"]
    assert results["total_votes"] == 3
    assert [(o["option_text"], o["vote_count"], o["vote_percentage"]) for o in results["options"]] == [
        ("A", 2, 66.67),
        ("B", 1, 33.33),
    ]
    assert response.json()["poll"]["total_votes"] == 3


def test_create_poll_is_open_to_any_member(client, db, member):
    response = _create_poll(client, member, options=["Red", "Green", "Blue"], description="Team colour")
    assert response.status_code == 201
    poll = response.json()["poll"]
    assert poll["id"] == "POL01"
    assert poll["creator_username"] == member.username
    assert poll["is_open"] is True
    assert [option["option_text"] for option in poll["options"]] == ["Red", "Green", "Blue"]

    assert client.post("/api/polls", json={"question": "?", "options": ["A", "B"]}).status_code == 401


def test_create_poll_validation_writes_nothing(client, db, member):
    response = _create_poll(client, member, options=["Only one"])
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "options"

    response = _create_poll(client, member, options=["A", "  "])
    assert response.status_code == 400

    db.expire_all()
    assert db.query(Poll).count() == 0
    assert db.query(PollOption).count() == 0


def test_vote_with_foreign_option_is_rejected(client, member):
    first = _create_poll(client, member).json()["poll"]
    second = _create_poll(client, member).json()["poll"]

    response = _vote(client, member, first["id"], second["options"][0]["id"])
    assert response.status_code == 400
    assert response.json()["error"] == "poll_option_mismatch"


def test_vote_on_closed_poll(client, member):
    expired = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    poll = _create_poll(client, member, expires_at=expired).json()["poll"]
    assert poll["is_open"] is False

    response = _vote(client, member, poll["id"], poll["options"][0]["id"])
    assert response.status_code == 409
    assert response.json()["error"] == "poll_closed"


def test_vote_on_unknown_poll(client, member):
    assert _vote(client, member, "POL99", "missing").status_code == 404
    assert client.get("/api/polls/POL99").status_code == 404


def test_listing_shows_active_polls_newest_first(client, db, member):
    first = _create_poll(client, member, question="First?").json()["poll"]
    second = _create_poll(client, member, question="Second?").json()["poll"]
    hidden = _create_poll(client, member, question="Hidden?").json()["poll"]
    db.query(Poll).filter(Poll.id == hidden["id"]).update({"is_active": False})
    db.commit()

    polls = client.get("/api/polls").json()["polls"]
    assert [poll["id"] for poll in polls] == [second["id"], first["id"]]


def test_delete_by_creator_or_admin(client, make_user, admin):
    creator = make_user("creator")
    other = make_user("other")
    poll_id = _create_poll(client, creator).json()["poll"]["id"]

    assert client.delete(f"/api/polls/{poll_id}", headers=auth_header(other)).status_code == 403
    response = client.delete(f"/api/polls/{poll_id}", headers=auth_header(creator))
    assert response.status_code == 200
    assert response.json()["message"] == "Poll deleted successfully"
    assert client.get(f"/api/polls/{poll_id}").status_code == 404

    poll_id = _create_poll(client, creator).json()["poll"]["id"]
    assert client.delete(f"/api/polls/{poll_id}", headers=auth_header(admin)).status_code == 200
    assert client.get(f"/api/polls/{poll_id}").status_code == 404
