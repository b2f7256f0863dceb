import pytest

from conftest import auth_header
from create_admin import bootstrap_admin, main
from errors import Conflict
from models import Role, User


def test_bootstrap_creates_an_active_admin(client, db):
    admin = bootstrap_admin(db, "root@example.com", "root", "correct-horse")

    assert admin.id == "USR001"
    assert admin.role == Role.ADMIN
    assert admin.is_active is True

    response = client.post("/api/signin", json={"email": "root@example.com", "password": "correct-horse"})
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "Admin"


def test_bootstrap_runs_once(db, admin):
    assert bootstrap_admin(db, "second@example.com", "second", "password") is None
    assert db.query(User).filter(User.role == Role.ADMIN).count() == 1


def test_bootstrap_refuses_taken_identity(db, member):
    with pytest.raises(Conflict):
        bootstrap_admin(db, member.email, "fresh", "password")


def test_bootstrapped_admin_can_activate_signups(client, db):
    admin = bootstrap_admin(db, "root@example.com", "root", "correct-horse")
    user_id = client.post("/api/signup", json={
        "email": "new@example.com", "username": "newbie", "password": "secret123",
    }).json()["user"]["id"]

    response = client.put(f"/api/admin/users/{user_id}/activate", json={"is_active": True},
                          headers=auth_header(admin))
    assert response.status_code == 200


def test_cli_entry_point(db, capsys):
    assert main(["cli@example.com", "cli", "password"]) == 0
    assert "Admin cli created" in capsys.readouterr().out

    assert main(["other@example.com", "other", "password"]) == 0
    assert "already exists" in capsys.readouterr().out


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
