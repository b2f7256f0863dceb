from conftest import auth_header

BLOG = {"title": "Harvest recipes", "blog_content": "Squash, three ways."}


def _create_blog(client, user, **overrides):
    return client.post("/api/blogs", json=dict(BLOG, **overrides), headers=auth_header(user))


def test_secretary_blog_waits_for_approval(client, secretary, admin, member):
    response = _create_blog(client, secretary)
    assert response.status_code == 201
    blog = response.json()["blog"]
    assert blog["id"] == "BLG01"
    assert blog["is_available"] is False
    assert blog["author"] == secretary.username

    assert client.get("/api/blogs").json()["blogs"] == []
    assert client.get("/api/blogs", headers=auth_header(member)).json()["blogs"] == []
    assert client.get(f"/api/blogs/{blog['id']}", headers=auth_header(member)).status_code == 404

    admin_view = client.get("/api/blogs", headers=auth_header(admin)).json()["blogs"]
    assert [entry["id"] for entry in admin_view] == [blog["id"]]

    response = client.put(f"/api/admin/blogs/{blog['id']}/approve", headers=auth_header(admin))
    assert response.status_code == 200
    assert response.json()["blog"]["is_available"] is True

    public = client.get("/api/blogs").json()
    assert [entry["id"] for entry in public["blogs"]] == [blog["id"]]
    assert public["pagination"]["total"] == 1
    assert client.get(f"/api/blogs/{blog['id']}").status_code == 200


def test_admin_blog_is_published_at_once(client, admin):
    blog = _create_blog(client, admin).json()["blog"]
    assert blog["is_available"] is True
    assert [entry["id"] for entry in client.get("/api/blogs").json()["blogs"]] == [blog["id"]]


def test_only_admin_and_secretary_write_blogs(client, president, member, secretary):
    assert _create_blog(client, president).status_code == 403
    assert _create_blog(client, member).status_code == 403

    blog_id = _create_blog(client, secretary).json()["blog"]["id"]
    assert client.put(f"/api/blogs/{blog_id}", json={"title": "x"}, headers=auth_header(member)).status_code == 403
    assert client.delete(f"/api/blogs/{blog_id}", headers=auth_header(president)).status_code == 403


def test_only_admin_approves(client, secretary):
    blog_id = _create_blog(client, secretary).json()["blog"]["id"]
    response = client.put(f"/api/admin/blogs/{blog_id}/approve", headers=auth_header(secretary))
    assert response.status_code == 403


def test_partial_update_and_delete(client, secretary):
    headers = auth_header(secretary)
    blog_id = _create_blog(client, secretary).json()["blog"]["id"]

    blog = client.put(f"/api/blogs/{blog_id}", json={"title": "Winter recipes"}, headers=headers).json()["blog"]
    assert blog["title"] == "Winter recipes"
    assert blog["blog_content"] == BLOG["blog_content"]

    response = client.put(f"/api/blogs/{blog_id}", json={}, headers=headers)
    assert response.status_code == 200
    assert response.json()["blog"] is None

    assert client.delete(f"/api/blogs/{blog_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/blogs/{blog_id}", headers=headers).status_code == 404


def test_permission_table_can_extend_blog_writers(client, admin, president):
    response = client.put(
        "/api/admin/roles/President",
        json={"permissions": ["view_private_profiles", "create_blogs"]},
        headers=auth_header(admin),
    )
    assert response.status_code == 200

    assert _create_blog(client, president).status_code == 201


def test_update_cannot_null_title_or_content(client, secretary, admin):
    headers = auth_header(secretary)
    blog_id = _create_blog(client, secretary).json()["blog"]["id"]

    response = client.put(f"/api/blogs/{blog_id}", json={"title": None}, headers=headers)
    assert response.status_code == 400
    assert [detail["field"] for detail in response.json()["details"]] == ["title"]

    response = client.put(f"/api/blogs/{blog_id}", json={"blog_content": None}, headers=headers)
    assert response.status_code == 400
    assert [detail["field"] for detail in response.json()["details"]] == ["blog_content"]

    blog = client.get(f"/api/blogs/{blog_id}", headers=auth_header(admin)).json()["blog"]
    assert blog["title"] == BLOG["title"]
    assert blog["blog_content"] == BLOG["blog_content"]
