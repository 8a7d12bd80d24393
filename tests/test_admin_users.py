def test_admin_creates_user_with_api_key(client, admin_headers) -> None:
    resp = client.post(
        "/admin/users",
        json={"name": " Carol ", "email": "CAROL@example.com "},
        headers=admin_headers,
    )

    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["user"]["name"] == "Carol"
    assert data["user"]["email"] == "carol@example.com"
    assert data["user"]["role"] == "user"
    assert data["api_key"]
    assert "api_key_hash" not in data["user"]

    # The returned key authenticates the new user
    me = client.get(
        "/inventory/products", headers={"Authorization": f"Bearer {data['api_key']}"}
    )
    assert me.status_code == 200


def test_duplicate_email_conflicts(client, admin_headers) -> None:
    payload = {"name": "Carol", "email": "carol@example.com"}

    assert client.post("/admin/users", json=payload, headers=admin_headers).status_code == 201
    resp = client.post("/admin/users", json=payload, headers=admin_headers)

    assert resp.status_code == 409
    assert resp.json()["error"] == "conflict"


def test_rejects_invalid_email(client, admin_headers) -> None:
    resp = client.post(
        "/admin/users", json={"name": "Carol", "email": "carol@"}, headers=admin_headers
    )
    assert resp.status_code == 422


def test_non_admin_is_forbidden(client, user_headers) -> None:
    resp = client.get("/admin/users", headers=user_headers)

    assert resp.status_code == 403
    assert resp.json()["message"] == "Admin access required"


def test_missing_or_bad_key(client) -> None:
    assert client.get("/admin/users").status_code == 401
    resp = client.get("/admin/users", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401
    too_long = client.get("/admin/users", headers={"Authorization": "Bearer " + "x" * 513})
    assert too_long.status_code == 400


def test_list_users_with_filters(client, admin_headers, make_user) -> None:
    make_user("alice@example.com", name="Alice")
    make_user("bob@shop.test", name="Bob")

    everyone = client.get("/admin/users", headers=admin_headers).json()
    assert [u["email"] for u in everyone["items"]] == [
        "admin@example.com",
        "alice@example.com",
        "bob@shop.test",
    ]
    assert everyone["total"] == 3

    search = client.get("/admin/users", params={"search": "SHOP"}, headers=admin_headers).json()
    assert [u["name"] for u in search["items"]] == ["Bob"]

    admins = client.get("/admin/users", params={"role": "admin"}, headers=admin_headers).json()
    assert [u["email"] for u in admins["items"]] == ["admin@example.com"]


def test_list_users_pagination(client, admin_headers, make_user) -> None:
    for i in range(4):
        make_user(f"user{i}@example.com", name=f"User {i}")

    page = client.get(
        "/admin/users", params={"page": 2, "size": 2}, headers=admin_headers
    ).json()

    assert page["total"] == 5
    assert page["total_pages"] == 3
    assert [u["name"] for u in page["items"]] == ["User 1", "User 2"]
