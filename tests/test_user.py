def registration(**overrides):
    data = {
        "firstName": "Test",
        "lastName": "User",
        "email": "test@example.com",
        "phone": "555-0123",
        "password": "secret123",
    }
    data.update(overrides)
    return data


def test_register(client):
    response = client.post("/api/auth/register", json=registration())

    assert response.status_code == 201
    data = response.json()["data"]
    assert "user-" in data["user"]["_id"]
    assert data["user"]["firstName"] == "Test"
    assert data["user"]["lastName"] == "User"
    assert data["user"]["phone"] == "555-0123"
    assert data["user"]["role"] == "user"
    assert "token" not in data["user"]
    assert "passwordHash" not in data["user"]
    assert data["token"]


def test_register_stores_hashed_password(client, store):
    client.post("/api/auth/register", json=registration())

    user = store.get_user_by_email("test@example.com")
    assert user.password_hash
    assert user.password_hash != "secret123"


def test_register_missing_email(client):
    body = registration()
    del body["email"]

    response = client.post("/api/auth/register", json=body)

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "email"


def test_register_short_password(client):
    response = client.post("/api/auth/register", json=registration(password="123"))

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "password"


def test_register_duplicate_email(client):
    client.post("/api/auth/register", json=registration())

    response = client.post("/api/auth/register", json=registration(email="TEST@example.com "))

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "email"


def test_login(client, alice, password):
    response = client.post("/api/auth/login", json={"email": "Alice@Example.com", "password": password})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["_id"] == alice["user"]["_id"]
    assert data["token"] == alice["token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200


def test_login_wrong_password(client, alice):
    response = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "wrong-one"})

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


def test_login_unknown_email(client, password):
    response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": password})

    assert response.status_code == 401


def test_admin_role_from_admin_emails(client, admin):
    assert admin["user"]["role"] == "admin"


def test_get_me(client, alice):
    response = client.get("/api/auth/me", headers=alice["headers"])

    assert response.status_code == 200
    assert response.json()["data"]["user"]["_id"] == alice["user"]["_id"]


def test_get_me_bad_scheme(client, alice):
    response = client.get("/api/auth/me", headers={"Authorization": f"Token {alice['token']}"})

    assert response.status_code == 401


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
