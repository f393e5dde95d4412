from fastapi.testclient import TestClient

from quranakh.api.v1.auth import create_token, decode_token, hash_password, verify_password


def _register_school(client: TestClient, username="owner1"):
    return client.post(
        "/api/v1/auth/register-school",
        json={
            "school_name": "Dar al-Quran",
            "username": username,
            "password": "password123",
            "name": "School Owner",
        },
    )


def _login(client: TestClient, username, password="password123"):
    return client.post(
        "/api/v1/auth/login",
        data={"username": username, "password": password},
    )


def test_register_school_creates_owner(client: TestClient):
    response = _register_school(client)
    assert response.status_code == 200
    data = response.json()
    assert data["username"] == "owner1"
    assert data["role"] == "owner"
    assert data["school_id"]


def test_register_school_duplicate_username(client: TestClient):
    _register_school(client)
    response = _register_school(client)
    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "CONFLICT"


def test_login_and_me(client: TestClient):
    _register_school(client)
    response = _login(client, "owner1")
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"

    me = client.get(
        "/api/v1/auth/me",
        headers={"Authorization": f"Bearer {data['access_token']}"},
    )
    assert me.status_code == 200
    assert me.json()["username"] == "owner1"


def test_login_invalid_password(client: TestClient):
    _register_school(client)
    response = _login(client, "owner1", password="wrongpassword")
    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


def test_owner_registers_teacher_in_own_school(client: TestClient):
    owner = _register_school(client).json()
    token = _login(client, "owner1").json()["access_token"]

    response = client.post(
        "/api/v1/auth/register",
        json={"username": "ustadh", "password": "password123", "role": "teacher", "name": "Ustadh"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 200
    assert response.json()["school_id"] == owner["school_id"]
    assert _login(client, "ustadh").status_code == 200


def test_register_requires_school_admin(client, school, auth_headers):
    response = client.post(
        "/api/v1/auth/register",
        json={"username": "newkid", "password": "password123", "role": "student", "name": "Kid"},
        headers=auth_headers(school.teacher),
    )
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


def test_register_cannot_create_second_owner(client, school, auth_headers):
    response = client.post(
        "/api/v1/auth/register",
        json={"username": "owner2", "password": "password123", "role": "owner", "name": "Two"},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_missing_or_bad_token(client: TestClient):
    assert client.get("/api/v1/auth/me").status_code == 401
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


def test_token_helpers():
    token = create_token(7, "teacher")
    payload = decode_token(token)
    assert payload["sub"] == 7
    assert payload["role"] == "teacher"
    assert decode_token(token + "x") is None

    hashed = hash_password("pa55word")
    assert verify_password("pa55word", hashed)
    assert not verify_password("other", hashed)
