# mypy: ignore-errors
"""Tests for user profile and public key endpoints."""

from fastapi import status


def test_get_me(client, alice, auth_headers) -> None:
    response = client.get("/api/v1/users/me", headers=auth_headers(alice))

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == alice.id
    assert data["nickname"] == "alice"
    assert data["has_public_key"] is False
    assert data["created_at"]


def test_public_key_round_trip(client, alice, bob, auth_headers) -> None:
    """A stored key is served to other users."""
    saved = client.post(
        "/api/v1/users/public-key",
        json={"publicKey": "BASE64-SPKI"},
        headers=auth_headers(alice),
    )
    assert saved.status_code == status.HTTP_200_OK
    assert saved.json() == {"success": True}

    fetched = client.get(f"/api/v1/users/{alice.id}/public-key", headers=auth_headers(bob))
    assert fetched.json() == {"success": True, "publicKey": "BASE64-SPKI"}

    me = client.get("/api/v1/users/me", headers=auth_headers(alice))
    assert me.json()["has_public_key"] is True


def test_public_key_not_set(client, alice, bob, auth_headers) -> None:
    response = client.get(f"/api/v1/users/{bob.id}/public-key", headers=auth_headers(alice))

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["publicKey"] is None


def test_public_key_for_unknown_user(client, alice, auth_headers) -> None:
    response = client.get("/api/v1/users/9999/public-key", headers=auth_headers(alice))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_blank_public_key_is_rejected(client, alice, auth_headers) -> None:
    response = client.post(
        "/api/v1/users/public-key",
        json={"publicKey": "   "},
        headers=auth_headers(alice),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Public key required"


def test_missing_public_key_field(client, alice, auth_headers) -> None:
    response = client.post("/api/v1/users/public-key", json={}, headers=auth_headers(alice))
    assert response.status_code == 422
