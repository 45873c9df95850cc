"""Tests for the user feature.
Covers: UserService, identifier lookup, profile access, permission assignment.
"""

import pytest
from fastapi import status

from authkeeper.config.settings import settings
from authkeeper.features.auth.hashing import credential_hasher
from authkeeper.features.auth.tokens import token_codec
from authkeeper.features.user.exceptions import UserAlreadyExists, UserNotFound
from authkeeper.features.user.models import User
from authkeeper.features.user.schemas import UserRegisterRequest
from authkeeper.features.user.service import UserService

API = settings.api_prefix


def _registration(**overrides) -> UserRegisterRequest:
    payload = {
        "username": "newuser",
        "email": "NewUser@Example.com",
        "phone_prefix": "+44",
        "phone_number": "2079460958",
        "password": "Secure#Pass123",
        "full_name": "New",
        "full_surname": "User",
    }
    payload.update(overrides)
    return UserRegisterRequest(**payload)


# UserService Unit Tests


class TestUserServiceRegistration:
    """Tests for UserService.register_user()"""

    async def test_register_user_success(self, session):
        """Registering stores a lowercased email and an empty permission list."""
        data = _registration()
        user = await UserService.register_user(session, data, credential_hasher.hash(data.password))
        await session.commit()

        assert user.id is not None
        assert user.email == "newuser@example.com"
        assert user.permissions == []
        assert user.is_active is True
        assert user.failed_login_attempts == 0
        assert credential_hasher.verify("Secure#Pass123", user.hashed_password)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"email": "other@example.com", "phone_number": "1111111"},
            {"username": "other", "phone_number": "1111111"},
            {"username": "other", "email": "other@example.com"},
        ],
        ids=["username", "email", "phone"],
    )
    async def test_register_user_duplicate(self, session, make_user, overrides):
        """Any collision on username, email or phone is a conflict."""
        await make_user(username="newuser", email="newuser@example.com", phone_prefix="+44", phone_number="2079460958")

        data = _registration(**overrides)
        with pytest.raises(UserAlreadyExists):
            await UserService.register_user(session, data, "hash")


class TestUserServiceLookup:
    """Tests for UserService.get_user_or_404() and get_by_identifier()"""

    async def test_get_user_or_404(self, session, make_user):
        user = await make_user()
        assert (await UserService.get_user_or_404(session, user.id)).id == user.id

        with pytest.raises(UserNotFound):
            await UserService.get_user_or_404(session, 99999)

    @pytest.mark.parametrize(
        "identifier",
        ["dora", "Dora@Example.com", "+34600123456", "+34 600 123 456", "0034600123456"],
    )
    async def test_get_by_identifier(self, session, make_user, identifier):
        """Username, email (any case) and phone (any formatting) all resolve."""
        user = await make_user(username="dora", email="dora@example.com", phone_prefix="+34", phone_number="600123456")

        found = await UserService.get_by_identifier(session, identifier)

        assert found is not None
        assert found.id == user.id

    async def test_get_by_identifier_skips_inactive(self, session, make_user):
        await make_user(username="ghost", is_active=False)
        assert await UserService.get_by_identifier(session, "ghost") is None

    async def test_get_by_identifier_unknown(self, session, make_user):
        await make_user()
        assert await UserService.get_by_identifier(session, "nobody") is None


# Endpoint Tests


class TestGetUserEndpoint:
    """Tests for GET /users/{user_id}"""

    async def test_owner_can_read_profile(self, auth_client):
        client, user, _ = auth_client

        response = await client.get(f"{API}/users/{user.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["id"] == user.id
        assert data["username"] == user.username
        assert data["phonePrefix"] == "+1"
        assert "hashedPassword" not in data
        assert "hashed_password" not in data

    async def test_other_user_forbidden(self, auth_client, make_user):
        client, _, _ = auth_client
        other = await make_user()

        response = await client.get(f"{API}/users/{other.id}")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "FORBIDDEN"

    async def test_admin_can_read_any_profile(self, admin_client, make_user):
        client, _, _ = admin_client
        other = await make_user()

        response = await client.get(f"{API}/users/{other.id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["id"] == other.id

    async def test_admin_missing_user(self, admin_client):
        client, _, _ = admin_client

        response = await client.get(f"{API}/users/99999")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "USER_NOT_FOUND"

    async def test_requires_authentication(self, client, make_user):
        user = await make_user()

        response = await client.get(f"{API}/users/{user.id}")

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error"] == "ACCESS_DENIED"


class TestAssignPermissionsEndpoint:
    """Tests for PUT /users/{user_id}/permissions"""

    async def test_admin_assigns_permissions(self, admin_client, make_user, session):
        client, _, _ = admin_client
        target = await make_user()

        response = await client.put(
            f"{API}/users/{target.id}/permissions", json={"permissions": ["reports:read", " reports:read ", "posts:write"]}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["permissions"] == ["reports:read", "posts:write"]
        await session.refresh(target)
        assert target.permissions == ["reports:read", "posts:write"]

    async def test_non_admin_forbidden(self, auth_client, make_user):
        client, _, _ = auth_client
        target = await make_user()

        response = await client.put(f"{API}/users/{target.id}/permissions", json={"permissions": ["admin"]})

        assert response.status_code == status.HTTP_403_FORBIDDEN

    async def test_empty_permission_list_rejected(self, admin_client, make_user):
        client, _, _ = admin_client
        target = await make_user()

        response = await client.put(f"{API}/users/{target.id}/permissions", json={"permissions": []})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "VALIDATION_ERROR"

    async def test_new_permissions_reach_tokens_on_refresh(self, admin_client, make_user, make_session):
        """Tokens minted before the change keep old claims; a refresh picks up the new ones."""
        client, _, _ = admin_client
        target = await make_user()
        issued = await make_session(target)
        assert token_codec.verify_access_token(issued.access_token)["permissions"] == []

        await client.put(f"{API}/users/{target.id}/permissions", json={"permissions": ["reports:read"]})
        response = await client.post(f"{API}/auth/refresh", json={"refreshToken": issued.refresh_token})

        assert response.status_code == status.HTTP_200_OK
        claims = token_codec.verify_access_token(response.json()["data"]["accessToken"])
        assert claims["permissions"] == ["reports:read"]


class TestUserModel:
    def test_lock_helpers_when_unlocked(self):
        user = User(username="x", account_locked=False, lock_until=None)
        assert user.is_locked() is False
        assert user.lock_seconds_remaining() is None

    def test_manual_lock_never_lapses(self):
        user = User(username="x", account_locked=True, lock_until=None)
        assert user.is_locked() is True
        assert user.lock_seconds_remaining() is None

