"""Login, registration and the authenticated user's profile."""
from __future__ import annotations

from .client import ApiClient, parse, unwrap
from .models import AuthResult, User


async def login(api: ApiClient, email: str, password: str) -> AuthResult:
    """Exchange credentials for a bearer token plus the user's identity."""
    payload = await api.post("/auth/login", json={"email": email, "password": password}, authenticated=False)
    return parse(AuthResult, payload)


async def register(api: ApiClient, full_name: str, email: str, password: str) -> User | None:
    """Create a USUARIO account. The backend does not log the new user in."""
    payload = await api.post(
        "/auth/register",
        json={"fullName": full_name, "email": email, "password": password},
        authenticated=False,
    )
    data = unwrap(payload)
    if isinstance(data, dict) and "id" in data:
        return parse(User, data)
    return None


async def get_profile(api: ApiClient) -> User:
    payload = await api.get("/api/users/me")
    return parse(User, unwrap(payload))
