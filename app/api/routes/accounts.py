"""Account routes guarded by admission-control policies.

The handlers are thin placeholders for the CRUD layer; what matters here is
which policy protects which route:
- public routes are limited per client address
- authenticated routes are limited per user (hybrid strategy)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.core.auth import AuthenticatedUser, authenticate, require_user
from app.core.rate_limit import rate_limit

auth_router = APIRouter(prefix="/auth", tags=["Auth"])
users_router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(authenticate), Depends(rate_limit("general"))],
)


@auth_router.post(
    "/sign-up",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("registration"))],
)
async def sign_up() -> dict:
    return {"success": True, "message": "Registration accepted"}


@auth_router.post("/sign-in", dependencies=[Depends(rate_limit("public-ip"))])
async def sign_in() -> dict:
    return {"success": True, "message": "Signed in"}


@auth_router.post(
    "/sign-out",
    dependencies=[Depends(authenticate), Depends(rate_limit("auth-strict"))],
)
async def sign_out(user: AuthenticatedUser = Depends(require_user)) -> dict:
    return {"success": True, "message": "Signed out", "data": {"id": user.id}}


@users_router.get("")
async def list_users(user: AuthenticatedUser = Depends(require_user)) -> dict:
    return {"success": True, "data": [{"id": user.id, "role": user.role}]}


@users_router.get("/{user_id}", dependencies=[Depends(rate_limit("sensitive"))])
async def get_user(user_id: str, _: AuthenticatedUser = Depends(require_user)) -> dict:
    return {"success": True, "data": {"id": user_id}}
