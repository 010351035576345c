"""User endpoints: accounts, check-ins, XP, themes and rewards."""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, status

from spaced_recall.config.themes import list_themes
from spaced_recall.core import streaks, users, xp
from spaced_recall.db import users_repository
from spaced_recall.web.errors import DOMAIN_ERRORS, to_http
from spaced_recall.web.schemas import (
    RewardRedeem,
    ThemeChange,
    UserCreate,
    UserListResponse,
    UserResponse,
)

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=UserListResponse)
async def list_users() -> UserListResponse:
    """List all users."""
    records = users_repository.get_all_users()
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in records],
        count=len(records),
    )


@router.get("/themes")
async def get_themes() -> list[dict]:
    """Available progression themes."""
    return [asdict(t) for t in list_themes()]


@router.get("/rewards")
async def get_rewards() -> list[dict]:
    """Rewards that can be bought with loyalty points."""
    return [asdict(r) for r in xp.AVAILABLE_REWARDS]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: str) -> UserResponse:
    """Get a specific user by ID."""
    user = users_repository.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User '{user_id}' not found",
        )
    return UserResponse.model_validate(user)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user_data: UserCreate) -> UserResponse:
    """Create a new user."""
    try:
        user = users.create_user(user_data.name, user_data.email, user_data.theme_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str) -> None:
    """Delete a user and everything they own."""
    if not users_repository.delete_user(user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User '{user_id}' not found",
        )


@router.post("/{user_id}/check-in")
async def check_in(user_id: str) -> dict:
    """Register today's activity and update the login streak."""
    try:
        return streaks.check_in(user_id).to_dict()
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.get("/{user_id}/xp")
async def get_xp(user_id: str) -> dict:
    """XP total, per-source breakdown, level and recent events."""
    try:
        return xp.calculate_user_xp(user_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e


@router.put("/{user_id}/theme", response_model=UserResponse)
async def change_theme(user_id: str, body: ThemeChange) -> UserResponse:
    try:
        user = users.change_theme(user_id, body.theme_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return UserResponse.model_validate(user)


@router.post("/{user_id}/rewards")
async def redeem_reward(user_id: str, body: RewardRedeem) -> dict:
    """Spend loyalty points on a reward.

    Insufficient points is not an error; the result says success=false.
    """
    try:
        result = users.redeem(user_id, body.reward_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e) from e
    return {
        "success": result.success,
        "message": result.message,
        "loyalty_points": result.loyalty.loyalty_points,
    }
