"""
Account API Routes

Profile and entitlement of the authenticated user, and account deletion.
"""

import logging

from fastapi import APIRouter, Depends

from willcraft.api.dependencies import UserRepoDep, get_current_user
from willcraft.api.responses import success_response
from willcraft.domain.subscription import AccountView, ProfileUpdateRequest, User
from willcraft.infrastructure.cache import TTLCache, get_will_list_cache
from willcraft.infrastructure.exceptions import NotFoundError
from willcraft.infrastructure.services.subscription_mirror import (
    SubscriptionMirror,
    get_subscription_mirror,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account")


async def _account_view(user: User, mirror: SubscriptionMirror) -> dict:
    subscription = await mirror.get_mirrored(user.id)
    entitlement = await mirror.entitlement(user)
    view = AccountView(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role,
        plan=subscription.plan,
        status=subscription.status,
        entitlement=entitlement,
        created_at=user.created_at,
    )
    return view.model_dump(mode="json", by_alias=True)


@router.get("")
async def get_account(
    user: User = Depends(get_current_user),
    mirror: SubscriptionMirror = Depends(get_subscription_mirror),
):
    return success_response(data=await _account_view(user, mirror))


@router.put("/profile")
async def update_profile(
    request: ProfileUpdateRequest,
    user_repo: UserRepoDep,
    user: User = Depends(get_current_user),
    mirror: SubscriptionMirror = Depends(get_subscription_mirror),
):
    """Update name and phone. Email is owned by the auth provider."""
    updated = await user_repo.update_profile(user.id, request.model_dump(exclude_unset=True))
    if updated is None:
        raise NotFoundError("Account not found", operation="update", table="users")
    return success_response(data=await _account_view(updated, mirror))


@router.delete("")
async def delete_account(
    user_repo: UserRepoDep,
    user: User = Depends(get_current_user),
    cache: TTLCache = Depends(get_will_list_cache),
):
    """Delete the account, its wills and its subscription mirror."""
    await user_repo.delete(user.id)
    cache.evict(user.id)
    return success_response(message="Account deleted successfully")
