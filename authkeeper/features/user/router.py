"""User management router (API endpoints)."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from authkeeper.database.dependencies import get_db_session
from authkeeper.features.auth.dependencies import AuthContext, require_ownership, require_permission
from authkeeper.shared.responses.envelope import SuccessResponse

from .models import ADMIN_PERMISSION
from .schemas import AssignPermissionsRequest, UserResponse
from .service import UserService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("/{user_id}", response_model=SuccessResponse[UserResponse])
async def get_user(
    user_id: int,
    auth: AuthContext = Depends(require_ownership("user_id")),
    session: AsyncSession = Depends(get_db_session),
):
    """Get an account profile (owner or admin)."""
    user = await UserService.get_user_or_404(session, user_id)
    return SuccessResponse(data=UserResponse.model_validate(user))


# Admin endpoints
@router.put("/{user_id}/permissions", response_model=SuccessResponse[UserResponse])
async def assign_permissions(
    user_id: int,
    data: AssignPermissionsRequest,
    auth: AuthContext = Depends(require_permission(ADMIN_PERMISSION)),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace a user's permissions (admin only).

    Access tokens already issued keep their old permissions until the next
    refresh or login.
    """
    user = await UserService.get_user_or_404(session, user_id)
    user = await UserService.assign_permissions(user, data.permissions)
    await session.commit()

    logger.info(f"Admin {auth.username} updated permissions of user {user_id}")
    return SuccessResponse(message="Permissions updated", data=UserResponse.model_validate(user))
