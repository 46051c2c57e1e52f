from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reservapp.core.security import Claim
from reservapp.database import get_db
from reservapp.dependencies import require
from reservapp.schemas.auth_schemas import RoleUpdate, UserResponse
from reservapp.schemas.common import ApiResponse, ok
from reservapp.services.auth_service import AuthService

router = APIRouter()


@router.patch("/{user_id}/role", response_model=ApiResponse[UserResponse])
def update_user_role(
    user_id: str,
    role_update: RoleUpdate,
    claim: Claim = Depends(require("users", "read")),
    db: Session = Depends(get_db),
):
    """
    Change a user's role.

    - **Requires users:read** (MANAGER or higher); can_assign_role decides the rest
    - SUPER_ADMIN assigns any role, ADMIN any but SUPER_ADMIN, MANAGER only USER/EMPLOYEE
    - Cannot change your own role

    The new role takes effect at the user's next login.
    """
    service = AuthService(db)
    user = service.change_role(user_id, role_update.role, claim)
    return ok("Role updated successfully", UserResponse.model_validate(user))
