from fastapi import Depends, HTTPException, status
from pfmp.modules.auth.models.user import User
from pfmp.modules.auth.permission import can_perform_action
from pfmp.modules.auth.controllers.auth_controller import get_current_user
from pfmp.modules.auth.services.auth_service import AuthService

def require_permission(action: str):
    def dependency(current_user: User = Depends(get_current_user)):
        if AuthService.identity_for(current_user).is_privileged:
            return current_user
        if not can_perform_action(current_user.role, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Le rôle '{current_user.role.value}' ne permet pas l'action '{action}'"
            )
        return current_user
    return dependency
