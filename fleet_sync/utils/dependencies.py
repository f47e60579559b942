from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import settings
from ..exceptions import AuthorizationError
from .logging_config import user_id_var
from .security import CallerIdentity, verify_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)
) -> CallerIdentity:
    """Resolve the caller from the bearer token"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    caller = verify_access_token(credentials.credentials)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.user_id = caller.user_id
    user_id_var.set(caller.user_id)
    return caller


async def require_fleet_manager(
    current_user: CallerIdentity = Depends(get_current_user)
) -> CallerIdentity:
    """Only fleet managers may sync availability or resolve conflicts"""
    if current_user.role not in settings.fleet_manager_role_list:
        raise AuthorizationError(f"Role '{current_user.role}' is not permitted to manage fleet availability")
    return current_user
