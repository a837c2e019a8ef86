# SiteTrack - Authentication Dependencies
# FastAPI dependencies for protecting routes

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from sitetrack.database import get_db
from sitetrack.models.admin import Admin
from sitetrack.models.employee import Employee
from sitetrack.services.auth import AuthService, Principal
from sitetrack.services.realtime import ConnectionManager


bearer_scheme = HTTPBearer(auto_error=False)


def get_session_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """
    Extract the bearer token from the Authorization header.

    Returns None if no token is present.
    """
    if credentials is None:
        return None
    return credentials.credentials


def get_current_principal(
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Get the authenticated caller or raise 401.

    Usage:
        @router.post("/logout")
        def logout(principal: Principal = Depends(get_current_principal)):
            ...
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = AuthService(db).validate_session(token)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return principal


def get_current_admin(
    principal: Principal = Depends(get_current_principal),
) -> Admin:
    """
    Require the caller to be an admin.

    Usage:
        @router.get("/api/admin/sites")
        def list_sites(admin: Admin = Depends(get_current_admin)):
            # admin is guaranteed to be an active, verified admin
            ...
    """
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return principal.user


def get_current_employee(
    principal: Principal = Depends(get_current_principal),
) -> Employee:
    """Require the caller to be an employee."""
    if not principal.is_employee:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Employee access required",
        )
    return principal.user


def require_super_admin(
    admin: Admin = Depends(get_current_admin),
) -> Admin:
    """Require the caller to be a super admin."""
    if not admin.is_super_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Super admin access required",
        )
    return admin


def get_hub(request: Request) -> ConnectionManager:
    """The application's realtime hub (created in create_app)."""
    return request.app.state.hub
