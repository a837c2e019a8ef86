# SiteTrack - Authentication Routes
# Signup, login, logout, email verification and password management

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from sitetrack.database import get_db
from sitetrack.dependencies import get_current_admin, get_current_principal
from sitetrack.models.admin import Admin
from sitetrack.models.user_session import UserSession
from sitetrack.schemas import (
    AdminLoginResponse,
    AdminOut,
    AdminSignup,
    AdminUpdate,
    ChangePasswordRequest,
    EmployeeLoginResponse,
    EmployeeOut,
    LoginRequest,
    MessageResponse,
    SignupResponse,
    VerifyEmailRequest,
)
from sitetrack.services.auth import AuthService, AuthenticationError, Principal


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _stamp_session(request: Request, session: UserSession, db: Session) -> None:
    """Record request metadata on a freshly created session."""
    session.ip_address = request.client.host if request.client else None
    session.user_agent = request.headers.get("user-agent", "")[:500]
    db.commit()


# =============================================================================
# Admin
# =============================================================================

@router.post("/admin/signup", response_model=SignupResponse, status_code=201)
def admin_signup(
    payload: AdminSignup,
    db: Session = Depends(get_db),
):
    """
    Register a new admin account.

    The account cannot log in until the email is verified and a super
    admin activates it.
    """
    auth = AuthService(db)

    try:
        admin = auth.signup_admin(
            first_name=payload.first_name,
            last_name=payload.last_name,
            company_name=payload.company_name,
            email=payload.email,
            password=payload.password,
        )
    except AuthenticationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # No mail transport: the verification link is delivered out of band
    logger.debug("Verification token issued for admin %s", admin.id)

    return SignupResponse(
        message="Account created. Please check your email to verify your account.",
        admin=AdminOut.model_validate(admin),
    )


@router.post("/admin/verify-email", response_model=MessageResponse)
def admin_verify_email(
    payload: VerifyEmailRequest,
    db: Session = Depends(get_db),
):
    admin = AuthService(db).verify_admin_email(payload.token)
    if not admin:
        raise HTTPException(status_code=400, detail="Invalid or expired verification token")

    return MessageResponse(
        message="Email verified successfully. Your account is pending activation by a Super Admin."
    )


@router.post("/admin/login", response_model=AdminLoginResponse)
def admin_login(
    request: Request,
    payload: LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Log an admin in.

    On success: returns the bearer token and the admin profile.
    On failure: 401 with the reason (bad credentials, unverified, inactive).
    """
    auth = AuthService(db)

    try:
        admin, session = auth.login_admin(payload.email, payload.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    _stamp_session(request, session, db)
    return AdminLoginResponse(token=session.session_token, admin=AdminOut.model_validate(admin))


@router.get("/admin/profile", response_model=AdminOut)
def admin_profile(admin: Admin = Depends(get_current_admin)):
    return admin


@router.put("/admin/profile", response_model=AdminOut)
def update_admin_profile(
    payload: AdminUpdate,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(admin, field, value.strip())
    db.commit()
    return admin


@router.post("/admin/change-password", response_model=MessageResponse)
def admin_change_password(
    payload: ChangePasswordRequest,
    admin: Admin = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    try:
        AuthService(db).change_password(admin, payload.current_password, payload.new_password)
    except AuthenticationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return MessageResponse(message="Password updated")


# =============================================================================
# Employee
# =============================================================================

@router.post("/employee/login", response_model=EmployeeLoginResponse)
def employee_login(
    request: Request,
    payload: LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Log an employee in.

    Any session the employee holds on another device is closed.
    """
    auth = AuthService(db)

    try:
        employee, session = auth.login_employee(payload.email, payload.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    _stamp_session(request, session, db)
    return EmployeeLoginResponse(
        token=session.session_token,
        employee=EmployeeOut.model_validate(employee),
    )


# =============================================================================
# Logout (either role)
# =============================================================================

@router.post("/admin/logout", response_model=MessageResponse)
@router.post("/employee/logout", response_model=MessageResponse)
def logout(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Invalidate the caller's session."""
    AuthService(db).logout(principal.session.session_token)
    return MessageResponse(message="Logged out successfully")
