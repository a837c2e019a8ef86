# SiteTrack - Authentication Service
# Password hashing, bearer sessions, login/logout, admin onboarding

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union
import secrets

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.orm import Session

from sitetrack.config import get_settings
from sitetrack.models.admin import Admin
from sitetrack.models.employee import Employee
from sitetrack.models.user_session import UserSession


logger = logging.getLogger(__name__)

settings = get_settings()

# Password hashing configuration
# Using bcrypt with automatic salt generation
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class AuthorizationError(Exception):
    """Raised when user lacks permission."""
    pass


@dataclass
class Principal:
    """The authenticated caller behind a bearer token."""

    user_type: str
    user: Union[Admin, Employee]
    session: UserSession

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserSession.USER_ADMIN

    @property
    def is_employee(self) -> bool:
        return self.user_type == UserSession.USER_EMPLOYEE


class AuthService:
    """
    Authentication service for login, logout, and session management.

    Usage:
        auth = AuthService(db)

        # Login
        admin, session = auth.login_admin("boss@example.com", "password123")

        # Validate the bearer token on later requests
        principal = auth.validate_session(session.session_token)

        # Logout
        auth.logout(session.session_token)

    Sessions are stored in the database for easy invalidation; the same
    token authenticates REST calls (Authorization header) and the
    realtime socket (?token= query parameter).
    """

    def __init__(self, db: Session):
        self.db = db

    def hash_password(self, plain_password: str) -> str:
        """
        Hash a plain text password.

        Uses bcrypt with automatic salt generation.
        """
        return pwd_context.hash(plain_password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a plain text password against a hash.

        Returns True if password matches, False otherwise.
        """
        try:
            return pwd_context.verify(plain_password, hashed_password)
        except (ValueError, TypeError):
            # Invalid hash format
            return False

    def email_exists(self, email: str) -> bool:
        """Emails are unique across admins and employees."""
        email = email.strip().lower()
        admin = self.db.execute(
            select(Admin.id).where(Admin.email == email)
        ).first()
        if admin:
            return True
        employee = self.db.execute(
            select(Employee.id).where(Employee.email == email)
        ).first()
        return employee is not None

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate_admin(self, email: str, password: str) -> Admin:
        """
        Authenticate an admin by email and password.

        Raises:
            AuthenticationError: If credentials are invalid, the email is
                unverified, or a super admin has not activated the account
        """
        admin = self.db.execute(
            select(Admin).where(Admin.email == email.strip().lower())
        ).scalar_one_or_none()

        # Don't reveal whether the email exists
        if not admin or not self.verify_password(password, admin.password_hash):
            raise AuthenticationError("Invalid credentials")

        if not admin.is_verified:
            raise AuthenticationError(
                "Email not verified. Please check your email and verify your account."
            )

        if not admin.is_active:
            raise AuthenticationError(
                "Account pending activation by Super Admin. Please contact support."
            )

        return admin

    def authenticate_employee(self, email: str, password: str) -> Employee:
        """
        Authenticate an employee by email and password.

        Raises:
            AuthenticationError: If credentials are invalid or the account
                was deactivated
        """
        employee = self.db.execute(
            select(Employee).where(Employee.email == email.strip().lower())
        ).scalar_one_or_none()

        if not employee or not self.verify_password(password, employee.password_hash):
            raise AuthenticationError("Invalid credentials")

        if not employee.is_active:
            raise AuthenticationError("Account is inactive")

        return employee

    def generate_session_token(self) -> str:
        """
        Generate a cryptographically secure session token.

        Returns a 64-character hex string (256 bits of entropy).
        """
        return secrets.token_hex(32)

    def create_session(self, user_type: str, user_id: int) -> UserSession:
        """Open a new bearer session for a user."""
        session = UserSession(
            user_type=user_type,
            user_id=user_id,
            session_token=self.generate_session_token(),
            expires_at=datetime.utcnow() + timedelta(minutes=settings.session_expire_minutes),
            created_at=datetime.utcnow(),
        )
        self.db.add(session)
        self.db.commit()
        return session

    def login_admin(self, email: str, password: str) -> tuple[Admin, UserSession]:
        admin = self.authenticate_admin(email, password)
        session = self.create_session(UserSession.USER_ADMIN, admin.id)
        logger.info("Admin %s logged in", admin.id)
        return admin, session

    def login_employee(self, email: str, password: str) -> tuple[Employee, UserSession]:
        """
        Authenticate an employee and open a session.

        Employees are limited to one device: any other active session
        for the employee is invalidated first.
        """
        employee = self.authenticate_employee(email, password)

        closed = self.logout_all_sessions(UserSession.USER_EMPLOYEE, employee.id)
        if closed:
            logger.info("Employee %s logged in elsewhere; closed %d session(s)", employee.id, closed)

        session = self.create_session(UserSession.USER_EMPLOYEE, employee.id)
        logger.info("Employee %s logged in", employee.id)
        return employee, session

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def validate_session(self, session_token: str) -> Optional[Principal]:
        """
        Validate a session token and return the associated principal.

        Returns None if the token is unknown, logged out, expired, or the
        user behind it is no longer active.
        """
        session = self.db.execute(
            select(UserSession)
            .where(UserSession.session_token == session_token)
            .where(UserSession.is_active == True)
        ).scalar_one_or_none()

        if not session:
            return None

        # Check expiration
        if session.is_expired:
            session.is_active = False
            self.db.commit()
            return None

        if session.user_type == UserSession.USER_ADMIN:
            user = self.db.get(Admin, session.user_id)
        else:
            user = self.db.get(Employee, session.user_id)

        if user is None or not user.is_active:
            return None

        # Update last activity
        session.last_activity_at = datetime.utcnow()
        self.db.commit()

        return Principal(session.user_type, user, session)

    def logout(self, session_token: str) -> bool:
        """
        Invalidate a session.

        Returns:
            True if session was found and invalidated, False otherwise
        """
        session = self.db.execute(
            select(UserSession)
            .where(UserSession.session_token == session_token)
        ).scalar_one_or_none()

        if not session:
            return False

        session.invalidate()
        self.db.commit()

        return True

    def logout_all_sessions(self, user_type: str, user_id: int) -> int:
        """
        Invalidate all sessions for a user.

        Returns:
            Number of sessions invalidated
        """
        result = self.db.execute(
            select(UserSession)
            .where(UserSession.user_type == user_type)
            .where(UserSession.user_id == user_id)
            .where(UserSession.is_active == True)
        ).scalars().all()

        for session in result:
            session.invalidate()

        self.db.commit()
        return len(result)

    # ------------------------------------------------------------------
    # Admin onboarding
    # ------------------------------------------------------------------

    def signup_admin(
        self,
        first_name: str,
        last_name: str,
        company_name: str,
        email: str,
        password: str,
    ) -> Admin:
        """
        Register a new admin account.

        The account starts unverified and inactive: the email must be
        verified with the returned admin's verification_token, then a
        super admin activates it.

        Raises:
            AuthenticationError: If the email is already in use
        """
        if self.email_exists(email):
            raise AuthenticationError(
                "Email address already exists. Please use a different email address."
            )

        admin = Admin(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            company_name=company_name.strip(),
            email=email.strip().lower(),
            password_hash=self.hash_password(password),
            role=Admin.ROLE_ADMIN,
            is_verified=False,
            is_active=False,
            verification_token=secrets.token_urlsafe(32),
        )
        self.db.add(admin)
        self.db.commit()

        logger.info("Admin signup %s (%s) pending verification", admin.id, admin.company_name)
        return admin

    def verify_admin_email(self, token: str) -> Optional[Admin]:
        """Mark the admin holding this verification token as verified."""
        admin = self.db.execute(
            select(Admin).where(Admin.verification_token == token)
        ).scalar_one_or_none()

        if not admin:
            return None

        admin.is_verified = True
        admin.verification_token = None
        self.db.commit()
        return admin

    def set_admin_active(self, admin_id: int, is_active: bool) -> Optional[Admin]:
        """Super admin action: activate or deactivate an admin account."""
        admin = self.db.get(Admin, admin_id)
        if not admin:
            return None

        admin.is_active = is_active
        if not is_active:
            self.logout_all_sessions(UserSession.USER_ADMIN, admin.id)
        self.db.commit()
        return admin

    def create_super_admin(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        company_name: str = "SiteTrack",
    ) -> Admin:
        """Create an already verified and active super admin (bootstrap only)."""
        if self.email_exists(email):
            raise AuthenticationError("Admin with this email already exists")

        admin = Admin(
            first_name=first_name,
            last_name=last_name,
            company_name=company_name,
            email=email.strip().lower(),
            password_hash=self.hash_password(password),
            role=Admin.ROLE_SUPER_ADMIN,
            is_verified=True,
            is_active=True,
        )
        self.db.add(admin)
        self.db.commit()
        return admin

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def set_password(self, user: Union[Admin, Employee], new_password: str) -> None:
        """Set or update a user's password."""
        user.password_hash = self.hash_password(new_password)
        self.db.commit()

    def change_password(
        self,
        user: Union[Admin, Employee],
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Change a user's password (requires current password).

        Raises:
            AuthenticationError: If current password is wrong
        """
        if not self.verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        self.set_password(user, new_password)
