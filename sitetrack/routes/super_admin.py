# SiteTrack - Super Admin Routes
# Activation of newly signed-up admin accounts

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from sitetrack.database import get_db
from sitetrack.dependencies import require_super_admin
from sitetrack.models.admin import Admin
from sitetrack.schemas import AdminActivation, AdminOut
from sitetrack.services.auth import AuthService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/super-admin", tags=["super-admin"])


@router.get("/pending-admins", response_model=list[AdminOut])
def pending_admins(
    super_admin: Admin = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    """Admins that have not been activated yet, oldest signup first."""
    return db.execute(
        select(Admin)
        .where(Admin.is_active == False)
        .where(Admin.role == Admin.ROLE_ADMIN)
        .order_by(Admin.created_at, Admin.id)
    ).scalars().all()


@router.put("/activate-admin", response_model=AdminOut)
def activate_admin(
    payload: AdminActivation,
    super_admin: Admin = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    """Activate or deactivate an admin account. Deactivation ends its sessions."""
    if payload.admin_id == super_admin.id:
        raise HTTPException(status_code=400, detail="Cannot change your own activation status")

    admin = AuthService(db).set_admin_active(payload.admin_id, payload.is_active)
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not found")

    logger.info(
        "Super admin %s %s admin %s",
        super_admin.id, "activated" if payload.is_active else "deactivated", admin.id,
    )
    return admin
