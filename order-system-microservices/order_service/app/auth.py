from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .database import get_db
from .exceptions import AdminNotAuthenticated
from .models import AdminUser


def get_current_admin(
    x_admin_id: Optional[str] = Header(None, alias="X-Admin-Id"),
    db: Session = Depends(get_db),
) -> AdminUser:
    """FastAPI dependency resolving the admin set by the upstream auth layer."""
    if not x_admin_id:
        raise AdminNotAuthenticated("Admin ID not found in request")
    admin = db.get(AdminUser, x_admin_id)
    if admin is None:
        raise AdminNotAuthenticated(f"Unknown admin {x_admin_id}")
    return admin
