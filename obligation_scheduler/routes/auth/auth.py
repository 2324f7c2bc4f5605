from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError

from obligation_scheduler.config import get_settings
from obligation_scheduler.db import USERS, get_collection

ADMIN_ROLES = {"Admin", "Owner", "Superadmin"}

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_users_collection():
    return get_collection(USERS)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    users=Depends(get_users_collection),
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("type") != "access":
            raise credentials_exception
        user_id: Optional[str] = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception

    user_doc = await users.find_one({"_id": user_id})
    if not user_doc or not user_doc.get("firm_id"):
        raise credentials_exception

    return {
        "id": user_doc["_id"],
        "email": user_doc.get("email"),
        "firm_id": user_doc["firm_id"],
        "role": user_doc.get("role", "Employee"),
    }


async def require_admin_role(current_user: dict = Depends(get_current_user)):
    """Dependency to ensure user may manage patterns and automation"""
    if current_user.get("role") not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user
