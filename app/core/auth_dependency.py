import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.security import decode_access_token
from app.db.models.tenant import Tenant
from app.db.session import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Get the auth user ID (``sub``) from the bearer token."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not settings.auth_jwt_secret:
        logger.error("AUTH_JWT_SECRET not configured")
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = decode_access_token(
            credentials.credentials,
            settings.auth_jwt_secret,
            algorithm=settings.auth_jwt_algorithm,
            audience=settings.auth_jwt_audience,
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Unauthorized")

    auth_user_id = payload.get("sub")
    if auth_user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    return auth_user_id


def get_current_tenant(
    auth_user_id: str = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Tenant:
    """Get the current Tenant from the bearer token."""
    tenant = db.query(Tenant).filter(Tenant.auth_user_id == auth_user_id).first()
    if not tenant:
        raise HTTPException(
            status_code=404,
            detail="Tenant not found"
        )
    return tenant
