import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from backend.auth import jwt_handler
from backend.database import get_db
from backend.models.appointment import CancelledBy
from backend.models.user import User, UserRole

security = HTTPBearer()

ROLE_ATTRIBUTION = {
    UserRole.PATIENT.value: CancelledBy.PATIENT,
    UserRole.PROVIDER.value: CancelledBy.PROVIDER,
    UserRole.ADMIN.value: CancelledBy.ADMIN,
}


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    try:
        claims = jwt_handler.decode_access_token(credentials.credentials)
    except jwt_handler.InvalidSubject as exc:
        raise HTTPException(status_code=401, detail="Invalid token subject") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    user = db.get(User, claims.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def attribution_for(user: User) -> CancelledBy:
    try:
        return ROLE_ATTRIBUTION[user.role]
    except KeyError as exc:
        raise HTTPException(status_code=403, detail="Unknown role") from exc


def require_admin_or_provider(user: User, provider_id: int) -> None:
    if user.role == UserRole.ADMIN.value:
        return
    if user.role == UserRole.PROVIDER.value and user.id == provider_id:
        return
    raise HTTPException(status_code=403, detail="Only the provider or an admin can manage this availability.")
