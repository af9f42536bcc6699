from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hospital.auth import jwt_handler

security = HTTPBearer()

ROLES = {"patient", "doctor", "admin"}


@dataclass(frozen=True)
class CurrentUser:
    id: int
    role: str


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid token subject") from exc

    role = payload.get("role")
    if role not in ROLES:
        raise HTTPException(status_code=401, detail="Invalid token role")
    return CurrentUser(id=user_id, role=role)
