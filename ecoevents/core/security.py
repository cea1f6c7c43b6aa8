# ecoevents/core/security.py
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ecoevents.core.config import settings

bearer_scheme = HTTPBearer(auto_error=False)


class Caller(NamedTuple):
    """Identity handed over by the auth service; trusted once decoded."""
    user_id: str
    roles: List[str]

    def has_role(self, role: str) -> bool:
        return role in self.roles


def create_token(user_id: str, roles: List[str], minutes: Optional[int] = None) -> str:
    # tokens are minted by the auth service; this helper serves tests and local tooling
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "roles": list(roles),
        "iat": now,
        "exp": now + timedelta(minutes=minutes or settings.access_ttl_min),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)

def decode_token(token: str) -> Caller:
    try:
        data = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    sub = data.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return Caller(user_id=str(sub), roles=list(data.get("roles") or []))

async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    if creds is None or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing token")
    return decode_token(creds.credentials)

def require_role(role: str):
    async def checker(user: Caller = Depends(get_current_user)) -> Caller:
        if not user.has_role(role):
            raise HTTPException(status_code=403, detail="Not enough permissions")
        return user
    return checker
