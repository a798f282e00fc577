from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..models.user import User
from .roles import Actor
from .security import decode_token

bearer = HTTPBearer(auto_error=False)

async def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(bearer),
    session: AsyncSession = Depends(get_session),
) -> User:
    if not creds:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_token(creds.credentials)
        user_id = str(payload["sub"])
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await session.get(User, user_id)
    if not user or not user.active:
        raise HTTPException(status_code=401, detail="User not found")
    return user

async def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    return Actor(id=user.id, role=user.role, company_id=user.company_id)
