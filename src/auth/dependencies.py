# src/auth/dependencies.py

from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from jwt.exceptions import DecodeError
import jwt

from src.common.config import settings
from src.common.database.database import get_db_session
from src.common.utils.global_messages import GlobalMessages
from src.models.models import Profile, UserRole

bearer_scheme = HTTPBearer()

async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session)
) -> Profile:
    """
    Dependency to retrieve the current profile based on the JWT token provided in the Authorization header.
    """
    token = credentials.credentials

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=GlobalMessages.INVALID_CREDENTIALS,
        headers={"WWW-Authenticate": "Bearer"}
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        user_id = UUID(payload.get("sub"))
    except DecodeError:
        raise credentials_exception
    except jwt.ExpiredSignatureError:
        raise credentials_exception
    except jwt.InvalidTokenError:
        raise credentials_exception
    except (TypeError, ValueError) as e:
        raise credentials_exception from e

    result = await db.execute(select(Profile).where(Profile.id == user_id))
    user = result.scalars().first()
    if user is None:
        raise credentials_exception
    return user


def require_role(*roles: UserRole):
    """Dependency factory restricting a route to the given profile roles."""

    async def checker(current_user: Profile = Depends(get_current_user)) -> Profile:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=GlobalMessages.ROLE_NOT_ALLOWED,
            )
        return current_user

    return checker


get_current_rider = require_role(UserRole.RIDER)
get_current_patient = require_role(UserRole.PATIENT)
get_current_admin = require_role(UserRole.ADMIN)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session)
) -> UUID:
    """
    Authenticate like ``get_current_user`` and return only the profile id.

    The session is closed before returning, so long-lived responses such as
    event streams do not keep a pooled connection checked out.
    """
    user = await get_current_user(credentials, db)
    user_id = user.id
    await db.close()
    return user_id
