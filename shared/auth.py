import datetime
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from shared.core.config import settings
from shared.core.schemas import UserToken

security = HTTPBearer()


def create_access_token(data: dict):
    expires = datetime.datetime.now(datetime.timezone.utc) + \
        datetime.timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    data = dict(data)
    data.update({'exp': expires})
    if 'name' not in data and 'full_name' in data:
        data['name'] = data['full_name']

    return jwt.encode(data, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> UserToken:
    """Verify and decode a JWT token issued by the auth service."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET,
                             algorithms=[settings.JWT_ALGORITHM])
        return UserToken(**payload)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def validate_current_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> UserToken:
    # Users live in the auth service; a valid signature is all we check here
    return verify_token(credentials.credentials)
