from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from library_desk import crud
from library_desk.auth import decode_access_token
from library_desk.database import get_db
from library_desk.errors import AuthorizationError
from library_desk.models import Profile
from library_desk.retry import retry_read

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> Profile:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exception

    user = retry_read(crud.get_profile, db, user_id)
    if user is None:
        raise credentials_exception
    return user


def get_current_admin(current_user: Profile = Depends(get_current_user)) -> Profile:
    if not current_user.is_admin:
        raise AuthorizationError("Administrator users only.")
    return current_user
