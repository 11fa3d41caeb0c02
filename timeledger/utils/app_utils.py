import logging
from datetime import datetime, timezone, timedelta
from typing import Any, Dict

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from timeledger.config import settings
from timeledger.exceptions import get_user_exception
from timeledger.utils.share_utils import SHARE_TOKEN_TYPE

UTC = timezone.utc

oauth2_bearer = OAuth2PasswordBearer(tokenUrl="auth/login/")

secret_key = settings.SECRET_KEY
algorithm = settings.ALGORITHM

logger = logging.getLogger(__name__)


def create_access_token(payload: Dict[str, Any], expiry: timedelta):
    data_to_encode = {"data": payload, "typ": "access"}
    expiry_delta = datetime.now(UTC) + expiry
    data_to_encode.update({"exp": expiry_delta})
    encoded_data: str = jwt.encode(data_to_encode, secret_key, algorithm)

    return encoded_data


async def get_current_owner(token: str = Depends(oauth2_bearer)) -> str:
    """
    Resolves the owner id from an access token issued by the auth service.
    Share tokens are signed with the same key and are rejected here.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError as e:
        logger.warning("JWT Error %s", e)
        raise get_user_exception()

    if payload.get("typ") == SHARE_TOKEN_TYPE:
        raise get_user_exception()

    data = payload.get("data")
    if data is None:
        raise HTTPException(status_code=401, detail="Invalid token data.")

    owner_id = data.get("sub")
    if owner_id is None:
        raise HTTPException(status_code=401, detail="Could not validate user.")

    return str(owner_id)
