"""
Order Service / 認証

- ユーザー向け API: Bearer JWT (HS256)。ユーザー ID は uid クレームに入る。
- 決済コールバック: X-Payment-Auth ヘッダが共有シークレットと一致すること。
"""

import hmac
import logging

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
AUTH_PAYMENT_HEADER_KEY = "X-Payment-Auth"

bearer_scheme = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> int:
    if credentials is None:
        raise _unauthorized()
    try:
        claims = jwt.decode(
            credentials.credentials, settings.jwt_secret_key, algorithms=[ALGORITHM]
        )
    except JWTError as e:
        logger.warning("Rejected bearer token: %s", e)
        raise _unauthorized() from e

    try:
        user_id = int(claims.get("uid") or 0)
    except (TypeError, ValueError):
        user_id = 0
    if user_id <= 0:
        logger.warning("Bearer token has no usable uid claim")
        raise _unauthorized()
    return user_id


def verify_payment_callback(
    x_payment_auth: str | None = Header(default=None, alias=AUTH_PAYMENT_HEADER_KEY),
    settings: Settings = Depends(get_settings),
) -> None:
    if not x_payment_auth or not hmac.compare_digest(
        x_payment_auth.encode(), settings.auth_payment_header.encode()
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
