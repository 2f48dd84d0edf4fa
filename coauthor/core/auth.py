from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from coauthor.core.security import verify_token

security = HTTPBearer()


@dataclass(frozen=True)
class RequestContext:
    """Всё, что сервисы и инструменты могут знать о вызывающем"""
    user_id: str


def context_from_token(token: Optional[str]) -> Optional[RequestContext]:
    """Контекст запроса из JWT; None, если токен невалиден"""
    if not token:
        return None

    payload = verify_token(token)
    if not payload or not payload.get("sub"):
        return None

    return RequestContext(user_id=str(payload["sub"]))


async def get_request_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> RequestContext:
    """Зависимость для получения владельца запроса"""
    context = context_from_token(credentials.credentials)

    if context is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return context
