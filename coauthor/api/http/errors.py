from fastapi import HTTPException, status

from coauthor.core.errors import (
    CoauthorError, GenerationFailure, InvalidIdentifier, NotFoundOrUnauthorized, SlugConflict
)

STATUS_CODES = {
    InvalidIdentifier: status.HTTP_400_BAD_REQUEST,
    NotFoundOrUnauthorized: status.HTTP_404_NOT_FOUND,
    SlugConflict: status.HTTP_409_CONFLICT,
    GenerationFailure: status.HTTP_502_BAD_GATEWAY,
}


def to_http_exception(error: CoauthorError) -> HTTPException:
    """Перевод доменной ошибки в HTTP-ответ"""
    for error_class, status_code in STATUS_CODES.items():
        if isinstance(error, error_class):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
