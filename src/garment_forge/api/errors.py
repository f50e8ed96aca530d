"""Translate domain errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from garment_forge.core.errors import (
    ArtifactNotFoundError,
    GarmentForgeError,
    ItemNotFoundError,
    JobNotFoundError,
    JobStateError,
    MissingVectorSourceError,
    ParseError,
    TemplateNotFoundError,
    VariantLimitError,
    VariantNotFoundError,
)

_STATUS_BY_ERROR: dict[type[GarmentForgeError], int] = {
    ItemNotFoundError: status.HTTP_404_NOT_FOUND,
    TemplateNotFoundError: status.HTTP_404_NOT_FOUND,
    VariantNotFoundError: status.HTTP_404_NOT_FOUND,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    ArtifactNotFoundError: status.HTTP_404_NOT_FOUND,
    MissingVectorSourceError: status.HTTP_400_BAD_REQUEST,
    ParseError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    VariantLimitError: status.HTTP_409_CONFLICT,
    JobStateError: status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: GarmentForgeError) -> HTTPException:
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
