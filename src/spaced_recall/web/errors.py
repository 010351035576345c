"""Translation of domain errors into HTTP errors."""

from fastapi import HTTPException, status

from spaced_recall.core.generators import GenerationError
from spaced_recall.errors import DuplicateError, NotFoundError, ValidationError
from spaced_recall.integrations.calendar import CalendarError
from spaced_recall.integrations.notion import NotionSyncError
from spaced_recall.integrations.obsidian import ObsidianImportError
from spaced_recall.integrations.sync import SyncError
from spaced_recall.llm.client import LLMError
from spaced_recall.utils.validators import AmbiguousIdError, IdNotFoundError

DOMAIN_ERRORS = (
    NotFoundError,
    IdNotFoundError,
    DuplicateError,
    ValidationError,
    AmbiguousIdError,
    ObsidianImportError,
    SyncError,
    NotionSyncError,
    CalendarError,
    GenerationError,
    LLMError,
)

_STATUS_BY_ERROR = (
    ((NotFoundError, IdNotFoundError), status.HTTP_404_NOT_FOUND),
    ((DuplicateError,), status.HTTP_409_CONFLICT),
    ((ValidationError, AmbiguousIdError, ObsidianImportError), status.HTTP_400_BAD_REQUEST),
    ((SyncError, NotionSyncError, CalendarError, GenerationError, LLMError), status.HTTP_502_BAD_GATEWAY),
)


def to_http(error: Exception) -> HTTPException:
    """HTTPException for a domain error; 500 for anything unmapped."""
    for types, code in _STATUS_BY_ERROR:
        if isinstance(error, types):
            return HTTPException(status_code=code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
