from coauthor.domains.documents.entities import (
    DocumentVersion, DocumentKind, Visibility, UpdateOutcome, VersionUpdateResult,
    parse_document_id, is_valid_document_id
)
from coauthor.domains.documents.schemas import (
    DocumentWriteRequest, DocumentPublishRequest, DocumentVersionResponse,
    DocumentSummaryResponse, DocumentPageResponse, DocumentSearchResult,
    DocumentSearchResponse, DocumentRenameResponse, DocumentUpdateResponse, DocumentDeleteResponse
)

__all__ = [
    "DocumentVersion", "DocumentKind", "Visibility", "UpdateOutcome", "VersionUpdateResult",
    "parse_document_id", "is_valid_document_id",
    "DocumentWriteRequest", "DocumentPublishRequest", "DocumentVersionResponse",
    "DocumentSummaryResponse", "DocumentPageResponse", "DocumentSearchResult",
    "DocumentSearchResponse", "DocumentRenameResponse", "DocumentUpdateResponse", "DocumentDeleteResponse",
]
