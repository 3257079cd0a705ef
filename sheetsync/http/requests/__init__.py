"""
HTTP request schemas.
"""
from sheetsync.http.requests.schemas import (
    FileIdRequest,
    SheetNameRequest,
    MappingRequest,
    CreateSpreadsheetRequest,
)
