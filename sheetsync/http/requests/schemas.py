"""
Pydantic schemas for request validation (Http/Requests).
"""
from pydantic import BaseModel, Field, validator
from typing import Optional

from sheetsync.services.mapping_editor import FIELD_IDS


class FileIdRequest(BaseModel):
    fileId: str = ""

class SheetNameRequest(BaseModel):
    sheetName: str = ""

class MappingRequest(BaseModel):
    field: str
    column: Optional[str] = None

    @validator("field")
    def validate_field(cls, v):
        if v not in FIELD_IDS:
            raise ValueError(f"Unknown field: {v}")
        return v

class CreateSpreadsheetRequest(BaseModel):
    title: str = Field(..., min_length=1)

    @validator("title")
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError("Title must not be blank")
        return v.strip()
