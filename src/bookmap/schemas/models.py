from __future__ import annotations
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

class FieldPreview(BaseModel):
    # One target field resolved against one sample row/payload
    expression: str
    value: Any = None
    preview: str = 'No value'
    error: Optional[str] = None

class MappingReport(BaseModel):
    # Result of checking a mapping configuration against a sample
    schema_version: str = Field(default='0.1.0')
    pipeline: str
    is_valid: bool
    base_complete: bool
    missing_fields: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    preview: Dict[str, FieldPreview] = Field(default_factory=dict)

class RowReport(BaseModel):
    ordinal: int
    platform: str
    status: str  # valid|duplicate|invalid
    errors: List[str] = Field(default_factory=list)
    record: Dict[str, Any]

class ImportReport(BaseModel):
    # Summary of one import run (dry-run or committed)
    schema_version: str = Field(default='0.1.0')
    source: str
    pipeline: str
    total: int
    valid: int
    duplicate: int
    invalid: int
    committed: int = 0
    failed: int = 0
    rows: List[RowReport] = Field(default_factory=list)
