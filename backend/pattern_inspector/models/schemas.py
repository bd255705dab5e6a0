from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field


class AnalysisConfigUpdate(BaseModel):
    location_column: Optional[str] = Field(None, min_length=1)
    name_column: Optional[str] = Field(None, min_length=1)
    parent_column: Optional[str] = Field(None, min_length=1)
    strict_patterns: Optional[bool] = None


class ValidationResponse(BaseModel):
    success: bool
    errors: List[str] = []
    warnings: List[str] = []
