"""Uniform error envelope returned by every failing endpoint."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response schema."""
    timestamp: datetime = Field(..., description="When the error was produced")
    status: int = Field(..., description="HTTP status code")
    error: str = Field(..., description="Error category label")
    messages: List[str] = Field(..., description="Human-readable messages")
    path: Optional[str] = Field(None, description="Request path")

    model_config = {
        "json_schema_extra": {
            "example": {
                "timestamp": "2025-07-05T12:00:00Z",
                "status": 422,
                "error": "API Error",
                "messages": ["ViaCEP não retornou dados para o CEP: 66050080"],
                "path": "/api/calculos"
            }
        }
    }
