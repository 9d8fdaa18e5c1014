"""
Pydantic schemas for API request/response models.

Request bodies carry one of three shapes: (table), (table, key),
(table, key, value). Content is not validated here; the store owns that.
"""
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, Field


# === Request Schemas ===

class TableRequest(BaseModel):
    """Body naming a table."""
    table: str


class TableKeyRequest(TableRequest):
    """Body naming a key within a table."""
    key: str


class TableKeyValueRequest(TableKeyRequest):
    """Body carrying a value for a key within a table."""
    value: str


# === Response Envelope ===

class ApiResponse(BaseModel):
    """Uniform response envelope for every endpoint."""
    status: str  # success, error
    message: str
    data: Optional[str] = None

    @classmethod
    def success(cls, message: str, data: Optional[str] = None) -> "ApiResponse":
        return cls(status="success", message=message, data=data)

    @classmethod
    def error(cls, message: str) -> "ApiResponse":
        return cls(status="error", message=message, data=None)


# === Health Check Schemas ===

class HealthStatus(BaseModel):
    """System health status."""
    status: str  # ok, unhealthy
    service: str
    timestamp: datetime
    database: dict[str, Any] = Field(default_factory=dict)
