from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ConnectionInfoResponse(BaseModel):
    store_id: str
    database_type: str
    host: Optional[str] = None
    connection_status: str
    last_connection_test: Optional[datetime] = None
    cached: bool
    cached_at: Optional[datetime] = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str
    database_type: Optional[str] = None
