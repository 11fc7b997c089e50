from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel

# Collection names shared with the portal frontend.
PENDING_COLLECTION = "idcards"
APPROVED_COLLECTION = "printids"
REJECTED_COLLECTION = "rejectedidcards"
FACULTY_COLLECTION = "facultynumbers"
ACCEPTED_HISTORY_COLLECTION = "acchistoryids"
REJECTED_HISTORY_COLLECTION = "rejhistoryids"

# Request records are schema-less.
Document = Dict[str, Any]


class RequestStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class StatusUpdate(BaseModel):
    status: str


class MessageResponse(BaseModel):
    message: str


class FacultyCheckResponse(BaseModel):
    valid: bool


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: str
