from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from enum import Enum
from typing import Optional, List


class Provenance(str, Enum):
    """How a knowledge entry came to exist"""
    SUPERVISOR = "SUPERVISOR"
    MANUAL = "MANUAL"
    INITIAL = "INITIAL"


class RequestStatus(str, Enum):
    """Help request lifecycle states"""
    PENDING = "PENDING"
    RESOLVED = "RESOLVED"
    UNRESOLVED = "UNRESOLVED"


class Speaker(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


# Domain records

class KnowledgeEntry(BaseModel):
    id: int
    question: str
    answer: str
    category: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    provenance: Provenance
    source_request_id: Optional[int] = None
    usage_count: int = 0
    last_used_at: Optional[datetime] = None
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HelpRequest(BaseModel):
    id: int
    customer_phone: str
    customer_name: Optional[str] = None
    question: str
    context: Optional[str] = None
    status: RequestStatus
    supervisor_response: Optional[str] = None
    supervisor_name: Optional[str] = None
    responded_at: Optional[datetime] = None
    session_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class HelpRequestStats(BaseModel):
    pending: int
    resolved: int
    unresolved: int
    total: int
    resolution_rate: str


class Turn(BaseModel):
    speaker: Speaker
    text: str


class UtteranceResult(BaseModel):
    reply: str
    escalated: bool
    help_request_id: Optional[int] = None


# Request bodies

class ResolveRequestBody(BaseModel):
    supervisor_response: str = Field(min_length=1)
    supervisor_name: str = Field(min_length=1)
    resolved: bool = True


class KBEntry(BaseModel):
    question: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    category: Optional[str] = None


class SearchBody(BaseModel):
    question: str = Field(min_length=1)


class TokenRequest(BaseModel):
    roomName: str
    participantName: str
    customerPhone: Optional[str] = None


class SpeechBody(BaseModel):
    roomName: str
    speech: str = Field(min_length=1)

    @field_validator("speech")
    @classmethod
    def speech_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("speech must not be blank")
        return v


class EndCallBody(BaseModel):
    roomName: str
