"""
Pydantic models for Bridge API requests and responses.

All request and response models are consolidated here for reuse across
the route modules.
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from api.services.crm_store import (
    FACT_AUTHORS,
    FACT_SOURCE_TYPES,
    FACT_TYPES,
    RELATIONSHIP_STATES,
)

# Literal[tuple] expands to one Literal member per value
RelationshipState = Literal[RELATIONSHIP_STATES]
FactType = Literal[FACT_TYPES]
FactAuthor = Literal[FACT_AUTHORS]
FactSourceType = Literal[FACT_SOURCE_TYPES]


# ============================================================================
# People
# ============================================================================

class PersonCreateRequest(BaseModel):
    """Request to create a contact."""
    name: str = Field(..., min_length=1)
    primary_email: Optional[EmailStr] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    tags: Optional[list[str]] = None
    relationship_state: RelationshipState = "ok"
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None
    hometown: Optional[str] = None
    birthday: Optional[str] = None
    venmo: Optional[str] = None
    universities: Optional[list[str]] = None
    interests: Optional[list[str]] = None

    @field_validator("primary_email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        # Forms submit "" for an empty email field
        return None if value == "" else value


class PersonUpdateRequest(BaseModel):
    """Partial update of a contact. Only fields present in the body are written."""
    name: Optional[str] = Field(default=None, min_length=1)
    primary_email: Optional[EmailStr] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    tags: Optional[list[str]] = None
    relationship_state: Optional[RelationshipState] = None
    last_contacted: Optional[datetime] = None
    notes: Optional[str] = None
    hometown: Optional[str] = None
    birthday: Optional[str] = None
    venmo: Optional[str] = None
    universities: Optional[list[str]] = None
    interests: Optional[list[str]] = None

    @field_validator("primary_email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        return None if value == "" else value


class PersonResponse(BaseModel):
    """Response model for a person."""
    id: str
    name: str
    primary_email: Optional[str] = None
    phone: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    hometown: Optional[str] = None
    birthday: Optional[str] = None
    venmo: Optional[str] = None
    universities: Optional[list[str]] = None
    interests: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    relationship_state: str = "ok"
    last_contacted: Optional[str] = None
    notes: Optional[str] = None
    is_origin: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    fact_count: Optional[int] = None


class FactResponse(BaseModel):
    """Response model for a fact."""
    id: str
    person_id: str
    type: str
    value: str
    author: str
    confidence: float
    source_type: str
    source_ref: Optional[str] = None
    timestamp: Optional[str] = None
    created_at: Optional[str] = None


class PersonDetailResponse(PersonResponse):
    """A person together with their facts."""
    facts: list[FactResponse] = []


class PeopleListResponse(BaseModel):
    people: list[PersonResponse]
    count: int


class ImportRequest(BaseModel):
    """Bulk contact import; rows are validated one by one."""
    people: list[dict] = Field(..., min_length=1)


class ImportResponse(BaseModel):
    created: int
    failed: int
    errors: list[str] = []


class ResolveRequest(BaseModel):
    """An ingested identity to resolve against existing contacts."""
    name: Optional[str] = None
    phone: Optional[str] = None
    primary_email: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    last_contacted: Optional[datetime] = None


class MergeResponse(BaseModel):
    groups_merged: int
    people_removed: int
    facts_moved: int
    kept_ids: list[str] = []


# ============================================================================
# Facts
# ============================================================================

class FactCreateRequest(BaseModel):
    """Request to record a fact about a person."""
    person_id: str = Field(..., min_length=1)
    type: FactType
    value: str = Field(..., min_length=1)
    author: FactAuthor = "me"
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    source_type: Literal["manual"] = "manual"
    source_ref: Optional[str] = None


# ============================================================================
# Origin
# ============================================================================

class OriginPersonUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    role: Optional[str] = None
    notes: Optional[str] = None
    interests: Optional[list[str]] = None


class OriginFactInput(BaseModel):
    type: FactType
    value: str = Field(..., min_length=1)


class OriginUpdateRequest(BaseModel):
    """Edit the Origin. A ``facts`` list replaces the whole fact set."""
    person: Optional[OriginPersonUpdate] = None
    facts: Optional[list[OriginFactInput]] = None


class OriginResponse(BaseModel):
    person: PersonResponse
    facts: list[FactResponse]


# ============================================================================
# Ranking
# ============================================================================

class RankRequest(BaseModel):
    query: str = Field(..., min_length=1)
    relationship_state: Optional[RelationshipState] = None
    tags: Optional[list[str]] = None


class RankedEntryResponse(BaseModel):
    person_id: str
    person_name: str
    score: float
    explanation: str
    origin_influence: Optional[list[str]] = None


class RankResponse(BaseModel):
    ranked: list[RankedEntryResponse]
    query: str


# ============================================================================
# Ingestion
# ============================================================================

class IngestPersonInput(BaseModel):
    """
    A person in an ingest batch.

    Either ``external_id`` or ``sender`` is required. A chat export
    ``sender`` label is split into a phone number or a display name, and
    doubles as the external id when none is given.
    """
    external_id: Optional[str] = Field(default=None, min_length=1)
    sender: Optional[str] = Field(default=None, min_length=1)
    name: Optional[str] = None
    phone: Optional[str] = None
    primary_email: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    last_contacted: Optional[datetime] = None

    @model_validator(mode="after")
    def require_identity_key(self):
        if not self.external_id and not self.sender:
            raise ValueError("external_id or sender is required")
        return self


class IngestFactInput(BaseModel):
    person_external_id: str = Field(..., min_length=1)
    type: FactType
    value: str
    author: FactAuthor = "inferred"
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    source_type: FactSourceType = "manual"
    source_ref: Optional[str] = None


class IngestRequest(BaseModel):
    people: list[IngestPersonInput] = []
    facts: list[IngestFactInput] = []
    group_name: Optional[str] = None


class IngestResponse(BaseModel):
    person_ids: dict[str, str]
    people_created: int
    people_matched: int
    facts_created: int
    facts_skipped: int
    unknown_references: int
