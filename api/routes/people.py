"""
People API endpoints for Bridge.

CRUD over contacts, bulk import, identity resolution for ingestion, and the
duplicate merge trigger. The Origin is left out of listings; use /api/origin.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from api.routes.dependencies import get_store
from api.routes.models import (
    FactResponse,
    ImportRequest,
    ImportResponse,
    MergeResponse,
    PeopleListResponse,
    PersonCreateRequest,
    PersonDetailResponse,
    PersonResponse,
    PersonUpdateRequest,
    ResolveRequest,
)
from api.services.consolidator import PersonPayload, find_or_create_person, merge_duplicates
from api.services.crm_store import (
    LIST_FIELDS,
    CrmStore,
    OriginDeletionError,
    Person,
    PersonNotFoundError,
)
from config.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/people", tags=["people"])


def _person_from_request(request: PersonCreateRequest) -> Person:
    return Person(
        name=request.name,
        primary_email=request.primary_email,
        phone=request.phone,
        organization=request.organization,
        role=request.role,
        tags=request.tags or None,
        relationship_state=request.relationship_state,
        last_contacted=request.last_contacted,
        notes=request.notes,
        hometown=request.hometown,
        birthday=request.birthday,
        venmo=request.venmo,
        universities=request.universities or None,
        interests=request.interests or None,
    )


@router.get("", response_model=PeopleListResponse)
def list_people(store: CrmStore = Depends(get_store)):
    """List contacts (Origin excluded), most recently updated first."""
    people = store.list_people(include_origin=False)
    people.sort(key=lambda p: p.updated_at, reverse=True)
    fact_counts = store.count_facts_by_person()

    return PeopleListResponse(
        people=[
            PersonResponse(**p.to_dict(), fact_count=fact_counts.get(p.id, 0))
            for p in people
        ],
        count=len(people),
    )


@router.post("", response_model=PersonResponse, status_code=201)
def create_person(request: PersonCreateRequest, store: CrmStore = Depends(get_store)):
    """Create a contact."""
    person = store.create_person(_person_from_request(request))
    logger.info(f"Created person {person.id}")
    return PersonResponse(**person.to_dict())


@router.post("/import", response_model=ImportResponse)
def import_people(request: ImportRequest, store: CrmStore = Depends(get_store)):
    """
    Bulk-create contacts.

    Each row is validated on its own; invalid rows are reported and skipped
    without failing the batch.
    """
    if len(request.people) > settings.max_import_rows:
        raise HTTPException(
            status_code=400,
            detail=f"Maximum {settings.max_import_rows} contacts per import",
        )

    created = 0
    errors = []
    for i, row in enumerate(request.people, start=1):
        try:
            parsed = PersonCreateRequest.model_validate(row)
        except ValidationError as e:
            messages = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            errors.append(f"Row {i}: {messages}")
            continue
        store.create_person(_person_from_request(parsed))
        created += 1

    logger.info(f"Imported {created} people ({len(errors)} rows rejected)")
    return ImportResponse(created=created, failed=len(request.people) - created, errors=errors)


@router.post("/resolve", response_model=PersonResponse)
def resolve_person(request: ResolveRequest, store: CrmStore = Depends(get_store)):
    """
    Find a contact by phone or email, or create one.

    Used by ingestion connectors; repeated calls with the same identity return
    the same person.
    """
    person = find_or_create_person(store, PersonPayload(**request.model_dump()))
    return PersonResponse(**person.to_dict())


@router.post("/merge-duplicates", response_model=MergeResponse)
def merge_duplicate_people(store: CrmStore = Depends(get_store)):
    """Merge people sharing a normalized name into their most complete record."""
    report = merge_duplicates(store)
    return MergeResponse(**report.to_dict())


@router.get("/{person_id}", response_model=PersonDetailResponse)
def get_person(person_id: str, store: CrmStore = Depends(get_store)):
    """Get a person with their facts."""
    person = store.get_person(person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")

    facts = store.get_facts(person_id)
    return PersonDetailResponse(
        **person.to_dict(),
        fact_count=len(facts),
        facts=[FactResponse(**f.to_dict()) for f in facts],
    )


@router.patch("/{person_id}", response_model=PersonResponse)
def update_person(
    person_id: str,
    request: PersonUpdateRequest,
    store: CrmStore = Depends(get_store),
):
    """Update the fields present in the request body."""
    changes = request.model_dump(exclude_unset=True)
    if "name" in changes and changes["name"] is None:
        raise HTTPException(status_code=400, detail="Name cannot be empty")
    if "relationship_state" in changes and changes["relationship_state"] is None:
        changes["relationship_state"] = "ok"
    for list_field in LIST_FIELDS:
        if list_field in changes:
            changes[list_field] = changes[list_field] or None

    try:
        person = store.update_person(person_id, **changes)
    except PersonNotFoundError:
        raise HTTPException(status_code=404, detail="Person not found")
    return PersonResponse(**person.to_dict())


@router.delete("/{person_id}")
def delete_person(person_id: str, store: CrmStore = Depends(get_store)):
    """Delete a contact and their facts. The Origin cannot be deleted."""
    try:
        store.delete_person(person_id)
    except PersonNotFoundError:
        raise HTTPException(status_code=404, detail="Person not found")
    except OriginDeletionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Deleted person {person_id}")
    return {"deleted": True}
