"""
Origin API endpoints for Bridge.

The Origin is the user's own record. Reading or editing it always goes
through ensure_origin, so exactly one Origin exists afterwards.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from api.routes.dependencies import get_store
from api.routes.models import OriginResponse, OriginUpdateRequest
from api.services.consolidator import ensure_origin, update_origin
from api.services.crm_store import CrmStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/origin", tags=["origin"])


@router.get("", response_model=OriginResponse)
def get_origin(store: CrmStore = Depends(get_store)):
    """Get the Origin and its facts, creating it if missing."""
    return OriginResponse(**ensure_origin(store).to_dict())


@router.post("", response_model=OriginResponse)
def edit_origin(request: OriginUpdateRequest, store: CrmStore = Depends(get_store)):
    """
    Update the Origin profile and/or its facts.

    When ``facts`` is present it replaces the whole Origin fact set; goals,
    preferences and constraints feed straight into ranking.
    """
    person_fields = request.person.model_dump(exclude_unset=True) if request.person else None
    if person_fields and "name" in person_fields and person_fields["name"] is None:
        raise HTTPException(status_code=400, detail="Name cannot be empty")
    facts = [f.model_dump() for f in request.facts] if request.facts is not None else None

    record = update_origin(store, person_fields=person_fields, facts=facts)
    return OriginResponse(**record.to_dict())
