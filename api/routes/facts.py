"""
Fact API endpoints for Bridge.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from api.routes.dependencies import get_store
from api.routes.models import FactCreateRequest, FactResponse
from api.services.crm_store import CrmStore, Fact

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/facts", tags=["facts"])


@router.post("", response_model=FactResponse, status_code=201)
def create_fact(request: FactCreateRequest, store: CrmStore = Depends(get_store)):
    """Record a fact about a person."""
    if not store.get_person(request.person_id):
        raise HTTPException(status_code=404, detail="Person not found")

    fact = store.create_fact(Fact(**request.model_dump()))
    logger.debug(f"Created {fact.type} fact {fact.id} for {fact.person_id}")
    return FactResponse(**fact.to_dict())


@router.delete("/{fact_id}")
def delete_fact(fact_id: str, store: CrmStore = Depends(get_store)):
    """Delete a single fact."""
    if not store.delete_fact(fact_id):
        raise HTTPException(status_code=404, detail="Fact not found")
    return {"deleted": True}
