"""
Ingestion API endpoint for Bridge.

Accepts batches already decoded by a connector (chat export, mailbox, manual
form) and applies them idempotently.
"""
import logging

from fastapi import APIRouter, Depends

from api.routes.dependencies import get_store
from api.routes.models import IngestPersonInput, IngestRequest, IngestResponse
from api.services.crm_store import CrmStore
from api.services.ingestion import (
    IngestBatch,
    IngestFact,
    IngestPerson,
    ingest_batch,
    is_self_sender,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingest", tags=["ingest"])


def _to_ingest_person(person: IngestPersonInput) -> IngestPerson:
    if person.sender:
        return IngestPerson.from_sender(
            person.sender,
            last_contacted=person.last_contacted,
            external_id=person.external_id,
        )
    return IngestPerson(**person.model_dump(exclude={"sender"}))


@router.post("", response_model=IngestResponse)
def ingest(request: IngestRequest, store: CrmStore = Depends(get_store)):
    """
    Resolve the batch's people by phone/email and store their new facts.

    People given as a chat ``sender`` are split into phone or name; the
    exporting user's own "You" sender is skipped.
    """
    people = []
    for person in request.people:
        if person.sender and is_self_sender(person.sender):
            logger.debug("Skipping self sender in ingest batch")
            continue
        people.append(_to_ingest_person(person))

    batch = IngestBatch(
        people=people,
        facts=[IngestFact(**f.model_dump()) for f in request.facts],
        group_name=request.group_name,
    )
    result = ingest_batch(store, batch)
    return IngestResponse(**result.to_dict())
