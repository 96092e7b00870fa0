"""
Ranking API endpoint for Bridge.
"""
import logging

from fastapi import APIRouter, Depends

from api.routes.dependencies import get_store
from api.routes.models import RankedEntryResponse, RankRequest, RankResponse
from api.services.consolidator import ensure_origin
from api.services.crm_store import ORIGIN_FACT_TYPES, CrmStore
from api.services.ranking import load_ranking_candidates, rank_people

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rank", tags=["rank"])


@router.post("", response_model=RankResponse)
def rank(request: RankRequest, store: CrmStore = Depends(get_store)):
    """
    Rank contacts worth reaching out to for a free-text query.

    The Origin's goals, preferences and constraints shape the scores. An empty
    result is a normal outcome, not an error.
    """
    origin = ensure_origin(store)
    candidates = load_ranking_candidates(
        store,
        relationship_state=request.relationship_state,
        tags=request.tags,
    )
    ranked = rank_people(
        candidates,
        request.query,
        origin.facts_of_type(*ORIGIN_FACT_TYPES),
    )
    logger.info(f"Rank '{request.query}': {len(ranked)} of {len(candidates)} candidates")

    return RankResponse(
        ranked=[RankedEntryResponse(**e.to_dict()) for e in ranked],
        query=request.query,
    )
