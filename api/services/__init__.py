"""
Bridge Services Package.

This package contains all business logic and data access services.
Use this module to import commonly-used services.

Example:
    from api.services import (
        get_crm_store,
        ensure_origin,
        rank_people,
    )

Key service modules:
- crm_store: Person and Fact records, SQLite store
- identity: Phone/email/name normalization
- consolidator: Identity resolution, duplicate merge, Origin enforcement
- ranking: Relevance ranking for outreach
- ingestion: Idempotent application of connector batches
"""

# ============================================================================
# Storage
# ============================================================================

from api.services.crm_store import (
    CrmStore,
    Fact,
    Person,
    PersonNotFoundError,
    OriginDeletionError,
    get_crm_store,
)

# ============================================================================
# Consolidation & Ranking
# ============================================================================

from api.services.consolidator import (
    PersonPayload,
    ensure_origin,
    find_or_create_person,
    merge_duplicates,
)
from api.services.ranking import (
    RankedEntry,
    load_ranking_candidates,
    rank_people,
)
from api.services.ingestion import (
    IngestBatch,
    ingest_batch,
)

__all__ = [
    # Storage
    "CrmStore",
    "Fact",
    "Person",
    "PersonNotFoundError",
    "OriginDeletionError",
    "get_crm_store",
    # Consolidation & Ranking
    "PersonPayload",
    "ensure_origin",
    "find_or_create_person",
    "merge_duplicates",
    "RankedEntry",
    "load_ranking_candidates",
    "rank_people",
    # Ingestion
    "IngestBatch",
    "ingest_batch",
]
