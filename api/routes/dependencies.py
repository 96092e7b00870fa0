"""
Shared FastAPI dependencies for Bridge routes.

Routes receive the store through ``Depends(get_store)`` so tests can swap in
a temporary database via ``app.dependency_overrides``.
"""
from api.services.crm_store import CrmStore, get_crm_store


def get_store() -> CrmStore:
    """The process-wide CRM store."""
    return get_crm_store()
