"""
Person consolidation for Bridge.

Keeps the contact graph consistent:
- Resolves ingested identities (phone/email) to existing people instead of
  creating duplicates (find_or_create_person)
- Merges people that share a normalized name, moving every fact onto the
  most complete record (merge_duplicates)
- Guarantees exactly one Origin person exists (ensure_origin)

All functions take the store explicitly. Storage errors are never caught here;
they propagate to the request handler.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from api.services.crm_store import CrmStore, Fact, Person
from api.services.identity import (
    identities_match,
    normalize_email,
    normalize_name,
    normalize_phone,
)
from api.utils.datetime_utils import make_aware
from config.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_NAME = "Unknown"

# Origin fields editable through update_origin
ORIGIN_EDITABLE_FIELDS = ("name", "role", "notes", "interests")


@dataclass
class PersonPayload:
    """Partial identity of a contact as seen by an ingestion source."""
    name: Optional[str] = None
    phone: Optional[str] = None
    primary_email: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    last_contacted: Optional[datetime] = None


@dataclass
class MergeReport:
    """Outcome of a duplicate merge pass."""
    groups_merged: int = 0
    people_removed: int = 0
    facts_moved: int = 0
    kept_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "groups_merged": self.groups_merged,
            "people_removed": self.people_removed,
            "facts_moved": self.facts_moved,
            "kept_ids": self.kept_ids,
        }


@dataclass
class OriginRecord:
    """The Origin person together with its facts."""
    person: Person
    facts: list[Fact]

    def facts_of_type(self, *types: str) -> list[Fact]:
        return [f for f in self.facts if f.type in types]

    def to_dict(self) -> dict:
        return {
            "person": self.person.to_dict(),
            "facts": [f.to_dict() for f in self.facts],
        }


def completeness_score(person: Person) -> int:
    """
    Score how complete a record is, to pick which duplicate survives.

    +4 for an email, +2 for an organization, +1 for a role.
    """
    return (
        (4 if person.primary_email else 0)
        + (2 if person.organization else 0)
        + (1 if person.role else 0)
    )


def pick_keeper(people: Iterable[Person]) -> Person:
    """Highest completeness score; the earliest wins a tie."""
    best = None
    for person in people:
        if best is None or completeness_score(person) > completeness_score(best):
            best = person
    return best


# =============================================================================
# Identity resolution
# =============================================================================

def _is_later(candidate: datetime, current: datetime) -> bool:
    return make_aware(candidate) > make_aware(current)


def find_or_create_person(store: CrmStore, payload: PersonPayload) -> Person:
    """
    Find an existing person by normalized phone or email, or create one.

    Matching ignores the Origin and never uses the name. On a match,
    last_contacted only moves forward and a blank stored name is filled in
    from the payload; only changed fields are written.

    Safe to call repeatedly with the same payload: once an identity has been
    resolved, later calls return the same person.
    """
    phone_norm = normalize_phone(payload.phone)
    email_norm = normalize_email(payload.primary_email)
    name = (payload.name or "").strip() or None

    if phone_norm or email_norm:
        existing = None
        for candidate in store.list_people(include_origin=False):
            if identities_match(payload.phone, payload.primary_email, candidate.phone, candidate.primary_email):
                existing = candidate
                break

        if existing is not None:
            updates = {}
            if payload.last_contacted:
                if not existing.last_contacted or _is_later(payload.last_contacted, existing.last_contacted):
                    updates["last_contacted"] = make_aware(payload.last_contacted)
            if name and not (existing.name or "").strip():
                updates["name"] = name

            if updates:
                logger.debug(f"Resolved identity to {existing.id}, updating {sorted(updates)}")
                return store.update_person(existing.id, **updates)
            return existing

    phone_raw = (payload.phone or "").strip()
    display_name = name or phone_raw or DEFAULT_DISPLAY_NAME

    person = Person(
        name=display_name,
        primary_email=payload.primary_email or None,
        phone=payload.phone or None,
        organization=payload.organization or None,
        role=payload.role or None,
        relationship_state="ok",
        last_contacted=make_aware(payload.last_contacted),
        is_origin=False,
    )
    logger.info(f"Creating person '{display_name}' from ingested identity")
    return store.create_person(person)


# =============================================================================
# Duplicate merge
# =============================================================================

def find_duplicate_groups(people: Iterable[Person]) -> list[list[Person]]:
    """
    Group people sharing a normalized name. Only groups of two or more are
    returned; blank names never group.
    """
    by_name: dict[str, list[Person]] = {}
    for person in people:
        key = normalize_name(person.name)
        if not key:
            continue
        by_name.setdefault(key, []).append(person)

    return [group for group in by_name.values() if len(group) > 1]


def merge_into(store: CrmStore, keep: Person, remove: Person) -> int:
    """
    Absorb one person into another.

    Copies every fact of ``remove`` onto ``keep`` as new rows, then deletes
    ``remove`` and its facts. Runs as a single transaction.

    Returns:
        Number of facts moved
    """
    with store.transaction():
        duplicate_facts = store.get_facts(remove.id)
        store.create_facts([f.copy_to(keep.id) for f in duplicate_facts])
        store.delete_facts_for_person(remove.id)
        store.delete_person(remove.id, allow_origin=True)

    logger.info(
        f"Merged '{remove.name}' ({remove.id}) into '{keep.name}' ({keep.id}), "
        f"moved {len(duplicate_facts)} facts"
    )
    return len(duplicate_facts)


def merge_duplicates(store: CrmStore) -> MergeReport:
    """
    Merge every group of people sharing a normalized name into its most
    complete member. Running it again with no new duplicates changes nothing.
    """
    report = MergeReport()

    for group in find_duplicate_groups(store.list_people()):
        keeper = pick_keeper(group)
        for duplicate in group:
            if duplicate.id == keeper.id:
                continue
            report.facts_moved += merge_into(store, keeper, duplicate)
            report.people_removed += 1
        report.groups_merged += 1
        report.kept_ids.append(keeper.id)

    if report.groups_merged:
        logger.info(
            f"Duplicate merge: {report.groups_merged} groups, "
            f"{report.people_removed} people removed, {report.facts_moved} facts moved"
        )
    return report


# =============================================================================
# Origin
# =============================================================================

def _matches_origin_name(person: Person, origin_words: list[str]) -> bool:
    name = normalize_name(person.name)
    return bool(origin_words) and all(word in name for word in origin_words)


def ensure_origin(store: CrmStore, origin_name: Optional[str] = None) -> OriginRecord:
    """
    Guarantee exactly one Origin person exists and return it with its facts.

    Sequence:
    1. Merge duplicates across all people
    2. Clear every Origin flag
    3. Flag the most complete person whose name contains every word of the
       configured origin name (ties: most recently updated)
    4. Otherwise create the Origin from the configured name

    Steps 2-4 run in one transaction, so the store never ends up with zero or
    several Origins.

    Raises:
        ValueError: If the origin name is blank (nothing is written)
    """
    origin_name = (origin_name or settings.origin_name).strip()
    origin_words = normalize_name(origin_name).split()
    if not origin_words:
        raise ValueError("Origin name must not be blank")

    merge_duplicates(store)

    with store.transaction():
        cleared = store.clear_origin_flags()
        if cleared > 1:
            logger.warning(f"Found {cleared} Origin records; resetting")

        candidates = [
            p for p in store.list_people()
            if _matches_origin_name(p, origin_words)
        ]
        candidates.sort(key=lambda p: p.updated_at, reverse=True)

        if candidates:
            origin = store.set_origin(pick_keeper(candidates).id)
        else:
            logger.info(f"No Origin found; creating '{origin_name}'")
            origin = store.create_person(Person(
                name=origin_name,
                relationship_state="ok",
                is_origin=True,
            ))

        facts = store.get_facts(origin.id)

    return OriginRecord(person=origin, facts=facts)


def update_origin(
    store: CrmStore,
    person_fields: Optional[dict] = None,
    facts: Optional[list[dict]] = None,
    origin_name: Optional[str] = None,
) -> OriginRecord:
    """
    Edit the Origin's profile and/or replace its full fact set.

    Args:
        person_fields: Subset of name, role, notes, interests to write
        facts: If given, every existing Origin fact is replaced by these
            ({"type", "value"} dicts), authored "me" from a manual source
    """
    origin = ensure_origin(store, origin_name=origin_name)

    with store.transaction():
        if person_fields:
            unknown = set(person_fields) - set(ORIGIN_EDITABLE_FIELDS)
            if unknown:
                raise ValueError(f"Origin fields not editable: {sorted(unknown)}")
            changes = dict(person_fields)
            if "interests" in changes:
                changes["interests"] = [
                    str(s).strip() for s in (changes["interests"] or []) if str(s).strip()
                ] or None
            if changes:
                store.update_person(origin.person.id, **changes)

        if facts is not None:
            store.delete_facts_for_person(origin.person.id)
            store.create_facts([
                Fact(
                    person_id=origin.person.id,
                    type=f["type"],
                    value=f["value"],
                    author="me",
                    source_type="manual",
                )
                for f in facts
            ])
            logger.info(f"Replaced Origin facts ({len(facts)} facts)")

        person = store.require_person(origin.person.id)
        refreshed_facts = store.get_facts(person.id)

    return OriginRecord(person=person, facts=refreshed_facts)
