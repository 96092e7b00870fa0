"""
Ingestion batches for Bridge.

Connectors (WhatsApp exports, Gmail, manual entry) decode their source into an
IngestBatch: person payloads keyed by a connector-local external id, plus facts
pointing at those ids. Applying a batch resolves every person through
find_or_create_person and only writes facts that are not already stored, so
re-running the same batch is a no-op.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from api.services.consolidator import PersonPayload, find_or_create_person
from api.services.crm_store import CrmStore, Fact
from api.services.identity import looks_like_phone

logger = logging.getLogger(__name__)

_SENDER_PREFIX = re.compile(r'^~\s*')

# Chat exports label the exporting user's own messages with this sender
SELF_SENDER = "you"

GROUP_FACT_PREFIX = "Member of group: "
GROUP_FACT_SOURCE = "whatsapp"


def is_self_sender(sender: Optional[str]) -> bool:
    return (sender or "").strip().lower() == SELF_SENDER


@dataclass
class IngestPerson:
    """A person observed by a connector."""
    external_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    primary_email: Optional[str] = None
    organization: Optional[str] = None
    role: Optional[str] = None
    last_contacted: Optional[datetime] = None

    @classmethod
    def from_sender(
        cls,
        sender: str,
        last_contacted: Optional[datetime] = None,
        external_id: Optional[str] = None,
    ) -> "IngestPerson":
        """
        Build a person from a chat export sender label.

        Chat exports show either a saved contact name or, for unsaved
        contacts, the raw number (sometimes prefixed with "~"). The raw
        sender is the external id unless one is given.
        """
        external_id = external_id or sender
        clean = _SENDER_PREFIX.sub('', sender or "").strip()
        if looks_like_phone(clean):
            return cls(external_id=external_id, phone=clean, last_contacted=last_contacted)
        return cls(external_id=external_id, name=clean or None, last_contacted=last_contacted)

    def to_payload(self) -> PersonPayload:
        return PersonPayload(
            name=self.name,
            phone=self.phone,
            primary_email=self.primary_email,
            organization=self.organization,
            role=self.role,
            last_contacted=self.last_contacted,
        )


@dataclass
class IngestFact:
    """A fact observed by a connector about one of the batch's people."""
    person_external_id: str
    type: str
    value: str
    author: str = "inferred"
    confidence: float = 0.9
    source_type: str = "manual"
    source_ref: Optional[str] = None


@dataclass
class IngestBatch:
    """
    People and facts decoded from one source.

    When ``group_name`` is set (a group chat export), every person in the
    batch also gets a "Member of group" shared_context fact.
    """
    people: list[IngestPerson] = field(default_factory=list)
    facts: list[IngestFact] = field(default_factory=list)
    group_name: Optional[str] = None

    def membership_facts(self) -> list[IngestFact]:
        group = (self.group_name or "").strip()
        if not group:
            return []
        return [
            IngestFact(
                person_external_id=p.external_id,
                type="shared_context",
                value=f"{GROUP_FACT_PREFIX}{group}",
                source_type=GROUP_FACT_SOURCE,
            )
            for p in self.people
        ]


@dataclass
class IngestResult:
    """Summary of an applied batch."""
    person_ids: dict[str, str] = field(default_factory=dict)
    people_created: int = 0
    people_matched: int = 0
    facts_created: int = 0
    facts_skipped: int = 0
    unknown_references: int = 0

    def to_dict(self) -> dict:
        return {
            "person_ids": self.person_ids,
            "people_created": self.people_created,
            "people_matched": self.people_matched,
            "facts_created": self.facts_created,
            "facts_skipped": self.facts_skipped,
            "unknown_references": self.unknown_references,
        }


def ingest_batch(store: CrmStore, batch: IngestBatch) -> IngestResult:
    """
    Apply a decoded batch to the store.

    People resolve by phone/email before anything is created. A fact is
    skipped when its person already holds one with the same type, value and
    source type, or when it references an external id missing from the batch.
    Group membership facts go through the same check.
    """
    result = IngestResult()

    known_ids = {p.id for p in store.list_people()}
    for incoming in batch.people:
        if incoming.external_id in result.person_ids:
            continue
        person = find_or_create_person(store, incoming.to_payload())
        result.person_ids[incoming.external_id] = person.id
        if person.id in known_ids:
            result.people_matched += 1
        else:
            result.people_created += 1
            known_ids.add(person.id)

    new_facts = []
    for incoming in batch.facts + batch.membership_facts():
        person_id = result.person_ids.get(incoming.person_external_id)
        if person_id is None:
            result.unknown_references += 1
            continue
        value = (incoming.value or "").strip()
        if not value:
            result.facts_skipped += 1
            continue

        duplicate = store.find_fact(person_id, incoming.type, value, incoming.source_type) or any(
            f.person_id == person_id and f.type == incoming.type
            and f.value == value and f.source_type == incoming.source_type
            for f in new_facts
        )
        if duplicate:
            result.facts_skipped += 1
            continue

        new_facts.append(Fact(
            person_id=person_id,
            type=incoming.type,
            value=value,
            author=incoming.author,
            confidence=incoming.confidence,
            source_type=incoming.source_type,
            source_ref=incoming.source_ref,
        ))

    store.create_facts(new_facts)
    result.facts_created = len(new_facts)

    logger.info(
        f"Ingested batch: {result.people_created} people created, "
        f"{result.people_matched} matched, {result.facts_created} facts created, "
        f"{result.facts_skipped} skipped, {result.unknown_references} unknown references"
    )
    return result
