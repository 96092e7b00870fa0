"""
Tests for applying ingestion batches.
"""
import pytest

from api.services.ingestion import (
    IngestBatch,
    IngestFact,
    IngestPerson,
    ingest_batch,
    is_self_sender,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def whatsapp_batch(days_ago):
    return IngestBatch(
        people=[
            IngestPerson(external_id="wa:1", name="Dana", phone="+1 (415) 555-1234", last_contacted=days_ago(2)),
            IngestPerson(external_id="wa:2", phone="+1 415 555 9876"),
        ],
        facts=[
            IngestFact(person_external_id="wa:1", type="interest", value="bouldering", source_type="whatsapp"),
            IngestFact(person_external_id="wa:1", type="shared_context", value="Recurse W24", source_type="whatsapp"),
            IngestFact(person_external_id="wa:2", type="logistics", value="in Lisbon until May", source_type="whatsapp"),
        ],
    )


class TestIngestPersonFromSender:

    def test_phone_sender(self):
        person = IngestPerson.from_sender("~ +1 415 555 1234")

        assert person.external_id == "~ +1 415 555 1234"
        assert person.phone == "+1 415 555 1234"
        assert person.name is None

    def test_named_sender(self):
        person = IngestPerson.from_sender("Dana Scully")

        assert person.name == "Dana Scully"
        assert person.phone is None

    def test_explicit_external_id_wins(self):
        person = IngestPerson.from_sender("Dana", external_id="wa:dana")
        assert person.external_id == "wa:dana"

    def test_self_sender(self):
        assert is_self_sender("You")
        assert is_self_sender(" you ")
        assert not is_self_sender("Yousef")
        assert not is_self_sender(None)

    def test_resolves_by_phone_on_rerun(self, store):
        batch = IngestBatch(people=[IngestPerson.from_sender("+1 415 555 1234")])

        first = ingest_batch(store, batch)
        second = ingest_batch(store, batch)

        assert second.person_ids == first.person_ids
        assert store.get_person(first.person_ids["+1 415 555 1234"]).name == "+1 415 555 1234"


class TestIngestBatch:

    def test_creates_people_and_facts(self, store, whatsapp_batch, days_ago):
        result = ingest_batch(store, whatsapp_batch)

        assert result.people_created == 2
        assert result.people_matched == 0
        assert result.facts_created == 3
        assert set(result.person_ids) == {"wa:1", "wa:2"}

        dana = store.get_person(result.person_ids["wa:1"])
        assert dana.name == "Dana"
        assert dana.last_contacted == days_ago(2)
        assert store.get_person(result.person_ids["wa:2"]).name == "+1 415 555 9876"

        fact = store.get_facts(dana.id)[0]
        assert (fact.author, fact.confidence, fact.source_type) == ("inferred", 0.9, "whatsapp")

    def test_rerun_creates_nothing(self, store, whatsapp_batch):
        first = ingest_batch(store, whatsapp_batch)
        people_before = len(store.list_people())
        facts_before = sum(store.count_facts_by_person().values())

        second = ingest_batch(store, whatsapp_batch)

        assert second.person_ids == first.person_ids
        assert second.people_created == 0
        assert second.people_matched == 2
        assert second.facts_created == 0
        assert second.facts_skipped == 3
        assert len(store.list_people()) == people_before
        assert sum(store.count_facts_by_person().values()) == facts_before

    def test_matches_existing_contact(self, store, make_person):
        existing = make_person("Dana Scully", phone="415-555-1234")

        result = ingest_batch(store, IngestBatch(
            people=[IngestPerson(external_id="wa:1", name="Dana", phone="(415) 555-1234")],
        ))

        assert result.person_ids["wa:1"] == existing.id
        assert result.people_matched == 1
        assert store.get_person(existing.id).name == "Dana Scully"

    def test_same_value_from_another_source_is_kept(self, store, make_person):
        dana = make_person("Dana", primary_email="dana@example.com", facts=[("interest", "bouldering")])

        result = ingest_batch(store, IngestBatch(
            people=[IngestPerson(external_id="gm:dana", primary_email="DANA@example.com")],
            facts=[IngestFact(person_external_id="gm:dana", type="interest", value="bouldering", source_type="gmail")],
        ))

        assert result.facts_created == 1
        assert len(store.get_facts(dana.id)) == 2

    def test_duplicates_within_batch_written_once(self, store):
        fact = IngestFact(person_external_id="x", type="goal", value="learn Rust")
        result = ingest_batch(store, IngestBatch(
            people=[IngestPerson(external_id="x", primary_email="x@example.com")],
            facts=[fact, fact],
        ))

        assert result.facts_created == 1
        assert result.facts_skipped == 1

    def test_unknown_references_are_counted(self, store):
        result = ingest_batch(store, IngestBatch(
            people=[IngestPerson(external_id="a", phone="4155551234")],
            facts=[
                IngestFact(person_external_id="a", type="interest", value="chess"),
                IngestFact(person_external_id="missing", type="interest", value="go"),
            ],
        ))

        assert result.unknown_references == 1
        assert result.facts_created == 1

    def test_blank_values_skipped(self, store):
        result = ingest_batch(store, IngestBatch(
            people=[IngestPerson(external_id="a", phone="4155551234")],
            facts=[IngestFact(person_external_id="a", type="interest", value="   ")],
        ))

        assert result.facts_created == 0
        assert result.facts_skipped == 1

    def test_result_to_dict(self, store, whatsapp_batch):
        data = ingest_batch(store, whatsapp_batch).to_dict()
        assert data["people_created"] == 2
        assert data["facts_created"] == 3
        assert set(data["person_ids"]) == {"wa:1", "wa:2"}


class TestGroupMembership:

    def test_membership_fact_per_person(self, store):
        batch = IngestBatch(
            people=[IngestPerson.from_sender("Dana"), IngestPerson.from_sender("+1 415 555 1234")],
            group_name=" Recurse W24 ",
        )

        result = ingest_batch(store, batch)

        assert result.facts_created == 2
        for person_id in result.person_ids.values():
            fact, = store.get_facts(person_id)
            assert (fact.type, fact.value, fact.source_type, fact.author) == (
                "shared_context", "Member of group: Recurse W24", "whatsapp", "inferred",
            )

    def test_membership_not_duplicated_on_rerun(self, store):
        batch = IngestBatch(people=[IngestPerson.from_sender("+1 415 555 1234")], group_name="Climbing")

        ingest_batch(store, batch)
        second = ingest_batch(store, batch)

        assert second.facts_created == 0
        assert second.facts_skipped == 1

    def test_no_group_no_membership_facts(self):
        batch = IngestBatch(people=[IngestPerson(external_id="a")], group_name="  ")
        assert batch.membership_facts() == []
