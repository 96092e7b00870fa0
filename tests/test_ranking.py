"""
Tests for the relevance ranker.

Scores are deterministic given a fixed reference time, so most assertions
check exact values:
    score = (match_score * 2 + recency) * relationship_weight * multiplier
"""
import pytest

from api.services.crm_store import Fact, Person
from api.services.ranking import (
    ORIGIN_RULES,
    ProfileChunk,
    RankingCandidate,
    build_profile_chunks,
    load_ranking_candidates,
    rank_people,
    recency_score,
    to_ranking_candidate,
)

pytestmark = pytest.mark.unit


def candidate(name, facts=(), person_id=None, **kwargs):
    """Build a RankingCandidate from (type, value) pairs."""
    person_id = person_id or name.lower().replace(" ", "-")
    return RankingCandidate(
        id=person_id,
        name=name,
        facts=[Fact(person_id=person_id, type=t, value=v) for t, v in facts],
        **kwargs,
    )


def origin(*facts):
    return [Fact(person_id="origin", type=t, value=v) for t, v in facts]


class TestRecencyScore:

    def test_never_contacted(self, now):
        assert recency_score(None, now) == (1.0, "No recent contact")

    @pytest.mark.parametrize("days,label", [
        (0, "Contacted today"),
        (1, "Contacted yesterday"),
        (3, "Contacted 3 days ago"),
        (14, "Contacted 2 weeks ago"),
        (90, "Last contact 3 months ago"),
    ])
    def test_labels(self, days_ago, now, days, label):
        assert recency_score(days_ago(days), now)[1] == label

    def test_decays_linearly_to_zero(self, days_ago, now):
        assert recency_score(days_ago(0), now)[0] == 1.0
        assert recency_score(days_ago(73), now)[0] == pytest.approx(0.8)
        assert recency_score(days_ago(365), now)[0] == 0.0
        assert recency_score(days_ago(1000), now)[0] == 0.0

    def test_future_contact_counts_as_today(self, days_ago, now):
        assert recency_score(days_ago(-3), now) == (1.0, "Contacted today")


class TestRankPeople:

    def test_keyword_match_on_fact(self, now):
        dana = candidate("Dana", facts=[("expertise", "design systems")])

        ranked = rank_people([dana], "design", now=now, min_score=2)

        assert len(ranked) == 1
        assert ranked[0].person_name == "Dana"
        assert ranked[0].score == 3
        assert 'Matched "expertise": design systems' in ranked[0].explanation
        assert ranked[0].explanation.endswith("No recent contact")
        assert ranked[0].origin_influence is None

    def test_do_not_contact_is_never_returned(self, now):
        dana = candidate(
            "Dana",
            facts=[("expertise", "design systems")] * 5,
            relationship_state="do_not_contact",
        )
        assert rank_people([dana], "design", now=now, min_score=-100) == []

    def test_threshold_is_exclusive(self, now, days_ago):
        # one hit, recency exactly 0: score == 2
        at_threshold = candidate("Old", facts=[("interest", "jazz")], last_contacted=days_ago(400))
        above = candidate("Newer", facts=[("interest", "jazz")], last_contacted=days_ago(364))

        ranked = rank_people([at_threshold, above], "jazz", now=now, min_score=2)

        assert [e.person_name for e in ranked] == ["Newer"]

    def test_default_threshold_from_settings(self, now, mock_settings):
        nobody = candidate("Nobody")
        assert rank_people([nobody], "design", now=now) == []

        mock_settings.min_rank_score = 0.5
        assert len(rank_people([nobody], "design", now=now)) == 1

    def test_adding_matching_fact_never_lowers_score(self, now, days_ago):
        base = dict(last_contacted=days_ago(20), relationship_state="warm_up")
        before = candidate("Dana", facts=[("interest", "jazz")], **base)
        after = candidate("Dana", facts=[("interest", "jazz"), ("expertise", "jazz piano")], **base)

        score_before = rank_people([before], "jazz", now=now, min_score=-1)[0].score
        score_after = rank_people([after], "jazz", now=now, min_score=-1)[0].score

        assert score_after > score_before

    def test_every_term_counts(self, now):
        dana = candidate("Dana", facts=[("expertise", "design systems")])
        ranked = rank_people([dana], "DESIGN Systems", now=now, min_score=0)
        assert ranked[0].score == 5

    def test_profile_chunks_match(self, now):
        eli = candidate("Eli", profile_chunks=[ProfileChunk("organization", "Figma")])

        ranked = rank_people([eli], "figma", now=now, min_score=0)

        assert ranked[0].score == 3
        assert ranked[0].explanation == "Matched organization: Figma. No recent contact"

    def test_long_snippets_are_truncated(self, now):
        value = "design " * 20
        dana = candidate("Dana", facts=[("expertise", value)])

        explanation = rank_people([dana], "design", now=now, min_score=0)[0].explanation

        assert explanation.startswith(f'Matched "expertise": {value[:60]}…')

    def test_sorted_by_score_descending(self, now, days_ago):
        people = [
            candidate("Low", last_contacted=days_ago(200)),
            candidate("High", facts=[("interest", "chess"), ("goal", "chess club")]),
            candidate("Mid", facts=[("interest", "chess")]),
        ]

        ranked = rank_people(people, "chess", now=now, min_score=0)

        assert [e.person_name for e in ranked] == ["High", "Mid", "Low"]

    def test_empty_query_ranks_on_recency(self, now, days_ago):
        people = [
            candidate("Stale", last_contacted=days_ago(300)),
            candidate("Fresh", last_contacted=days_ago(1)),
        ]

        ranked = rank_people(people, "", now=now, min_score=0)

        assert [e.person_name for e in ranked] == ["Fresh", "Stale"]
        assert ranked[0].explanation == "Contacted yesterday"

    def test_empty_values_are_ignored(self, now):
        blank = candidate("Blank", facts=[("interest", "")], profile_chunks=[ProfileChunk("notes", "")])
        ranked = rank_people([blank], "anything", now=now, min_score=0)
        assert ranked[0].score == 1

    def test_no_candidates(self, now):
        assert rank_people([], "design", now=now) == []

    def test_warm_up_weight(self, now):
        dana = candidate("Dana", facts=[("expertise", "design")], relationship_state="warm_up")
        ranked = rank_people([dana], "design", now=now, min_score=0)
        assert ranked[0].score == pytest.approx(2.1)

    def test_unknown_relationship_state_treated_as_warm_up(self, now):
        dana = candidate("Dana", facts=[("expertise", "design")], relationship_state="legacy")
        ranked = rank_people([dana], "design", now=now, min_score=0)
        assert ranked[0].score == pytest.approx(2.1)


class TestOriginInfluence:

    def test_constraint_excludes_named_person(self, now):
        people = [
            candidate("Bob Smith", facts=[("expertise", "design")]),
            candidate("Dana", facts=[("expertise", "design")]),
        ]

        ranked = rank_people(people, "design", origin(("constraint", "Avoid Bob")), now=now, min_score=0)

        assert [e.person_name for e in ranked] == ["Dana"]

    def test_constraint_stop_words_never_exclude(self, now):
        # "Don" would match "don't" if stop words were not filtered
        don = candidate("Don Draper", facts=[("expertise", "design")])

        ranked = rank_people(
            [don], "design",
            origin(("constraint", "Don't intro without warm context")),
            now=now, min_score=0,
        )

        assert [e.person_name for e in ranked] == ["Don Draper"]

    def test_goal_alignment_boost(self, now):
        dana = candidate("Dana", facts=[("expertise", "design systems")])

        ranked = rank_people([dana], "design", origin(("goal", "find design mentors")), now=now, min_score=0)

        # (1 + 1.5) * 2 + 1
        assert ranked[0].score == pytest.approx(6.0)
        assert ranked[0].origin_influence == ["Aligned with your goal: find design mentors"]

    def test_short_goal_words_ignored(self, now):
        dana = candidate("Dana", facts=[("interest", "go to ai meetups")])
        ranked = rank_people([dana], "", origin(("goal", "go ai")), now=now, min_score=0)
        assert ranked[0].origin_influence is None

    def test_avoid_cold_penalizes_warm_up(self, now):
        dana = candidate("Dana", facts=[("expertise", "design")], relationship_state="warm_up")

        ranked = rank_people(
            [dana], "design",
            origin(("preference", "Avoid cold outreach")),
            now=now, min_score=0,
        )

        assert ranked[0].score == pytest.approx(3 * 0.7 * 0.8)
        assert ranked[0].origin_influence == ["Preference applied: Avoid cold outreach…"]

    def test_avoid_cold_penalizes_stale_contact(self, now, days_ago):
        stale = candidate("Stale", last_contacted=days_ago(300))
        never = candidate("Never")

        ranked = rank_people(
            [stale, never], "",
            origin(("preference", "avoid cold intros")),
            now=now, min_score=-1,
        )
        by_name = {e.person_name: e for e in ranked}

        assert by_name["Stale"].origin_influence is not None
        assert by_name["Never"].origin_influence is None

    def test_prefer_warm_boosts_shared_context(self, now):
        warm = candidate("Warm", facts=[("shared_context", "Met at Recurse")])
        cold = candidate("Cold")

        ranked = rank_people(
            [warm, cold], "",
            origin(("preference", "I prefer warm intros")),
            now=now, min_score=0,
        )
        by_name = {e.person_name: e for e in ranked}

        assert by_name["Warm"].score == pytest.approx(1.2)
        assert by_name["Cold"].score == pytest.approx(1.0)
        assert by_name["Warm"].origin_influence == ["Matches preference: I prefer warm intros…"]

    def test_concise_preference_is_note_only(self, now):
        dana = candidate("Dana", facts=[("expertise", "design")])

        ranked = rank_people([dana], "design", origin(("preference", "keep it concise")), now=now, min_score=0)

        assert ranked[0].score == 3
        assert ranked[0].origin_influence == ["Matches preference: keep it concise…"]

    def test_warm_context_constraint_penalizes(self, now):
        warm = candidate("Warm", facts=[("shared_context", "college roommate")])
        cold = candidate("Cold")

        ranked = rank_people(
            [warm, cold], "",
            origin(("constraint", "Never reach out without warm context")),
            now=now, min_score=0,
        )
        by_name = {e.person_name: e for e in ranked}

        assert by_name["Cold"].score == pytest.approx(0.8)
        assert by_name["Cold"].origin_influence[0].startswith("Constraint: Never reach out")
        assert by_name["Warm"].score == 1

    def test_rule_notes_truncate_long_values(self, now):
        value = "prefer warm intros " + "x" * 80
        warm = candidate("Warm", facts=[("shared_context", "team")])

        ranked = rank_people([warm], "", origin(("preference", value)), now=now, min_score=0)

        assert ranked[0].origin_influence == [f"Matches preference: {value[:50]}…"]

    def test_rules_cover_preferences_and_constraints(self):
        assert {rule.fact_type for rule in ORIGIN_RULES} == {"preference", "constraint"}
        assert all(rule.factor > 0 for rule in ORIGIN_RULES)


class TestCandidates:

    def test_profile_chunks_skip_empty_fields(self):
        person = Person(
            name="Dana",
            interests=["climbing", "jazz"],
            organization="Acme",
            notes="   ",
            tags=[],
            universities=["MIT"],
        )

        chunks = build_profile_chunks(person)

        assert chunks == [
            ProfileChunk("interests", "climbing, jazz"),
            ProfileChunk("organization", "Acme"),
            ProfileChunk("universities", "MIT"),
        ]

    def test_to_ranking_candidate(self, days_ago):
        person = Person(name="Dana", role="Designer", relationship_state="warm_up", last_contacted=days_ago(3))
        facts = [Fact(person_id=person.id, type="interest", value="chess")]

        cand = to_ranking_candidate(person, facts)

        assert cand.id == person.id
        assert cand.relationship_state == "warm_up"
        assert cand.last_contacted == days_ago(3)
        assert cand.facts == facts
        assert cand.profile_chunks == [ProfileChunk("role", "Designer")]

    def test_load_excludes_origin(self, store, make_person):
        make_person("Me", is_origin=True)
        dana = make_person("Dana", facts=[("interest", "chess")])

        loaded = load_ranking_candidates(store)

        assert [c.id for c in loaded] == [dana.id]
        assert [f.value for f in loaded[0].facts] == ["chess"]

    def test_load_filters_state_and_tags(self, store, make_person):
        make_person("A", tags=["climbing"])
        b = make_person("B", tags=["work", "climbing"], relationship_state="warm_up")
        make_person("C", tags=["work"])

        assert sorted(c.name for c in load_ranking_candidates(store, tags=["climbing"])) == ["A", "B"]
        assert [c.id for c in load_ranking_candidates(store, relationship_state="warm_up", tags=["work"])] == [b.id]
