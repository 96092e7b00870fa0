"""
Relevance ranking for Bridge.

Deterministic, explainable ranking of contacts for a free-text query:
keyword hits on facts and profile fields, contact recency, relationship state,
and the Origin's own goals, preferences and constraints.

Formula:
    score = (match_score * 2 + recency) * relationship_weight * preference_multiplier

Preference and constraint effects are a rule table of (trigger substrings,
condition, factor) entries matched against the Origin's fact values, so new
rules can be added without touching the scoring loop.

Read-only: nothing here touches the store except load_ranking_candidates.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable, Optional

from api.services.crm_store import CrmStore, Fact, Person
from api.utils.datetime_utils import days_between, utc_now
from config.ranking_weights import (
    CONSTRAINT_STOP_WORDS,
    CONSTRAINT_WORD_MIN_LENGTH,
    GOAL_WORD_MIN_LENGTH,
    MATCH_WEIGHT,
    MAX_DAYS_RECENCY,
    NOTE_MAX_CHARS,
    ORIGIN_GOAL_BOOST,
    ORIGIN_PREFERENCE_BOOST,
    ORIGIN_PREFERENCE_PENALTY,
    RECENCY_COLD_THRESHOLD,
    RELATIONSHIP_WEIGHTS,
    SNIPPET_MAX_CHARS,
    UNKNOWN_RELATIONSHIP_WEIGHT,
)
from config.settings import settings

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r'[^a-z]')


@dataclass
class ProfileChunk:
    """A (label, text) pair derived from a profile field, used for matching."""
    label: str
    text: str


@dataclass
class RankingCandidate:
    """A person as seen by the ranker: identity, state, facts and profile."""
    id: str
    name: str
    relationship_state: str = "ok"
    last_contacted: Optional[datetime] = None
    facts: list[Fact] = field(default_factory=list)
    profile_chunks: list[ProfileChunk] = field(default_factory=list)

    def has_fact_type(self, fact_type: str) -> bool:
        return any(f.type == fact_type for f in self.facts)


@dataclass
class RankedEntry:
    """One ranked result with its score and rationale."""
    person_id: str
    person_name: str
    score: float
    explanation: str
    origin_influence: Optional[list[str]] = None

    def to_dict(self) -> dict:
        return {
            "person_id": self.person_id,
            "person_name": self.person_name,
            "score": self.score,
            "explanation": self.explanation,
            "origin_influence": self.origin_influence,
        }


@dataclass(frozen=True)
class OriginRule:
    """
    A business rule triggered by substrings of an Origin fact value.

    ``applies`` decides whether the rule fires for a candidate (given its
    recency); when it does the score is multiplied by ``factor`` and a note
    is recorded.
    """
    fact_type: str
    triggers: tuple[str, ...]
    applies: Callable[[RankingCandidate, float], bool]
    factor: float
    note_prefix: str

    def triggered_by(self, value: str) -> bool:
        value = value.lower()
        return any(t in value for t in self.triggers)


def _is_cold(candidate: RankingCandidate, recency: float) -> bool:
    if candidate.relationship_state == "warm_up":
        return True
    return candidate.last_contacted is not None and recency < RECENCY_COLD_THRESHOLD


def _has_shared_context(candidate: RankingCandidate, recency: float) -> bool:
    return candidate.has_fact_type("shared_context")


def _lacks_shared_context(candidate: RankingCandidate, recency: float) -> bool:
    return not candidate.has_fact_type("shared_context")


def _always(candidate: RankingCandidate, recency: float) -> bool:
    return True


ORIGIN_RULES: tuple[OriginRule, ...] = (
    OriginRule(
        fact_type="preference",
        triggers=("avoid cold",),
        applies=_is_cold,
        factor=ORIGIN_PREFERENCE_PENALTY,
        note_prefix="Preference applied",
    ),
    OriginRule(
        fact_type="preference",
        triggers=("prefer warm", "warm intro"),
        applies=_has_shared_context,
        factor=ORIGIN_PREFERENCE_BOOST,
        note_prefix="Matches preference",
    ),
    # Informational only: surfaces in the rationale, no score effect
    OriginRule(
        fact_type="preference",
        triggers=("short", "concise"),
        applies=_always,
        factor=1.0,
        note_prefix="Matches preference",
    ),
    OriginRule(
        fact_type="constraint",
        triggers=("without warm", "warm context"),
        applies=_lacks_shared_context,
        factor=ORIGIN_PREFERENCE_PENALTY,
        note_prefix="Constraint",
    ),
)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("…" if len(text) > limit else "")


# =============================================================================
# Candidate preparation
# =============================================================================

def build_profile_chunks(person: Person) -> list[ProfileChunk]:
    """
    Derive matchable text chunks from a person's profile fields.

    Empty fields produce no chunk.
    """
    chunks = []

    def add(label: str, text: Optional[str]):
        if text and text.strip():
            chunks.append(ProfileChunk(label=label, text=text.strip()))

    add("interests", ", ".join(person.interests or []))
    add("notes", person.notes)
    add("organization", person.organization)
    add("role", person.role)
    add("hometown", person.hometown)
    add("tags", ", ".join(person.tags or []))
    add("universities", ", ".join(person.universities or []))
    return chunks


def to_ranking_candidate(person: Person, facts: Iterable[Fact]) -> RankingCandidate:
    """Build ranker input from a stored person and its facts."""
    return RankingCandidate(
        id=person.id,
        name=person.name,
        relationship_state=person.relationship_state,
        last_contacted=person.last_contacted,
        facts=list(facts),
        profile_chunks=build_profile_chunks(person),
    )


def load_ranking_candidates(
    store: CrmStore,
    relationship_state: Optional[str] = None,
    tags: Optional[list[str]] = None,
) -> list[RankingCandidate]:
    """
    Load every non-Origin person as a ranking candidate.

    Args:
        relationship_state: Only people in this state
        tags: Only people carrying at least one of these tags
    """
    people = store.list_people(include_origin=False, relationship_state=relationship_state)
    if tags:
        wanted = set(tags)
        people = [p for p in people if wanted.intersection(p.tags or [])]

    facts_by_person = store.get_facts_by_person()
    return [to_ranking_candidate(p, facts_by_person.get(p.id, [])) for p in people]


# =============================================================================
# Scoring
# =============================================================================

def recency_score(last_contacted: Optional[datetime], now: datetime) -> tuple[float, str]:
    """
    Recency component and its human-readable label.

    Never-contacted people are treated as fully due (score 1).
    """
    if last_contacted is None:
        return 1.0, "No recent contact"

    # Future timestamps (clock skew on import) count as today
    days = max(0, days_between(last_contacted, now))
    score = max(0.0, 1 - days / MAX_DAYS_RECENCY)

    if days == 0:
        label = "Contacted today"
    elif days == 1:
        label = "Contacted yesterday"
    elif days < 7:
        label = f"Contacted {days} days ago"
    elif days < 30:
        label = f"Contacted {days // 7} weeks ago"
    else:
        label = f"Last contact {days // 30} months ago"
    return score, label


def _constraint_name_words(constraints: list[Fact]) -> list[str]:
    """Words of Origin constraints that may name a person to avoid."""
    words = []
    for constraint in constraints:
        for word in (constraint.value or "").lower().split():
            if len(word) < CONSTRAINT_WORD_MIN_LENGTH:
                continue
            if _NON_LETTERS.sub('', word) in CONSTRAINT_STOP_WORDS:
                continue
            words.append(word)
    return words


def _keyword_matches(candidate: RankingCandidate, terms: list[str]) -> tuple[int, list[str]]:
    hits = 0
    reasons = []

    for fact in candidate.facts:
        value = fact.value or ""
        if not value:
            continue
        value_lower = value.lower()
        for term in terms:
            if term in value_lower:
                hits += 1
                reasons.append(f'Matched "{fact.type}": {_truncate(value, SNIPPET_MAX_CHARS)}')

    for chunk in candidate.profile_chunks:
        text = chunk.text or ""
        if not text:
            continue
        text_lower = text.lower()
        for term in terms:
            if term in text_lower:
                hits += 1
                reasons.append(f"Matched {chunk.label}: {_truncate(text, SNIPPET_MAX_CHARS)}")

    return hits, reasons


def _goal_alignment(candidate: RankingCandidate, goals: list[Fact]) -> tuple[float, list[str]]:
    corpus = " ".join(
        [f.value or "" for f in candidate.facts]
        + [c.text or "" for c in candidate.profile_chunks]
    ).lower()

    boost = 0.0
    notes = []
    for goal in goals:
        value = goal.value or ""
        goal_words = [w for w in value.lower().split() if len(w) >= GOAL_WORD_MIN_LENGTH]
        if any(w in corpus for w in goal_words):
            boost += ORIGIN_GOAL_BOOST
            notes.append(f"Aligned with your goal: {_truncate(value, SNIPPET_MAX_CHARS)}")
    return boost, notes


def _rule_multiplier(
    candidate: RankingCandidate,
    recency: float,
    origin_facts: list[Fact],
) -> tuple[float, list[str]]:
    multiplier = 1.0
    notes = []
    for fact in origin_facts:
        value = fact.value or ""
        for rule in ORIGIN_RULES:
            if rule.fact_type != fact.type or not rule.triggered_by(value):
                continue
            if rule.applies(candidate, recency):
                multiplier *= rule.factor
                notes.append(f"{rule.note_prefix}: {value[:NOTE_MAX_CHARS]}…")
    return multiplier, notes


def score_candidate(
    candidate: RankingCandidate,
    terms: list[str],
    origin_facts: list[Fact],
    now: datetime,
    excluded_name_words: Optional[list[str]] = None,
) -> Optional[RankedEntry]:
    """
    Score one candidate.

    Returns:
        The entry (before threshold filtering), or None if the candidate is
        excluded outright (do-not-contact, or named by an Origin constraint)
    """
    if candidate.relationship_state == "do_not_contact":
        return None
    weight = RELATIONSHIP_WEIGHTS.get(candidate.relationship_state, UNKNOWN_RELATIONSHIP_WEIGHT)
    if weight == 0:
        return None

    if excluded_name_words is None:
        excluded_name_words = _constraint_name_words(
            [f for f in origin_facts if f.type == "constraint"]
        )
    name_lower = (candidate.name or "").lower()
    if any(word in name_lower for word in excluded_name_words):
        logger.debug(f"Excluding {candidate.id} by Origin constraint")
        return None

    match_score, reasons = _keyword_matches(candidate, terms)

    goal_boost, origin_influence = _goal_alignment(
        candidate, [f for f in origin_facts if f.type == "goal"]
    )
    match_score += goal_boost

    recency, recency_label = recency_score(candidate.last_contacted, now)

    multiplier, rule_notes = _rule_multiplier(candidate, recency, origin_facts)
    origin_influence.extend(rule_notes)

    score = (match_score * MATCH_WEIGHT + recency) * weight * multiplier
    explanation = f"{reasons[0]}. {recency_label}" if reasons else recency_label

    return RankedEntry(
        person_id=candidate.id,
        person_name=candidate.name,
        score=score,
        explanation=explanation,
        origin_influence=origin_influence or None,
    )


def rank_people(
    people: Iterable[RankingCandidate],
    query: str,
    origin_facts: Optional[Iterable[Fact]] = None,
    now: Optional[datetime] = None,
    min_score: Optional[float] = None,
) -> list[RankedEntry]:
    """
    Rank contacts for a free-text query.

    Args:
        people: Non-Origin candidates with facts and profile chunks
        query: Free text; split on whitespace into case-insensitive terms
        origin_facts: The Origin's facts (goals, preferences, constraints)
        now: Reference time for recency (default: current UTC time)
        min_score: Candidates at or below this are dropped (default from settings)

    Returns:
        Entries sorted by score, highest first. An empty query ranks purely
        on recency and relationship state.
    """
    now = now or utc_now()
    min_score = settings.min_rank_score if min_score is None else min_score
    terms = (query or "").lower().split()
    origin_facts = list(origin_facts or [])

    excluded_name_words = _constraint_name_words(
        [f for f in origin_facts if f.type == "constraint"]
    )

    ranked = []
    for candidate in people:
        entry = score_candidate(candidate, terms, origin_facts, now, excluded_name_words)
        if entry is not None and entry.score > min_score:
            ranked.append(entry)

    ranked.sort(key=lambda e: e.score, reverse=True)
    logger.debug(f"Ranked {len(ranked)} candidates for query '{query}'")
    return ranked
