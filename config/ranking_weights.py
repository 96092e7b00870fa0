"""
Ranking Weights Configuration.

Central configuration for the magnitudes used by the relevance ranker
(api/services/ranking.py). None of these values has a derivation beyond
product tuning; edit here rather than in the scoring code.
"""

# =============================================================================
# RELATIONSHIP STATE WEIGHTS
# =============================================================================
# Formula: score = (match_score * MATCH_WEIGHT + recency) * relationship_weight * multiplier

RELATIONSHIP_WEIGHTS = {
    "ok": 1.0,
    "warm_up": 0.7,
    "do_not_contact": 0.0,
}
UNKNOWN_RELATIONSHIP_WEIGHT = 0.7  # States written by older imports

MATCH_WEIGHT = 2  # Each keyword hit counts double relative to recency

# =============================================================================
# RECENCY
# =============================================================================

MAX_DAYS_RECENCY = 365  # Days after which recency drops to 0
RECENCY_COLD_THRESHOLD = 0.5  # Below this a contact counts as "cold"

# =============================================================================
# ORIGIN INFLUENCE
# =============================================================================

ORIGIN_GOAL_BOOST = 1.5  # Added to match score per aligned Origin goal
ORIGIN_PREFERENCE_PENALTY = 0.8
ORIGIN_PREFERENCE_BOOST = 1.2

GOAL_WORD_MIN_LENGTH = 3  # Goal words shorter than this are ignored
CONSTRAINT_WORD_MIN_LENGTH = 2

# Words in a constraint that never name a person
CONSTRAINT_STOP_WORDS = frozenset({
    "avoid", "don't", "dont", "exclude", "contact", "intro", "intros",
    "without", "warm", "context", "the", "a", "an", "do", "not", "no",
})

# =============================================================================
# EXPLANATIONS
# =============================================================================

SNIPPET_MAX_CHARS = 60
NOTE_MAX_CHARS = 50
