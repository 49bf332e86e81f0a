"""Named confidence thresholds and tuning constants.

These values were chosen empirically and their bands overlap (e.g. a rule may emit GOOD while the
model-assisted routing cut-off is MEDIUM). They are kept as named constants so they can be tuned
without touching routing logic.
"""

from __future__ import annotations

from typing import Final

# Decision confidences emitted by deterministic rules.
VERY_HIGH: Final = 0.99
HIGH: Final = 0.95
GOOD: Final = 0.90
GENERIC: Final = 0.75

# Below this, the pipeline asks the model for a routing decision (when available).
MEDIUM: Final = 0.6

# Below this, model decisions are annotated as needing confirmation.
LOW_CONFIDENCE_NOTICE: Final = 0.6

# Ambiguity handling in the intent classifier.
AMBIGUITY_RATIO: Final = 0.7
AMBIGUOUS_MAX: Final = 0.75
AMBIGUITY_PENALTY_BASE: Final = 0.6
AMBIGUITY_PENALTY_SCALE: Final = 0.4

# Classifier confidence normalisation per intent tier.
TIER_MAX_SCORE: Final[dict[int, float]] = {1: 18.0, 2: 20.0, 3: 25.0}

# Classifier confidence at which the generic data-listing rule still applies.
GENERIC_RULE_MIN: Final = 0.3

# Hybrid (model-assisted) intent selection.
HYBRID_INTENT_MAX: Final = 0.7
HYBRID_SELECTED_CONFIDENCE: Final = 0.85

# Follow-up handling.
FOLLOW_UP_DETECTED: Final = 0.5
FOLLOW_UP_QUICK_CONTEXT: Final = 0.8
FOLLOW_UP_MODEL_MERGE_MIN: Final = 0.7
FOLLOW_UP_INHERITED_MIN: Final = 0.8

# Routing fallback when the model cannot be used.
FALLBACK_MIN: Final = 0.5

# Classifier confidence a single-edit misspelling of a specific intent phrase still reaches.
MISSPELLED_PHRASE_MIN: Final = 0.3
