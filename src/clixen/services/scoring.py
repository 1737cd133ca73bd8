"""Template scoring heuristics: pure functions, no I/O."""

from __future__ import annotations

from typing import Iterable, Literal

from clixen.schemas.intent import IntentAnalysis, StrictIntent
from clixen.schemas.template import TemplateMatch, WorkflowTemplate

TRIGGER_POINTS = 40
ACTION_POINTS = 30
USE_CASE_POINTS = 20
TAG_POINTS = 5

SIMILARITY_THRESHOLD = 0.7

# Strict matcher criteria, in hundredths so sums stay exact
_STRICT_TRIGGER = 40
_STRICT_ACTION = 30
_STRICT_OPERATION = 20
_STRICT_REQUIREMENTS = 10


def calculate_similarity(text1: str, text2: str) -> float:
    """Word-overlap ratio: words of ``text1`` found in ``text2`` over the union."""
    if not text1 or not text2:
        return 0.0

    words1 = text1.lower().split()
    words2 = text2.lower().split()
    if not words1 or not words2:
        return 0.0

    lookup = set(words2)
    intersection = [w for w in words1 if w in lookup]
    union = set(words1) | lookup
    return len(intersection) / len(union)


def extract_tags(intent: IntentAnalysis) -> list[str]:
    """Tags implied by an intent, compared against template tags."""
    tags = [intent.trigger.app]
    tags.extend(action.app for action in intent.actions)

    event = intent.trigger.event
    if "order" in event:
        tags.append("orders")
    if "customer" in event:
        tags.append("customers")
    if any("email" in action.app for action in intent.actions):
        tags.append("email")
    if any("sheet" in action.app for action in intent.actions):
        tags.append("spreadsheet")

    return tags


def confidence_label(score: int) -> Literal["high", "medium", "low"]:
    if score > 70:
        return "high"
    if score > 50:
        return "medium"
    return "low"


def score_template(
    template: WorkflowTemplate,
    intent: IntentAnalysis,
    *,
    similarity_threshold: float = SIMILARITY_THRESHOLD,
) -> TemplateMatch:
    score = 0

    if template.trigger_app == intent.trigger.app:
        score += TRIGGER_POINTS

    missing: list[str] = []
    for action in intent.actions:
        if action.app in template.action_apps:
            score += ACTION_POINTS
        else:
            missing.append(action.app)

    if calculate_similarity(template.use_case, intent.description) > similarity_threshold:
        score += USE_CASE_POINTS

    intent_tags = extract_tags(intent)
    for tag in template.tags:
        if tag in intent_tags:
            score += TAG_POINTS

    return TemplateMatch(
        template_id=template.id,
        template_name=template.name,
        match_score=score,
        confidence=confidence_label(score),
        missing_features=missing,
    )


def rank_templates(
    templates: Iterable[WorkflowTemplate],
    intent: IntentAnalysis,
    *,
    limit: int = 5,
    similarity_threshold: float = SIMILARITY_THRESHOLD,
) -> list[TemplateMatch]:
    """Score every template and return the best ``limit``, highest first.

    Ties keep the order the store returned them in.
    """
    scored = [
        score_template(t, intent, similarity_threshold=similarity_threshold)
        for t in templates
    ]
    scored.sort(key=lambda m: m.match_score, reverse=True)
    return scored[:limit]


def find_matching_key(target: str, keys: Iterable[str]) -> str | None:
    """Fuzzy-match a placeholder key like ``{{RECIPIENT_EMAIL}}`` to an extracted key."""
    clean_target = target.replace("{", "").replace("}", "").lower()
    candidates = [k for k in keys if k]
    if not clean_target:
        return None

    for key in candidates:
        if key.lower() == clean_target:
            return key

    for key in candidates:
        lowered = key.lower()
        if lowered in clean_target or clean_target in lowered:
            return key

    return None


# ----------------------------------------------------------------------
# Strict matching
# ----------------------------------------------------------------------

def operation_matches(template: WorkflowTemplate, operation: str) -> bool:
    if not operation:
        return True

    op = operation.lower()
    template_ops = [s.lower() for s in [template.trigger_type, *template.tags] if s]
    return any(t in op or op in t for t in template_ops)


def requirements_compatible(template: WorkflowTemplate, requirements: list[str]) -> bool:
    """False when any of the template's limitations mentions a requirement."""
    if not requirements:
        return True

    for req in requirements:
        req_lower = req.lower()
        if any(req_lower in lim.lower() for lim in template.limitations):
            return False
    return True


def strict_confidence(template: WorkflowTemplate, intent: StrictIntent) -> float:
    """0.0-1.0 confidence; 0 when the trigger or action app does not match."""
    if template.trigger_app != intent.trigger_app:
        return 0.0
    if intent.action_app not in template.action_apps:
        return 0.0

    points = _STRICT_TRIGGER + _STRICT_ACTION
    if operation_matches(template, intent.operation):
        points += _STRICT_OPERATION
    if requirements_compatible(template, intent.requirements):
        points += _STRICT_REQUIREMENTS
    return points / 100
