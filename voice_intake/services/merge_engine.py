"""
Confidence-Based Merge Engine.

Reconciles an existing field map with an incoming one. Per field, in
order:

1. A user edit in ``existing`` is kept, unless ``incoming`` is itself a
   user edit for that field.
2. An empty incoming value never overwrites anything.
3. An absent or empty existing value is replaced by the incoming one.
4. Otherwise the incoming value wins only with strictly higher
   confidence; ties keep the existing value.

The rules make ``merge(merge(F, G), G) == merge(F, G)``: the voice
stream may redeliver the same tool call, and a redelivery must be a
no-op.
"""

from __future__ import annotations

from typing import Optional

from voice_intake.schemas.fields import CanonicalField, FieldMap, FieldValue


def choose(existing: Optional[FieldValue], incoming: Optional[FieldValue]) -> Optional[FieldValue]:
    """Apply the precedence rules to a single field."""
    if incoming is None:
        return existing

    if existing is not None and existing.is_user_edit:
        return incoming if incoming.is_user_edit else existing

    if incoming.is_empty:
        return existing

    if existing is None or existing.is_empty:
        return incoming

    if incoming.is_user_edit or incoming.confidence > existing.confidence:
        return incoming
    return existing


def merge(existing: FieldMap, incoming: FieldMap) -> FieldMap:
    """Return a new field map; neither argument is modified."""
    merged: FieldMap = dict(existing)
    for field, value in incoming.items():
        chosen = choose(existing.get(field), value)
        if chosen is not None:
            merged[field] = chosen
    return merged


def refine(realtime: FieldMap, refinement: FieldMap) -> FieldMap:
    """
    Refinement merge: the second-pass extraction against the real-time map.

    Same rules as ``merge``; user edits made during the call still win,
    and the careful pass may only upgrade lower-confidence guesses.
    """
    return merge(realtime, refinement)


def changed_fields(before: FieldMap, after: FieldMap) -> list[CanonicalField]:
    """Fields whose entry differs between two maps, in ``after`` order."""
    return [field for field, value in after.items() if before.get(field) != value]
