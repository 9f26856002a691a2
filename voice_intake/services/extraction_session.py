"""
Extraction Session.

Owns the field map of one voice interaction. Real-time tool-call
updates are ingested while the call is live; when it ends, an optional
second-pass extraction is merged in once and the fields still below the
review threshold are reported.

State machine: IDLE -> COLLECTING -> FINALIZING -> IDLE. Every public
mutator runs under one lock, since a merge is read-modify-write over the
shared map.
"""

from __future__ import annotations

import threading
from typing import Any, Mapping, Union

from voice_intake.config import get_settings
from voice_intake.logging_config import generate_trace_id, get_logger, session_id_var
from voice_intake.schemas.fields import (
    CanonicalField,
    FieldMap,
    FieldSource,
    FieldValue,
)
from voice_intake.schemas.session import (
    FieldSnapshot,
    FinalizationResult,
    SessionSnapshot,
    SessionState,
)
from voice_intake.services import merge_engine
from voice_intake.services.field_resolver import resolve
from voice_intake.services.normalizer import normalize_with_parts, score_with_reported

logger = get_logger(__name__)

USER_EDIT_CONFIDENCE = 1.0

FieldRef = Union[CanonicalField, str]


class ExtractionSession:
    """
    Accumulates field updates over the lifetime of one voice interaction.

    Typical flow:
        session = ExtractionSession()
        session.start()
        session.ingest("first_name", "john")        # per tool call
        session.mark_user_edited("firstName")       # user typed in the form
        result = session.finalize(refinement_map)   # after the call
        booking_payload = result.snapshot.as_values()
        session.reset()
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._fields: FieldMap = {}
        self._state = SessionState.IDLE
        self._session_id = ""
        self._log = logger

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def field_map(self) -> FieldMap:
        """Copy of the current map, safe to hand off by value."""
        with self._lock:
            return dict(self._fields)

    # -- Lifecycle --

    def start(self, session_id: str | None = None) -> SessionSnapshot:
        """Begin a new interaction: clear the map and start collecting."""
        with self._lock:
            self._fields = {}
            self._session_id = session_id or generate_trace_id()
            self._state = SessionState.COLLECTING
            session_id_var.set(self._session_id)
            self._log = logger.bind(session_id=self._session_id)
            self._log.info("session_started")
            return self._build_snapshot()

    def reset(self) -> None:
        """Discard everything and return to IDLE."""
        with self._lock:
            self._log.info("session_reset", state=self._state.value, fields=len(self._fields))
            self._fields = {}
            self._state = SessionState.IDLE

    # -- Real-time collection --

    def ingest(
        self,
        raw_key: str,
        raw_value: Any,
        confidence: float | None = None,
    ) -> SessionSnapshot | None:
        """
        Resolve, normalize and merge one incoming ``(key, value)`` pair.

        A ``confidence`` reported by the caller (for example by the
        extraction model) replaces the normalizer's score, unless the
        normalizer rejected the value.

        Returns the updated snapshot, or None when the event was dropped:
        wrong state, unresolvable key, or a value that normalizes to empty.
        """
        with self._lock:
            if self._state != SessionState.COLLECTING:
                self._log.warning("ingest_ignored", raw_key=raw_key, state=self._state.value)
                return None

            field = resolve(raw_key)
            if field is None:
                self._log.info("ingest_dropped_unresolved", raw_key=raw_key)
                return None

            normalized = normalize_with_parts(field, raw_value)
            if not normalized:
                self._log.debug("ingest_dropped_empty", raw_key=raw_key, field=field.value)
                return None

            incoming: FieldMap = {
                f: FieldValue(
                    value=nv.value,
                    confidence=score_with_reported(nv, confidence),
                    source=FieldSource.REALTIME,
                )
                for f, nv in normalized.items()
            }

            before = self._fields
            self._fields = merge_engine.merge(before, incoming)
            for f in incoming:
                kept = self._fields[f] is before.get(f) and before.get(f) is not None
                self._log.info(
                    "field_ingested",
                    raw_key=raw_key,
                    field=f.value,
                    confidence=incoming[f].confidence,
                    kept_existing=kept,
                )
            return self._build_snapshot()

    def ingest_many(
        self,
        payload: Mapping[str, Any],
        confidences: Mapping[str, Any] | None = None,
    ) -> SessionSnapshot:
        """Ingest a batch of key/value pairs (one tool call) and return the final snapshot."""
        confidences = confidences or {}
        with self._lock:
            for raw_key, raw_value in payload.items():
                self.ingest(raw_key, raw_value, confidence=confidences.get(raw_key))
            return self._build_snapshot()

    # -- User edits --

    def mark_user_edited(self, field: FieldRef) -> None:
        """
        Pin a field as user-edited so no automated merge can change it.

        Idempotent. The current value (possibly none) is kept.
        """
        field = CanonicalField(field)
        with self._lock:
            if not self._accepts_user_edits("mark_user_edited", field):
                return
            current = self._fields.get(field)
            self._fields = {
                **self._fields,
                field: FieldValue(
                    value=current.value if current else None,
                    confidence=USER_EDIT_CONFIDENCE,
                    source=FieldSource.USER,
                ),
            }
            self._log.info("field_marked_user_edited", field=field.value)

    def set_user_value(self, field: FieldRef, value: str | None) -> SessionSnapshot | None:
        """Store a value typed by the user; it is protected like ``mark_user_edited``."""
        field = CanonicalField(field)
        with self._lock:
            if not self._accepts_user_edits("set_user_value", field):
                return None
            cleaned = value.strip() if isinstance(value, str) else value
            self._fields = {
                **self._fields,
                field: FieldValue(
                    value=cleaned or None,
                    confidence=USER_EDIT_CONFIDENCE,
                    source=FieldSource.USER,
                ),
            }
            self._log.info("field_set_by_user", field=field.value)
            return self._build_snapshot()

    # -- Finalization --

    def finalize(self, refinement: FieldMap | None = None) -> FinalizationResult:
        """
        Apply the one-shot refinement merge and report fields needing review.

        Only the first call from COLLECTING merges; later calls return the
        current result unchanged.
        """
        with self._lock:
            if self._state != SessionState.COLLECTING:
                self._log.warning("finalize_ignored", state=self._state.value)
                return self._build_result()

            if refinement:
                before = self._fields
                self._fields = merge_engine.refine(before, refinement)
                upgraded = merge_engine.changed_fields(before, self._fields)
                self._log.info(
                    "refinement_merged",
                    offered=len(refinement),
                    upgraded=[f.value for f in upgraded],
                )

            self._state = SessionState.FINALIZING
            result = self._build_result()
            self._log.info(
                "session_finalized",
                fields=len(self._fields),
                overall_confidence=result.snapshot.overall_confidence,
                needs_review=[f.value for f in result.fields_needing_review],
            )
            return result

    # -- Read side --

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._build_snapshot()

    def fields_needing_review(self) -> list[CanonicalField]:
        """Automated fields below the review threshold, lowest confidence first."""
        with self._lock:
            threshold = get_settings().review_threshold
            ordered = [f for f in CanonicalField if f in self._fields]
            low = [f for f in ordered if self._needs_review(self._fields[f], threshold)]
            return sorted(low, key=lambda f: self._fields[f].confidence)

    # -- Internals --

    def _accepts_user_edits(self, action: str, field: CanonicalField) -> bool:
        if self._state == SessionState.IDLE:
            self._log.warning(f"{action}_ignored", field=field.value, state=self._state.value)
            return False
        return True

    @staticmethod
    def _needs_review(value: FieldValue, threshold: float) -> bool:
        return not value.is_user_edit and value.confidence < threshold

    def _build_snapshot(self) -> SessionSnapshot:
        settings = get_settings()
        fields = {
            f: FieldSnapshot(
                value=self._fields[f].value,
                confidence=self._fields[f].confidence,
                source=self._fields[f].source,
                needs_review=self._needs_review(self._fields[f], settings.review_threshold),
            )
            for f in CanonicalField
            if f in self._fields
        }

        automated = [v.confidence for v in self._fields.values() if not v.is_user_edit and not v.is_empty]
        overall = round(sum(automated) / len(automated), 3) if automated else 0.0

        return SessionSnapshot(
            session_id=self._session_id,
            state=self._state,
            fields=fields,
            overall_confidence=overall,
            requires_manual_review=bool(automated) and overall < settings.manual_review_threshold,
        )

    def _build_result(self) -> FinalizationResult:
        return FinalizationResult(
            snapshot=self._build_snapshot(),
            fields_needing_review=self.fields_needing_review(),
        )
