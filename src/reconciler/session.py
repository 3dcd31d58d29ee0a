"""Per-user preference editing session.

A ``PreferenceSession`` is built when a user signs in and closed when they
leave. It owns the draft buffer and the review queue for that user; every
change to preferences goes through its methods.

User edits land in the draft and reach the store on ``commit()``. Approvals
of learned values are saved immediately and stamped back onto the
conversation metadata.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from reconciler.categories import (
    add_value_to_category,
    chatbot_values,
    merge_values_into_category,
    remove_from_category,
)
from reconciler.classifier import detect_constraint_type
from reconciler.config.settings import ReconcilerSettings, get_settings
from reconciler.constraints import (
    add_unified_constraint,
    create_unified_constraint,
    remove_unified_constraint,
)
from reconciler.draft import DraftBuffer, change_summary, is_pending_removal
from reconciler.enums import (
    ConstraintIntent,
    ConstraintScope,
    ConstraintSource,
    ConstraintTargetType,
    PreferenceSource,
    ReviewStatus,
    Sentiment,
)
from reconciler.exceptions import PersistenceError, SessionClosedError
from reconciler.migration import is_legacy_format, load_preferences_document, migrate_to_unified_constraints
from reconciler.models import (
    DismissedInlineItem,
    LearnedPreference,
    LearnedPreferencesResult,
    OperationResult,
    PreferenceCategory,
    PreferenceDiff,
    PreferenceValue,
    ReviewResult,
    UnifiedConstraint,
    UnifiedConstraintsType,
    UserPreferences,
)
from reconciler.normalizer import create_preference_value, create_preference_values
from reconciler.review_queue import (
    ReviewQueue,
    apply_learned_preference,
    build_learned_preferences,
    coerce_metadata,
    group_by_scope,
    is_already_adopted,
    stamp_learned_preference,
)
from reconciler.stores import ConversationMemoryStore, PreferenceStore
from reconciler.utils import normalize, utc_now

logger = logging.getLogger(__name__)

INLINE_DISMISSAL_VIA = "inline_chip"


class PreferenceSession:
    """Editing session for one user's preference document."""

    def __init__(
        self,
        user_id: str,
        preference_store: PreferenceStore,
        memory_store: ConversationMemoryStore,
        *,
        settings: ReconcilerSettings | None = None,
    ) -> None:
        self.user_id = user_id
        self._preference_store = preference_store
        self._memory_store = memory_store
        self._settings = settings or get_settings()
        self._buffer = DraftBuffer()
        self._queue = ReviewQueue()
        self._metadata: dict[str, Any] = {}
        self._metadata_loaded = False
        self._closed = False

    # ── Lifecycle ──────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"Session for user {self.user_id} is closed")

    @property
    def closed(self) -> bool:
        return self._closed

    async def load(self) -> OperationResult:
        """Read the stored document, migrating a legacy shape on the way in."""
        self._ensure_open()
        try:
            raw = await self._preference_store.load(self.user_id)
        except PersistenceError as exc:
            logger.error("Loading preferences failed: %s", exc, extra={"user_id": self.user_id})
            return OperationResult(success=False, error=str(exc))

        if self._closed:
            return OperationResult(success=False, error="Session closed during load")

        if raw is not None and is_legacy_format(raw):
            logger.info("Stored preferences are in legacy shape; migrating", extra={"user_id": self.user_id})
        self._buffer.reset(load_preferences_document(raw))
        if self._metadata_loaded:
            self._rebuild_queue()
        return OperationResult(success=True)

    def close(self) -> None:
        """Drop all in-memory state. A write still in flight finishes on its own."""
        self._closed = True
        self._buffer = DraftBuffer()
        self._queue = ReviewQueue()
        self._metadata = {}
        self._metadata_loaded = False

    # ── Read helpers ───────────────────────────────────────────────

    @property
    def committed(self) -> UserPreferences:
        self._ensure_open()
        return self._buffer.committed

    @property
    def draft(self) -> UserPreferences:
        self._ensure_open()
        return self._buffer.draft

    @property
    def is_dirty(self) -> bool:
        self._ensure_open()
        return self._buffer.is_dirty

    def differences(self) -> PreferenceDiff:
        self._ensure_open()
        return self._buffer.differences()

    def change_summary(self) -> str:
        diff = self.differences()
        return change_summary(diff.added, diff.removed)

    def is_pending_removal(self, field: str, normalized_value: str) -> bool:
        self._ensure_open()
        return is_pending_removal(self._buffer.committed, self._buffer.draft, field, normalize(normalized_value))

    # ── Draft edits ────────────────────────────────────────────────

    def add_preference_value(
        self,
        field: str,
        value: str | PreferenceValue,
        *,
        source: PreferenceSource = PreferenceSource.MANUAL,
        sentiment: Sentiment = Sentiment.LIKE,
    ) -> bool:
        """Add a value to ``field`` in the draft; False when blank or already present."""
        self._ensure_open()
        entry = create_preference_value(value, source, sentiment) if isinstance(value, str) else value
        if entry is None:
            return False
        before = self._buffer.draft.get_category(field)
        after = add_value_to_category(before, entry)
        if before is not None and len(after.values) == len(before.values):
            return False
        self._buffer.edit(lambda prefs: prefs.with_category(field, after))
        return True

    def remove_preference_value(self, field: str, normalized_value: str) -> bool:
        """Remove a value from ``field`` in the draft; False when it was not there."""
        self._ensure_open()
        before = self._buffer.draft.get_category(field)
        after = remove_from_category(before, normalized_value)
        if before is None or after is before:
            return False
        self._buffer.edit(lambda prefs: prefs.with_category(field, after))
        return True

    def submit_form(self, values_by_field: Mapping[str, Iterable[str]]) -> UserPreferences:
        """Replace the form-owned values of each submitted field.

        Values learned from conversations survive the resubmission; fields not
        in ``values_by_field`` are left alone.
        """
        self._ensure_open()

        def change(prefs: UserPreferences) -> UserPreferences:
            for field, values in values_by_field.items():
                submitted = create_preference_values(values, PreferenceSource.FORM)
                merged = merge_values_into_category(
                    PreferenceCategory(values=submitted),
                    chatbot_values(prefs.get_category(field)),
                )
                prefs = prefs.with_category(field, merged)
            return prefs.model_copy(update={"onboarding_completed": True})

        return self._buffer.edit(change)

    def update_constraints(self, constraints: UnifiedConstraintsType | Mapping[str, Any]) -> UnifiedConstraintsType:
        """Replace the draft's constraints; a legacy-shaped mapping is migrated first."""
        self._ensure_open()
        unified = migrate_to_unified_constraints(constraints)
        self._buffer.edit(lambda prefs: prefs.with_constraints(unified))
        return unified

    def add_unified_constraint(self, constraint: UnifiedConstraint) -> bool:
        """Append to the draft's constraints; False for a duplicate."""
        self._ensure_open()
        current = self._buffer.draft.unified_constraints
        updated = add_unified_constraint(current, constraint)
        if updated is current:
            return False
        self._buffer.edit(lambda prefs: prefs.with_constraints(updated))
        return True

    def add_constraint_from_text(
        self,
        text: str,
        *,
        target_type: ConstraintTargetType | None = None,
        scope: ConstraintScope | None = None,
        intent: ConstraintIntent = ConstraintIntent.AVOID,
    ) -> UnifiedConstraint | None:
        """Classify free text and add it as a constraint.

        ``target_type`` and ``scope`` override the classifier. Returns the
        constraint added, or None when the text was blank or a duplicate.
        """
        self._ensure_open()
        detection = detect_constraint_type(text)
        constraint = create_unified_constraint(
            target_type or detection.target_type,
            text,
            scope=scope or detection.scope,
            intent=intent,
            source=ConstraintSource.MANUAL,
        )
        if constraint is None:
            return None
        logger.debug(
            "Classified %r as %s/%s (%.2f)",
            text,
            detection.target_type,
            detection.scope,
            detection.confidence,
            extra={"user_id": self.user_id},
        )
        return constraint if self.add_unified_constraint(constraint) else None

    def remove_unified_constraint(self, constraint_id: str) -> bool:
        self._ensure_open()
        current = self._buffer.draft.unified_constraints
        updated = remove_unified_constraint(current, constraint_id)
        if len(updated.items) == len(current.items):
            return False
        self._buffer.edit(lambda prefs: prefs.with_constraints(updated))
        return True

    async def commit(self) -> OperationResult:
        """Save the draft. On failure the draft is kept so the user can retry."""
        self._ensure_open()
        result = await self._buffer.commit(self._save)
        if result.success:
            logger.info("Committed preferences", extra={"user_id": self.user_id})
        return result

    def discard(self) -> None:
        self._ensure_open()
        self._buffer.discard()

    async def _save(self, preferences: UserPreferences) -> None:
        await self._preference_store.save(self.user_id, preferences)

    # ── Review queue ───────────────────────────────────────────────

    async def fetch_learned_preferences(self) -> LearnedPreferencesResult:
        """Re-read conversation metadata and return the pending review items.

        A failed read leaves the current queue untouched; its pending items are
        returned alongside the error.
        """
        self._ensure_open()
        try:
            raw = await self._memory_store.read_metadata(self.user_id)
        except PersistenceError as exc:
            logger.error("Reading conversation metadata failed: %s", exc, extra={"user_id": self.user_id})
            return LearnedPreferencesResult(success=False, error=str(exc), items=self._queue.pending)
        if self._closed:
            return LearnedPreferencesResult(success=False, error="Session closed")
        self._metadata = dict(raw)
        self._metadata_loaded = True
        self._rebuild_queue()
        return LearnedPreferencesResult(success=True, items=self._queue.pending)

    def _rebuild_queue(self) -> None:
        self._queue = ReviewQueue(
            build_learned_preferences(
                coerce_metadata(self._metadata),
                self._buffer.committed,
                scope_confidence=self._settings.SCOPE_MEMORY_CONFIDENCE,
            )
        )

    @property
    def learned_preferences(self) -> list[LearnedPreference]:
        self._ensure_open()
        return self._queue.pending

    def learned_preferences_by_scope(self) -> dict[str, list[LearnedPreference]]:
        return group_by_scope(self.learned_preferences)

    async def _ensure_metadata(self) -> OperationResult:
        if self._metadata_loaded:
            return OperationResult(success=True)
        fetched = await self.fetch_learned_preferences()
        return OperationResult(success=fetched.success, error=fetched.error)

    async def _patch_metadata(self, partial: dict[str, Any]) -> None:
        await self._memory_store.patch_metadata(self.user_id, partial)
        self._metadata = {**self._metadata, **partial}

    async def approve_learned_preference(
        self,
        scope: str,
        key: str,
        value: Any,
        confidence: float | None = None,
        evidence: str | None = None,
    ) -> ReviewResult:
        """Adopt a learned value and save it right away.

        Approving something already approved, dismissed, or already present in
        the saved document succeeds without side effects. Confidence below the
        auto-route threshold does not block approval; it is reported through
        ``low_confidence``.
        """
        self._ensure_open()
        loaded = await self._ensure_metadata()
        if not loaded.success:
            return ReviewResult(success=False, status=ReviewStatus.FAILED, error=loaded.error)

        value_text = str(value)
        queued = self._queue.find(scope, key, value_text)
        if queued is not None and not queued.is_pending:
            return ReviewResult(success=True, status=ReviewStatus.ALREADY_PROCESSED)

        item = queued if queued is not None else LearnedPreference(scope=scope, key=key, value=value_text)
        overrides: dict[str, Any] = {}
        if confidence is not None:
            overrides["confidence"] = confidence
        if evidence is not None:
            overrides["evidence"] = evidence
        if overrides:
            item = LearnedPreference.model_validate({**item.model_dump(), **overrides})

        if not item.normalized_value:
            return ReviewResult(success=False, status=ReviewStatus.NOT_FOUND, error="Nothing to approve: blank value")

        now = utc_now()
        if is_already_adopted(self._buffer.committed, item):
            if queued is not None:
                self._queue.mark_approved(queued, now)
            return ReviewResult(success=True, status=ReviewStatus.ALREADY_PROCESSED)

        low_confidence = item.confidence < self._settings.MIN_AUTO_ROUTE_CONFIDENCE
        target: list[str] = []

        def change(prefs: UserPreferences) -> UserPreferences:
            updated, field = apply_learned_preference(prefs, item)
            target.append(field)
            return updated

        saved = await self._buffer.save_through(change, self._save)
        if not saved.success:
            return ReviewResult(success=False, status=ReviewStatus.FAILED, error=saved.error)
        if self._closed:
            return ReviewResult(success=True, status=ReviewStatus.APPROVED, low_confidence=low_confidence)

        self._queue.mark_approved(queued if queued is not None else item, now)
        try:
            await self._patch_metadata(stamp_learned_preference(self._metadata, item, approved_at=now))
        except PersistenceError as exc:
            # The value is saved; only the review stamp is missing.
            logger.warning("Could not stamp approval: %s", exc, extra={"user_id": self.user_id})

        logger.info(
            "Approved learned preference %s/%s -> %s%s",
            scope,
            key,
            target[0],
            " (low confidence)" if low_confidence else "",
            extra={"user_id": self.user_id},
        )
        return ReviewResult(
            success=True,
            status=ReviewStatus.APPROVED,
            low_confidence=low_confidence,
            target=target[0],
        )

    async def dismiss_learned_preference(self, scope: str, key: str, value: Any = None) -> ReviewResult:
        """Dismiss every pending item matching ``scope``/``key`` (and ``value`` when given).

        Nothing is added to the preference document.
        """
        self._ensure_open()
        loaded = await self._ensure_metadata()
        if not loaded.success:
            return ReviewResult(success=False, status=ReviewStatus.FAILED, error=loaded.error)

        value_text = str(value) if value is not None else None
        matches = self._queue.find_pending(scope, key, value_text)
        if not matches:
            if self._queue.find(scope, key, value_text) is not None:
                return ReviewResult(success=True, status=ReviewStatus.ALREADY_PROCESSED)
            if value_text is not None and is_already_adopted(
                self._buffer.committed, LearnedPreference(scope=scope, key=key, value=value_text)
            ):
                return ReviewResult(success=True, status=ReviewStatus.ALREADY_PROCESSED)
            return ReviewResult(success=False, status=ReviewStatus.NOT_FOUND, error=f"No learned preference {scope}/{key}")

        now = utc_now()
        working = dict(self._metadata)
        partial: dict[str, Any] = {}
        for item in matches:
            patch = stamp_learned_preference(working, item, dismissed_at=now)
            working.update(patch)
            partial.update(patch)

        try:
            await self._patch_metadata(partial)
        except PersistenceError as exc:
            logger.error("Dismissal failed: %s", exc, extra={"user_id": self.user_id})
            return ReviewResult(success=False, status=ReviewStatus.FAILED, error=str(exc))
        if self._closed:
            return ReviewResult(success=True, status=ReviewStatus.DISMISSED)

        for item in matches:
            self._queue.mark_dismissed(item)
        logger.info("Dismissed %d learned preference(s) %s/%s", len(matches), scope, key, extra={"user_id": self.user_id})
        return ReviewResult(success=True, status=ReviewStatus.DISMISSED)

    async def dismiss_inline(self, value: str, scope: str | None = None, reason: str | None = None) -> OperationResult:
        """Record that the user waved off ``value`` in the chat; it will not be queued again."""
        self._ensure_open()
        if not normalize(value):
            return OperationResult(success=False, error="Nothing to dismiss: blank value")
        loaded = await self._ensure_metadata()
        if not loaded.success:
            return loaded

        entry = DismissedInlineItem(
            value=normalize(value),
            scope=scope,
            reason=reason,
            dismissed_at=utc_now(),
            dismissed_via=INLINE_DISMISSAL_VIA,
        )
        existing = self._metadata.get("dismissed_inline")
        entries = list(existing) if isinstance(existing, list) else []
        entries.append(entry.model_dump(mode="json", by_alias=True, exclude_none=True))
        try:
            await self._patch_metadata({"dismissed_inline": entries})
        except PersistenceError as exc:
            logger.error("Inline dismissal failed: %s", exc, extra={"user_id": self.user_id})
            return OperationResult(success=False, error=str(exc))
        if not self._closed:
            self._rebuild_queue()
        return OperationResult(success=True)
