"""Storage for override sets captured from reviewed turns.

Both scopes are keyed by the full interception key. Session-scoped sets
live in memory; workspace-scoped sets are also persisted to a JSON file so
they survive a restart:

{
    "conv-1::panel": { ...OverrideSet... },
    ...
}
"""

import json
from pathlib import Path
from typing import Optional, Sequence

from pydantic import BaseModel, Field

from liveprompt.editing.recompose import find_stale_edits
from liveprompt.models.messages import ChatMessage
from liveprompt.models.override import OverrideScope, OverrideSet, SectionOverride, SkippedOverride
from liveprompt.models.request import InterceptionKey, Section
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)


class OverrideApplication(BaseModel):
    """Fresh sections with stored edits merged, plus what could not be applied."""

    override_name: str
    sections: list[Section]
    applied: int = 0
    skipped: list[SkippedOverride] = Field(default_factory=list)


class OverrideStore:
    """Capture, look up, apply and clear override sets."""

    def __init__(self, store_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            store_path: JSON file for workspace-scoped sets. In-memory only if None.
        """
        self.store_path = store_path
        self._session: dict[InterceptionKey, OverrideSet] = {}
        self._workspace: dict[InterceptionKey, OverrideSet] = {}

        if store_path is not None and store_path.exists():
            self.load()

    def load(self) -> None:
        """Load workspace-scoped sets from disk.

        Raises:
            ValueError: If no store path is configured or the file is malformed
        """
        if self.store_path is None:
            raise ValueError("no store path configured")
        try:
            content = self.store_path.read_text(encoding="utf-8")
            raw = json.loads(content)
            self._workspace = {
                InterceptionKey.parse(key): OverrideSet.model_validate(data)
                for key, data in raw.items()
            }
        except (ValueError, AttributeError) as e:
            raise ValueError(f"Malformed override store {self.store_path}: {e}") from e
        logger.info("override_store_loaded", path=str(self.store_path), count=len(self._workspace))

    def save(self) -> None:
        """Persist workspace-scoped sets, replacing the file atomically."""
        if self.store_path is None:
            return
        self.store_path.parent.mkdir(parents=True, exist_ok=True)

        temp_path = self.store_path.with_suffix(".tmp")
        try:
            content = json.dumps(
                {str(key): override.model_dump(mode="json") for key, override in self._workspace.items()},
                indent=2,
                sort_keys=True,
            )
            temp_path.write_text(content, encoding="utf-8")
            temp_path.replace(self.store_path)
        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            logger.error("override_store_save_failed", path=str(self.store_path), error=str(e))
            raise IOError(f"Failed to save override store: {e}") from e

    def capture_override(
        self,
        key: InterceptionKey,
        scope: OverrideScope,
        sections: Sequence[Section],
        name: Optional[str] = None,
    ) -> OverrideSet:
        """
        Record the edited sections of a reviewed turn as the key's override set.

        Only sections carrying an edit or a deletion are recorded. Any set
        previously active for ``key`` is replaced; a session capture shadows
        the key's workspace set without removing it. Other keys are never
        touched.

        Args:
            key: Interception key the set belongs to
            scope: Session or workspace scope
            sections: Sections of the reviewed request
            name: Optional display name

        Returns:
            The new OverrideSet
        """
        entries = [
            SectionOverride(
                source_message_index=section.source_message_index,
                kind=section.kind,
                original_content=section.original_content,
                edited_content=section.edited_content,
                leaf_edits=[edit.model_copy(deep=True) for edit in section.leaf_edits],
                deleted=section.deleted,
            )
            for section in sections
            if section.deleted or section.has_edits
        ]
        override = OverrideSet(
            name=name or f"{key.surface.value}:{scope.value}",
            scope=scope,
            conversation_id=key.conversation_id,
            surface=key.surface.value,
            entries=entries,
        )

        self._session.pop(key, None)
        if scope == OverrideScope.WORKSPACE:
            self._workspace[key] = override
            self.save()
        else:
            self._session[key] = override

        logger.info(
            "override_captured",
            key=str(key),
            scope=scope.value,
            name=override.name,
            entries=len(entries),
        )
        return override

    def get_override(self, key: InterceptionKey) -> Optional[OverrideSet]:
        """Return the set active for ``key``; session sets win over workspace sets."""
        override = self._session.get(key)
        if override is not None:
            return override
        return self._workspace.get(key)

    def has_override(self, key: InterceptionKey) -> bool:
        return self.get_override(key) is not None

    def all_overrides(self) -> list[OverrideSet]:
        return [*self._session.values(), *self._workspace.values()]

    def clear_override(self, key: InterceptionKey) -> bool:
        """
        Remove the session and workspace sets of ``key``; other keys keep theirs.

        Returns:
            True if anything was removed
        """
        removed_session = self._session.pop(key, None) is not None
        removed_workspace = self._workspace.pop(key, None) is not None
        if removed_workspace:
            self.save()
        if removed_session or removed_workspace:
            logger.info("override_cleared", key=str(key))
            return True
        return False

    def clear_all(self) -> None:
        """Forget every set of every key, including the persisted workspace sets."""
        self._session.clear()
        if self._workspace:
            self._workspace.clear()
            self.save()
        logger.info("override_store_cleared")

    def apply_override(
        self,
        key: InterceptionKey,
        fresh_sections: Sequence[Section],
        messages: Sequence[ChatMessage],
    ) -> OverrideApplication:
        """
        Merge the key's stored edits onto a freshly rendered turn.

        Entries are matched by source message index, not section identity,
        so one set keeps applying while the conversation history grows. An
        entry is skipped when its index is gone or the message there has a
        different role; a leaf edit is dropped when its path does not
        resolve on the fresh message. Skips are reported, never fatal.

        Args:
            key: Interception key to look up
            fresh_sections: Sections built from the new turn's messages
            messages: The new turn's rendered messages, by index

        Returns:
            OverrideApplication with merged copies of ``fresh_sections``
        """
        override = self.get_override(key)
        sections = [section.model_copy(deep=True) for section in fresh_sections]
        if override is None:
            return OverrideApplication(override_name="", sections=sections)

        by_index = {section.source_message_index: section for section in sections}
        result = OverrideApplication(override_name=override.name, sections=sections)

        for entry in override.entries:
            section = by_index.get(entry.source_message_index)
            if section is None or entry.source_message_index >= len(messages):
                result.skipped.append(SkippedOverride(
                    source_message_index=entry.source_message_index,
                    reason="message no longer present",
                ))
                continue
            if section.kind != entry.kind:
                result.skipped.append(SkippedOverride(
                    source_message_index=entry.source_message_index,
                    reason=f"role changed from {entry.kind.value} to {section.kind.value}",
                ))
                continue

            leaf_edits = [edit.model_copy(deep=True) for edit in entry.leaf_edits]
            stale = find_stale_edits(messages[entry.source_message_index], leaf_edits)
            for edit, reason in stale:
                result.skipped.append(SkippedOverride(
                    source_message_index=entry.source_message_index,
                    path=edit.path,
                    reason=reason,
                ))
            stale_paths = {edit.path for edit, _ in stale}

            section.leaf_edits = [edit for edit in leaf_edits if edit.path not in stale_paths]
            section.edited_content = entry.edited_content
            section.deleted = entry.deleted
            result.applied += 1

        if result.skipped:
            logger.warning(
                "override_entries_skipped",
                key=str(key),
                name=override.name,
                skipped=[s.model_dump() for s in result.skipped],
            )
        logger.info(
            "override_applied",
            key=str(key),
            name=override.name,
            applied=result.applied,
            skipped=len(result.skipped),
        )
        return result
