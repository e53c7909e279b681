"""Merge saved question configuration with the live shape of a source view.

Every field ends up in exactly one of three states:

* retained      - saved and still present in the view (enabled)
* newly added   - present in the view, never saved (disabled until the operator opts in)
* orphaned      - saved, but gone from the view (never enabled, listed last)

When the view itself cannot be read, nothing is classified: the saved rows
come back untouched and the result is flagged as degraded. A transient
failure must not look like every field having been deleted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, Iterable, List, Optional, Sequence

from errors import ValidationFailure
from inference import SourceField, allowed_display_types, config_from_source_field, pin_display_type
from schemas import DISPLAY_TYPES, QuestionConfig, QuestionConfigOut

logger = logging.getLogger(__name__)


@dataclass
class Reconciliation:
    questions: List[QuestionConfigOut]
    source_available: bool = True
    warning: Optional[str] = None
    live_options: Dict[str, str] = field(default_factory=dict)

    @property
    def enabled_count(self) -> int:
        return sum(1 for q in self.questions if q.is_enabled)


def _index_source_fields(source_fields: Iterable[SourceField]) -> Dict[str, SourceField]:
    # Keep the first row per identifier; later duplicates are ignored.
    index: Dict[str, SourceField] = {}
    for f in source_fields:
        index.setdefault(f.field_name, f)
    return index


def config_from_persisted(row: Any, live: Optional[SourceField] = None) -> QuestionConfig:
    """Copy a persisted question row into an editable config."""
    stored_options = row.choices or ""
    options = live.options if live is not None and live.options.strip() else stored_options
    display_type = row.display_type if row.display_type in DISPLAY_TYPES else "text"
    return QuestionConfig(
        field_name=row.field_name,
        attribute_label=row.attribute_label or "",
        survey_label=row.survey_label or "",
        display_type=display_type,
        options=options,
        description=row.description or "",
        placeholder=row.placeholder or "",
        min_value=row.min_value,
        max_value=row.max_value,
        col_count=row.col_count,
        is_read_only=bool(row.is_read_only),
        is_visible=bool(row.is_visible),
        is_required=bool(row.is_required),
        is_blind=bool(row.is_blind),
        min_is_current=bool(row.min_is_current),
        sort_order=row.sort_order,
        is_enabled=True,
    )


def with_display_constraints(config: QuestionConfig, live_options: str = "") -> QuestionConfigOut:
    allowed = allowed_display_types(config.field_name, config.options, live_options)
    data = config.model_dump()
    data["display_type"] = pin_display_type(config.display_type, allowed)
    return QuestionConfigOut(**data, allowed_display_types=allowed, display_type_locked=len(allowed) == 1)


def _ordered(configs: List[QuestionConfigOut]) -> List[QuestionConfigOut]:
    return sorted(configs, key=lambda c: (c.is_orphaned, c.sort_order))


def reconcile(persisted: Sequence[Any], source_fields: Optional[Sequence[SourceField]]) -> Reconciliation:
    """Merge persisted rows with the current source fields.

    Args:
        persisted: Saved question rows (ORM rows or anything with the same attributes).
        source_fields: Fields read from the source view, or ``None`` when the
            view could not be read.

    Returns:
        Reconciliation: ordered, classified configs ready for editing.
    """
    if source_fields is None:
        configs = [with_display_constraints(config_from_persisted(row)) for row in persisted]
        return Reconciliation(
            questions=_ordered(configs),
            source_available=False,
            warning="Source view could not be read; showing saved questions only.",
        )

    live = _index_source_fields(source_fields)
    live_options = {name: f.options for name, f in live.items() if f.options.strip()}
    persisted_names = set()
    configs: List[QuestionConfigOut] = []

    for row in persisted:
        persisted_names.add(row.field_name)
        source = live.get(row.field_name)
        config = config_from_persisted(row, source)
        config.is_orphaned = source is None
        config.is_enabled = not config.is_orphaned
        config.is_newly_added = False
        configs.append(with_display_constraints(config, live_options.get(row.field_name, "")))

    tail = max((row.sort_order for row in persisted), default=0)
    for source in live.values():
        if source.field_name in persisted_names:
            continue
        tail += 1
        config = config_from_source_field(source)
        config.is_enabled = False
        config.is_newly_added = True
        config.is_orphaned = False
        config.sort_order = tail
        configs.append(with_display_constraints(config, source.options))

    orphaned = sum(1 for c in configs if c.is_orphaned)
    added = sum(1 for c in configs if c.is_newly_added)
    if orphaned or added:
        logger.info("Reconciled question set", extra={"orphaned": orphaned, "newly_added": added})

    return Reconciliation(questions=_ordered(configs), live_options=live_options)


def configs_to_save(configs: Sequence[QuestionConfig], live_options: Optional[Dict[str, str]] = None,
                    live_field_names: Optional[Collection[str]] = None) -> List[QuestionConfig]:
    """Return the enabled configs of an edited list, or raise if they cannot be saved.

    ``live_field_names`` are the fields the source view currently has; pass
    ``None`` when the view could not be read and only the submitted flags
    are checked.

    Raises:
        ValidationFailure: nothing enabled, a field repeated, an orphan enabled,
            a non-positive sort order, or a display type the field does not allow.
    """
    live_options = live_options or {}
    enabled = [c for c in configs if c.is_enabled]
    if not enabled:
        raise ValidationFailure("At least one question must be enabled")

    seen = set()
    for c in enabled:
        if c.field_name in seen:
            raise ValidationFailure(f"Duplicate field name: {c.field_name}")
        seen.add(c.field_name)
        if c.is_orphaned or (live_field_names is not None and c.field_name not in live_field_names):
            raise ValidationFailure(f"Field {c.field_name} no longer exists in the source view")
        if c.sort_order < 1:
            raise ValidationFailure(f"Sort order of {c.field_name} must be positive")
        allowed = allowed_display_types(c.field_name, c.options, live_options.get(c.field_name, ""))
        if c.display_type not in allowed:
            raise ValidationFailure(
                f"Display type {c.display_type!r} is not allowed for {c.field_name}; expected one of {allowed}")
    return enabled
