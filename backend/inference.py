"""Derive default question configuration from one row of a source view.

Column names are the only structural signal an ad-hoc view offers, so the
defaults come from naming conventions (``Date01`` is a date, ``Notes`` a
textarea, a row carrying options is a lookup). Operators override them.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from choices import has_choice_data
from schemas import CHOICE_DISPLAY_TYPES, DISPLAY_TYPES, QuestionConfig

# Candidate keys, compared case-insensitively, in priority order.
LABEL_KEYS = ("label", "attributelabel", "attribute_label")
FIELD_NAME_KEYS = ("fieldname", "field_name")
OPTION_KEYS = ("options", "choices")
DESCRIPTION_KEYS = ("description",)

_TRAILING_DIGITS = re.compile(r"\d+$")


@dataclass(frozen=True)
class SourceField:
    """One row of a source view, keyed by its extracted field identifier."""
    field_name: str
    label: str
    position: int
    options: str = ""
    description: str = ""


@dataclass(frozen=True)
class FieldShape:
    stem: str
    has_options: bool


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def pick_value(row: Mapping[str, Any], candidates: Sequence[str]) -> Optional[str]:
    """Return the first candidate key present in ``row`` with a non-blank value."""
    lowered = {}
    for key, value in row.items():
        lowered.setdefault(str(key).lower(), value)
    for key in candidates:
        value = lowered.get(key)
        if value is None:
            continue
        text = _as_text(value)
        if text.strip():
            return text
    return None


def field_stem(field_name: str) -> str:
    return _TRAILING_DIGITS.sub("", field_name or "").lower()


def extract_source_field(row: Mapping[str, Any], position: int) -> SourceField:
    label = pick_value(row, LABEL_KEYS) or f"Label_{position + 1}"
    return SourceField(
        field_name=pick_value(row, FIELD_NAME_KEYS) or label,
        label=label,
        position=position,
        options=pick_value(row, OPTION_KEYS) or "",
        description=pick_value(row, DESCRIPTION_KEYS) or "",
    )


def _stem_has(*words: str) -> Callable[[FieldShape], bool]:
    return lambda shape: any(w in shape.stem for w in words)


# First matching rule wins.
DISPLAY_TYPE_RULES: Tuple[Tuple[Callable[[FieldShape], bool], str], ...] = (
    (lambda shape: shape.has_options, "dropdown"),
    (_stem_has("date"), "date"),
    (_stem_has("text", "comment", "note"), "textarea"),
    (_stem_has("number", "num", "count"), "number"),
    (_stem_has("check", "bool", "flag"), "checkbox"),
)
DEFAULT_DISPLAY_TYPE = "text"


def infer_display_type(field_name: str, options: str = "") -> str:
    shape = FieldShape(stem=field_stem(field_name), has_options=has_choice_data(options))
    for predicate, display_type in DISPLAY_TYPE_RULES:
        if predicate(shape):
            return display_type
    return DEFAULT_DISPLAY_TYPE


def config_from_source_field(field: SourceField) -> QuestionConfig:
    return QuestionConfig(
        field_name=field.field_name,
        attribute_label=field.label,
        survey_label=field.label,
        display_type=infer_display_type(field.field_name, field.options),
        options=field.options,
        description=field.description,
        placeholder=f"Enter {field.label.lower()}",
        sort_order=field.position + 1,
        is_enabled=True,
    )


def infer_question_config(row: Mapping[str, Any], position: int) -> QuestionConfig:
    """Build the default configuration for the view row at ``position`` (zero-based)."""
    return config_from_source_field(extract_source_field(row, position))


# ------------------------
# Display-type constraint
# ------------------------
def allowed_display_types(field_name: str, options: str = "", live_options: str = "") -> List[str]:
    """Display types an operator may pick for a field of this shape.

    Date fields are date-only; fields with choice data (own or live) are
    limited to the choice-rendering types; everything else gets the rest.
    """
    if "date" in field_stem(field_name):
        return ["date"]
    if has_choice_data(options) or has_choice_data(live_options):
        return [t for t in DISPLAY_TYPES if t in CHOICE_DISPLAY_TYPES]
    return [t for t in DISPLAY_TYPES if t not in CHOICE_DISPLAY_TYPES]


def pin_display_type(display_type: str, allowed: Sequence[str]) -> str:
    if len(allowed) == 1:
        return allowed[0]
    if display_type not in allowed:
        return allowed[0]
    return display_type
