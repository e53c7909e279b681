"""Turn approved question configs into a page/element survey schema.

The output is the declarative JSON consumed by the form renderer
(``{"title", "description", "pages": [{"name", "elements": [...]}]}``).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from choices import parse_choices
from schemas import QuestionConfig

EMPTY_DESCRIPTION = "No enabled, visible questions are configured for this survey."
NO_CHOICES_MARKER = "[debug: no choices resolved for {field}]"
SINGLE_PAGE_SPLIT = "NONE"


def renderable(configs: Iterable[QuestionConfig]) -> List[QuestionConfig]:
    survivors = [c for c in configs if c.is_enabled and c.is_visible and not c.is_orphaned]
    return sorted(survivors, key=lambda c: c.sort_order)


def _choice_elements(raw: Any) -> List[Dict[str, Any]]:
    return [c.as_element() for c in parse_choices(raw)]


def build_element(config: QuestionConfig, live_options: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Shape one config into a renderer element."""
    element: Dict[str, Any] = {
        "name": config.field_name,
        "title": config.survey_label or config.attribute_label,
        "isRequired": config.is_required,
    }
    # Absence means "not read-only"; some renderers treat the key itself as meaningful.
    if config.is_read_only:
        element["readOnly"] = True

    description = config.description
    kind = config.display_type
    if kind == "textarea":
        element["type"] = "comment"
    elif kind == "number":
        element["type"] = "text"
        element["inputType"] = "number"
        if config.min_value is not None:
            element["min"] = config.min_value
        if config.max_value is not None:
            element["max"] = config.max_value
    elif kind == "date":
        element["type"] = "text"
        element["inputType"] = "date"
    elif kind == "dropdown":
        element["type"] = "dropdown"
        live = (live_options or {}).get(config.field_name, "")
        choices = _choice_elements(live) or _choice_elements(config.options)
        element["choices"] = choices
        if not choices:
            marker = NO_CHOICES_MARKER.format(field=config.field_name)
            description = f"{description} {marker}".strip()
    elif kind == "radio":
        element["type"] = "radiogroup"
        element["choices"] = _choice_elements(config.options)
        if config.col_count:
            element["colCount"] = config.col_count
    elif kind == "checkbox":
        element["type"] = "checkbox"
        element["choices"] = _choice_elements(config.options)
    else:
        element["type"] = "text"

    if config.placeholder:
        element["placeholder"] = config.placeholder
    if description:
        element["description"] = description
    return element


def build_elements(configs: Iterable[QuestionConfig],
                   live_options: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
    return [build_element(c, live_options) for c in renderable(configs)]


def build_survey_schema(configs: Sequence[QuestionConfig], title: str = "",
                        description: Optional[str] = None,
                        live_options: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Build a single-page schema for one question set.

    Never raises for an empty selection: the page is emitted with no
    elements and the description explains why.
    """
    elements = build_elements(configs, live_options)
    schema: Dict[str, Any] = {"title": title or ""}
    if not elements:
        schema["description"] = EMPTY_DESCRIPTION
    elif description:
        schema["description"] = description
    schema["pages"] = [{"name": "page1", "elements": elements}]
    return schema


@dataclass
class SchemaSection:
    name: str
    title: str
    questions: Sequence[QuestionConfig]
    description: Optional[str] = None
    live_options: Mapping[str, str] = field(default_factory=dict)


def build_template_schema(title: str, sections: Sequence[SchemaSection],
                          description: Optional[str] = None,
                          page_split: str = SINGLE_PAGE_SPLIT) -> Dict[str, Any]:
    """Compose several question sets into one survey.

    With page split ``NONE`` each section is a titled panel on a single page;
    any other value gives each section its own page.
    """
    built = [(s, build_elements(s.questions, s.live_options)) for s in sections]
    built = [(s, els) for s, els in built if els]

    schema: Dict[str, Any] = {"title": title or ""}
    if not built:
        schema["description"] = EMPTY_DESCRIPTION
    elif description:
        schema["description"] = description

    if (page_split or SINGLE_PAGE_SPLIT).upper() == SINGLE_PAGE_SPLIT:
        panels = []
        for section, elements in built:
            panel = {"type": "panel", "name": section.name, "title": section.title, "elements": elements}
            if section.description:
                panel["description"] = section.description
            panels.append(panel)
        schema["pages"] = [{"name": "page1", "elements": panels}]
    else:
        pages = []
        for section, elements in built:
            page = {"name": section.name, "title": section.title, "elements": elements}
            if section.description:
                page["description"] = section.description
            pages.append(page)
        schema["pages"] = pages
    return schema
