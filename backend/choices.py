"""Normalize encoded choice payloads into ordered (value, text) pairs.

Choice data arrives in several historical encodings: hand-authored JSON,
lookup-table exports shaped like ``[{"Value": 29, "Text": "Hybrid"}]``, plain
string arrays, key/value maps, or a bare string. Everything here is tolerant:
a payload that cannot be understood yields no choices, never an exception.
"""
from __future__ import annotations

import enum
import json
from typing import Any, Callable, Dict, List, NamedTuple, Tuple

TEXT_KEYS = ("Text", "text", "Label", "label")
VALUE_KEYS = ("Value", "value")


class Choice(NamedTuple):
    value: Any
    text: str

    def as_element(self) -> Dict[str, Any]:
        return {"value": self.value, "text": self.text}


class PayloadKind(enum.Enum):
    OBJECT_ARRAY = "object_array"
    STRING_ARRAY = "string_array"
    MAPPING = "mapping"
    SCALAR = "scalar"
    INVALID = "invalid"


def _first_key(item: Dict[str, Any], keys) -> Any:
    for k in keys:
        v = item.get(k)
        if v is not None and v != "":
            return v
    return None


def _decode(raw: Any) -> Tuple[bool, Any]:
    if raw is None:
        return False, None
    if isinstance(raw, (list, dict)):
        return True, raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return False, None
    try:
        return True, json.loads(raw)
    except (ValueError, TypeError):
        return False, None


def classify(raw: Any) -> Tuple[PayloadKind, Any]:
    """Decode ``raw`` and tag the shape of the result."""
    ok, parsed = _decode(raw)
    if not ok:
        return PayloadKind.INVALID, None
    if isinstance(parsed, list):
        if any(isinstance(i, dict) and _first_key(i, TEXT_KEYS) is not None for i in parsed):
            return PayloadKind.OBJECT_ARRAY, parsed
        return PayloadKind.STRING_ARRAY, parsed
    if isinstance(parsed, dict):
        return PayloadKind.MAPPING, parsed
    if isinstance(parsed, str):
        return PayloadKind.SCALAR, parsed
    return PayloadKind.INVALID, None


def _from_object_array(items: List[Any]) -> List[Choice]:
    out = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            continue
        text = _first_key(item, TEXT_KEYS)
        if text is None:
            continue
        value = _first_key(item, VALUE_KEYS)
        out.append(Choice(value if value is not None else idx + 1, str(text)))
    return out


def _from_string_array(items: List[Any]) -> List[Choice]:
    return [Choice(idx + 1, item) for idx, item in enumerate(items) if isinstance(item, str)]


def _from_mapping(mapping: Dict[str, Any]) -> List[Choice]:
    return [Choice(k, v) for k, v in mapping.items() if isinstance(v, str)]


def _from_scalar(text: str) -> List[Choice]:
    return [Choice(1, text)] if text else []


_NORMALIZERS: Dict[PayloadKind, Callable[[Any], List[Choice]]] = {
    PayloadKind.OBJECT_ARRAY: _from_object_array,
    PayloadKind.STRING_ARRAY: _from_string_array,
    PayloadKind.MAPPING: _from_mapping,
    PayloadKind.SCALAR: _from_scalar,
    PayloadKind.INVALID: lambda _payload: [],
}


def parse_choices(raw: Any) -> List[Choice]:
    """Return the ordered choices encoded in ``raw``; ``[]`` when there are none."""
    kind, payload = classify(raw)
    return _NORMALIZERS[kind](payload)


def has_choice_data(options: Any) -> bool:
    # Presence check only; materialization goes through parse_choices.
    if options is None:
        return False
    if isinstance(options, str):
        return options.strip() != ""
    return bool(options)
