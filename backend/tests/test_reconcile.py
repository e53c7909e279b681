from types import SimpleNamespace

import pytest

from errors import ValidationFailure
from inference import SourceField
from reconcile import configs_to_save, reconcile
from schemas import QuestionConfig

SOLAR_OPTIONS = '[{"Value":29,"Text":"Hybrid"},{"Value":28,"Text":"Photovoltaic"}]'

def _row(field_name, sort_order, **kw):
    data = dict(
        field_name=field_name, attribute_label=field_name, survey_label=field_name,
        display_type="text", choices=None, description=None, placeholder=None,
        min_value=None, max_value=None, col_count=None, is_read_only=False,
        is_visible=True, is_required=False, is_blind=False, min_is_current=False,
        sort_order=sort_order,
    )
    data.update(kw)
    return SimpleNamespace(**data)

def _field(name, position, options=""):
    return SourceField(field_name=name, label=name, position=position, options=options)

def _by_name(result):
    return {q.field_name: q for q in result.questions}

def test_unseen_field_is_offered_disabled():
    result = reconcile([], [_field("solarType", 0, SOLAR_OPTIONS)])
    [q] = result.questions
    assert q.display_type == "dropdown"
    assert (q.is_enabled, q.is_newly_added, q.is_orphaned) == (False, True, False)
    assert q.sort_order == 1
    assert q.allowed_display_types == ["dropdown", "radio", "checkbox"]
    assert result.enabled_count == 0

def test_saved_field_present_in_view_is_retained():
    result = reconcile([_row("solarType", 1, display_type="radio", choices=SOLAR_OPTIONS)],
                       [_field("solarType", 0, SOLAR_OPTIONS)])
    [q] = result.questions
    assert (q.is_enabled, q.is_newly_added, q.is_orphaned) == (True, False, False)
    assert q.display_type == "radio"
    assert result.enabled_count == 1

def test_saved_field_missing_from_view_is_orphaned_and_last():
    persisted = [_row("legacyField", 1), _row("panelCount", 2, display_type="number")]
    result = reconcile(persisted, [_field("panelCount", 0), _field("notesText", 1)])
    names = [q.field_name for q in result.questions]
    assert names == ["panelCount", "notesText", "legacyField"]
    legacy = _by_name(result)["legacyField"]
    assert legacy.is_orphaned and not legacy.is_enabled

def test_new_fields_are_numbered_after_saved_ones():
    result = reconcile([_row("a", 5)], [_field("a", 0), _field("b", 1), _field("c", 2)])
    q = _by_name(result)
    assert (q["b"].sort_order, q["c"].sort_order) == (6, 7)

def test_reconcile_is_idempotent():
    persisted = [_row("panelCount", 1, display_type="number"), _row("legacyField", 2)]
    fields = [_field("panelCount", 0), _field("solarType", 1, SOLAR_OPTIONS)]
    assert reconcile(persisted, fields) == reconcile(persisted, fields)

def test_duplicate_view_rows_keep_the_first():
    result = reconcile([], [_field("x", 0, '["A"]'), _field("x", 1, '["B"]')])
    [q] = result.questions
    assert q.options == '["A"]'

def test_live_options_win_over_saved_choices():
    result = reconcile([_row("kind", 1, display_type="dropdown", choices='["Old"]')],
                       [_field("kind", 0, '["New"]')])
    assert result.questions[0].options == '["New"]'
    assert result.live_options == {"kind": '["New"]'}

def test_blank_live_options_keep_saved_choices():
    result = reconcile([_row("kind", 1, display_type="dropdown", choices='["Old"]')], [_field("kind", 0, "  ")])
    assert result.questions[0].options == '["Old"]'

def test_date_field_is_pinned_to_date():
    result = reconcile([_row("installDate", 1, display_type="text")], [_field("installDate", 0)])
    q = result.questions[0]
    assert q.display_type == "date"
    assert q.display_type_locked

def test_unreadable_view_orphans_nothing():
    result = reconcile([_row("legacyField", 1)], None)
    [q] = result.questions
    assert not result.source_available
    assert result.warning
    assert q.is_enabled and not q.is_orphaned

def test_empty_view_orphans_everything():
    result = reconcile([_row("a", 1), _row("b", 2)], [])
    assert result.source_available
    assert all(q.is_orphaned and not q.is_enabled for q in result.questions)

# ------------------------
# Save rules
# ------------------------
def _config(name, sort_order, **kw):
    return QuestionConfig(field_name=name, sort_order=sort_order, **kw)

def test_configs_to_save_keeps_enabled_only():
    configs = [_config("a", 1), _config("b", 2, is_enabled=False)]
    assert [c.field_name for c in configs_to_save(configs)] == ["a"]

@pytest.mark.parametrize("configs, message", [
    ([_config("a", 1, is_enabled=False)], "At least one question"),
    ([_config("a", 1), _config("a", 2)], "Duplicate field name"),
    ([_config("a", 1, is_orphaned=True)], "no longer exists"),
    ([_config("a", 0)], "must be positive"),
    ([_config("Date01", 1, display_type="text")], "not allowed"),
    ([_config("Lookup02", 1, display_type="text", options='["x"]')], "not allowed"),
])
def test_configs_to_save_rejects(configs, message):
    with pytest.raises(ValidationFailure, match=message):
        configs_to_save(configs)

def test_configs_to_save_uses_live_options_for_display_rule():
    configs = [_config("kind", 1, display_type="dropdown")]
    with pytest.raises(ValidationFailure):
        configs_to_save(configs)
    assert configs_to_save(configs, {"kind": '["A"]'})[0].field_name == "kind"

def test_configs_to_save_checks_fields_against_the_view():
    configs = [_config("panelCount", 1), _config("ghostField", 2)]
    with pytest.raises(ValidationFailure, match="ghostField"):
        configs_to_save(configs, live_field_names={"panelCount"})
    # Unknown view contents: only the submitted flags are checked.
    assert len(configs_to_save(configs, live_field_names=None)) == 2
