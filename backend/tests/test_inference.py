import pytest

from inference import (
    SourceField,
    allowed_display_types,
    config_from_source_field,
    extract_source_field,
    infer_display_type,
    infer_question_config,
    pick_value,
    pin_display_type,
)

OPTIONS = '[{"Value":1,"Text":"One"}]'

def test_pick_value_is_case_insensitive_and_skips_blanks():
    row = {"LABEL": "  ", "AttributeLabel": "Attr", "Label_Other": "x"}
    assert pick_value(row, ("label", "attributelabel")) == "Attr"
    assert pick_value({"FIELDNAME": "abc"}, ("fieldname",)) == "abc"
    assert pick_value({}, ("label",)) is None

def test_pick_value_stringifies_scalars():
    assert pick_value({"fieldname": 12}, ("fieldname",)) == "12"
    assert pick_value({"options": ["a"]}, ("options",)) == '["a"]'

def test_extract_source_field_fallbacks():
    f = extract_source_field({}, 2)
    assert (f.field_name, f.label, f.position) == ("Label_3", "Label_3", 2)

    f = extract_source_field({"Label": "Solar Type"}, 0)
    assert f.field_name == "Solar Type"
    assert f.options == ""

    f = extract_source_field({"FieldName": "solarType", "Label": "Solar Type", "Choices": OPTIONS,
                              "Description": "Kind"}, 0)
    assert (f.field_name, f.options, f.description) == ("solarType", OPTIONS, "Kind")

@pytest.mark.parametrize("field_name, options, expected", [
    ("Lookup02", OPTIONS, "dropdown"),
    ("Date01", OPTIONS, "dropdown"),
    ("Date01", "", "date"),
    ("installDate", "", "date"),
    ("notesText", "", "textarea"),
    ("Comment3", "", "textarea"),
    ("panelCount", "", "number"),
    ("Number07", "", "number"),
    ("isChecked", "", "checkbox"),
    ("activeFlag", "", "checkbox"),
    ("Name", "", "text"),
    ("Name", "   ", "text"),
])
def test_display_type_rules(field_name, options, expected):
    assert infer_display_type(field_name, options) == expected

def test_config_from_source_field_defaults():
    c = config_from_source_field(SourceField("solarType", "Solar Type", 4, OPTIONS, "Kind"))
    assert c.attribute_label == c.survey_label == "Solar Type"
    assert c.placeholder == "Enter solar type"
    assert c.sort_order == 5
    assert c.display_type == "dropdown"
    assert c.options == OPTIONS
    assert c.is_visible and not c.is_required

def test_infer_question_config_from_row():
    c = infer_question_config({"FieldName": "Date01", "Label": "Start"}, 0)
    assert (c.field_name, c.display_type, c.sort_order) == ("Date01", "date", 1)

def test_allowed_display_types():
    assert allowed_display_types("Lookup02", OPTIONS) == ["dropdown", "radio", "checkbox"]
    assert allowed_display_types("Date01") == ["date"]
    assert allowed_display_types("Date01", OPTIONS) == ["date"]
    assert allowed_display_types("Name") == ["text", "textarea", "number", "date"]
    assert allowed_display_types("Name", "", OPTIONS) == ["dropdown", "radio", "checkbox"]

def test_pin_display_type():
    assert pin_display_type("text", ["date"]) == "date"
    assert pin_display_type("checkbox", ["text", "textarea", "number", "date"]) == "text"
    assert pin_display_type("radio", ["dropdown", "radio", "checkbox"]) == "radio"
