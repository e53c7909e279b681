# schemas.py
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Literal

DisplayType = Literal["text", "textarea", "number", "date", "dropdown", "radio", "checkbox"]

# Enumeration order; also the order allowed display types are offered in.
DISPLAY_TYPES: tuple = ("text", "textarea", "number", "date", "dropdown", "radio", "checkbox")
CHOICE_DISPLAY_TYPES = frozenset({"dropdown", "radio", "checkbox"})

class CamelModel(BaseModel):
    """Wire format is camelCase; Python attributes stay snake_case."""
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

# ------------------------
# Question sets
# ------------------------
class QuestionSetCreate(CamelModel):
    name: str
    description: Optional[str] = None
    source_view_name: Optional[str] = None

class QuestionSetUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    source_view_name: Optional[str] = None

class QuestionSetOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    source_view_name: Optional[str] = None
    subscript: Optional[str] = None

class QuestionSetSummary(QuestionSetOut):
    question_count: int = 0

class QuestionOut(CamelModel):
    id: int
    question_set_header_id: int
    field_name: str
    attribute_label: str
    survey_label: str
    display_type: str
    choices: Optional[str] = None
    description: Optional[str] = None
    placeholder: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    col_count: Optional[int] = None
    is_read_only: bool
    is_visible: bool
    is_required: bool
    is_blind: bool
    min_is_current: bool
    sort_order: int

class QuestionConfig(CamelModel):
    """The editable merge of a persisted question row and/or a live view row."""
    field_name: str
    attribute_label: str = ""
    survey_label: str = ""
    display_type: DisplayType = "text"
    options: str = ""
    description: str = ""
    placeholder: str = ""
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    col_count: Optional[int] = None
    is_read_only: bool = False
    is_visible: bool = True
    is_required: bool = False
    is_blind: bool = False
    min_is_current: bool = False
    sort_order: int = 0
    # UI-only state
    is_enabled: bool = True
    is_newly_added: bool = False
    is_orphaned: bool = False

class QuestionConfigOut(QuestionConfig):
    allowed_display_types: List[str] = []
    display_type_locked: bool = False

class QuestionConfigurationOut(CamelModel):
    question_set: QuestionSetOut
    source_available: bool
    warning: Optional[str] = None
    enabled_count: int
    questions: List[QuestionConfigOut]

class QuestionsSave(CamelModel):
    questions: List[QuestionConfig]

class QuestionsSaved(CamelModel):
    saved: int
    questions: List[QuestionOut]

class SurveyPreviewRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    questions: List[QuestionConfig]

# ------------------------
# Survey templates
# ------------------------
class SurveyTemplateCreate(CamelModel):
    name: str
    description: Optional[str] = None
    entity_type: Optional[str] = None
    page_split: Optional[str] = None
    is_active: bool = True

class SurveyTemplateUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    entity_type: Optional[str] = None
    page_split: Optional[str] = None
    is_active: Optional[bool] = None

class SurveyTemplateOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    entity_type: str
    page_split: str
    is_active: bool

class TemplateLinkOut(CamelModel):
    id: int
    survey_template_header_id: int
    question_set_header_id: int
    sort_order: int
    is_active: bool

class TemplateQuestionSetOut(TemplateLinkOut):
    question_set_header: QuestionSetSummary
    questions: List[QuestionOut] = []

class AddQuestionSet(CamelModel):
    question_set_header_id: int

class ReorderItem(CamelModel):
    id: int

class ReorderQuestionSets(CamelModel):
    reordered_items: List[ReorderItem] = Field(default_factory=list)
