from sqlalchemy import Column, Integer, String, Text, ForeignKey, Boolean, Float, UniqueConstraint
from sqlalchemy.orm import relationship
from db import Base

# Table and column names follow the existing store; attributes are snake_case.

class QuestionSetHeader(Base):
    __tablename__ = "QuestionSetHeader"
    id = Column("ID", Integer, primary_key=True, index=True)
    name = Column("Name", String(255), nullable=False)
    description = Column("Description", Text, nullable=True)
    source_view_name = Column("SourceViewName", String(128), nullable=True)
    subscript = Column("Subscript", String(50), nullable=True)
    questions = relationship("QuestionSetQuestion", back_populates="question_set",
                             cascade="all, delete-orphan", order_by="QuestionSetQuestion.sort_order")

class QuestionSetQuestion(Base):
    __tablename__ = "QuestionSetQuestion"
    __table_args__ = (
        UniqueConstraint("QuestionSetHeaderID", "SortOrder", name="uq_question_sort_order"),
        UniqueConstraint("QuestionSetHeaderID", "FieldName", name="uq_question_field_name"),
    )
    id = Column("ID", Integer, primary_key=True, index=True)
    question_set_header_id = Column("QuestionSetHeaderID", Integer,
                                    ForeignKey("QuestionSetHeader.ID", ondelete="CASCADE"),
                                    index=True, nullable=False)
    field_name = Column("FieldName", String(128), nullable=False)
    attribute_label = Column("AttributeLabel", String(255), nullable=False, default="")
    survey_label = Column("SurveyLabel", String(255), nullable=False, default="")
    display_type = Column("DisplayType", String(50), nullable=False, default="text")
    choices = Column("Choices", Text, nullable=True)
    description = Column("Description", Text, nullable=True)
    placeholder = Column("Placeholder", String(255), nullable=True)
    min_value = Column("MinValue", Float, nullable=True)
    max_value = Column("MaxValue", Float, nullable=True)
    col_count = Column("ColCount", Integer, nullable=True)
    is_read_only = Column("isReadOnly", Boolean, nullable=False, default=False)
    is_visible = Column("isVisible", Boolean, nullable=False, default=True)
    is_required = Column("isRequired", Boolean, nullable=False, default=False)
    is_blind = Column("isBlind", Boolean, nullable=False, default=False)
    min_is_current = Column("minIsCurrent", Boolean, nullable=False, default=False)
    sort_order = Column("SortOrder", Integer, nullable=False)
    question_set = relationship("QuestionSetHeader", back_populates="questions")

class SurveyTemplateHeader(Base):
    __tablename__ = "SurveyTemplateHeader"
    id = Column("ID", Integer, primary_key=True, index=True)
    name = Column("Name", String(255), nullable=False)
    description = Column("Description", Text, nullable=True)
    entity_type = Column("EntityType", String(50), nullable=False, default="Asset")
    page_split = Column("PageSplit", String(50), nullable=False, default="NONE")
    is_active = Column("isActive", Boolean, nullable=False, default=True)
    links = relationship("SurveyTemplateQuestion", back_populates="template",
                         cascade="all, delete-orphan", order_by="SurveyTemplateQuestion.sort_order")

class SurveyTemplateQuestion(Base):
    __tablename__ = "SurveyTemplateQuestion"
    __table_args__ = (
        UniqueConstraint("SurveyTemplateHeaderID", "SortOrder", name="uq_template_sort_order"),
    )
    id = Column("ID", Integer, primary_key=True, index=True)
    survey_template_header_id = Column("SurveyTemplateHeaderID", Integer,
                                       ForeignKey("SurveyTemplateHeader.ID", ondelete="CASCADE"),
                                       index=True, nullable=False)
    question_set_header_id = Column("QuestionSetHeaderID", Integer,
                                    ForeignKey("QuestionSetHeader.ID"), index=True, nullable=False)
    sort_order = Column("SortOrder", Integer, nullable=False)
    is_active = Column("isActive", Boolean, nullable=False, default=True)
    template = relationship("SurveyTemplateHeader", back_populates="links")
    question_set = relationship("QuestionSetHeader")
