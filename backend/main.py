import uuid
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI, Depends, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import pandas as pd

import repository as repo
from config import Settings
from db import Base, Database, get_db
from errors import SourceViewUnavailable, ValidationFailure
from introspect import fetch_view_rows, list_view_columns, list_views, try_fetch_source_fields, validate_identifier
from logging_config import set_request_id, setup_logging
from models import QuestionSetHeader, QuestionSetQuestion, SurveyTemplateQuestion
from reconcile import configs_to_save, reconcile
from schemas import *
from survey_schema import SchemaSection, build_survey_schema, build_template_schema

settings = Settings.from_env()
setup_logging(settings.log_level, settings.log_json)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = app.state.database
    if settings.create_tables:
        Base.metadata.create_all(bind=database.engine)
    yield
    database.dispose()


app = FastAPI(title="Question Set Builder API", lifespan=lifespan)
app.state.database = Database(settings.database_url, echo=settings.db_echo,
                              pool_pre_ping=settings.db_pool_pre_ping)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    set_request_id(request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(ValidationFailure)
async def validation_failure_handler(request: Request, exc: ValidationFailure):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(SourceViewUnavailable)
async def source_view_unavailable_handler(request: Request, exc: SourceViewUnavailable):
    return JSONResponse(status_code=502, content={"detail": str(exc), "viewName": exc.view_name})


# ------------------------
# Helpers
# ------------------------
def _question_set_or_404(db: Session, question_set_id: int) -> QuestionSetHeader:
    row = repo.get_question_set(db, question_set_id)
    if not row:
        raise HTTPException(404, "Question set not found")
    return row

def _template_or_404(db: Session, template_id: int):
    row = repo.get_template(db, template_id)
    if not row:
        raise HTTPException(404, "Survey template not found")
    return row

def _check_question_set_fields(fields: dict) -> dict:
    """Trim and validate header fields; raises ValidationFailure."""
    if "name" in fields:
        name = (fields["name"] or "").strip()
        if len(name) < 3:
            raise ValidationFailure("Name must be at least 3 characters")
        fields["name"] = name
    if "description" in fields:
        description = (fields["description"] or "").strip() or None
        if description and len(description) > 500:
            raise ValidationFailure("Description must be at most 500 characters")
        fields["description"] = description
    if "source_view_name" in fields:
        view = (fields["source_view_name"] or "").strip() or None
        if view:
            if len(view) > 100:
                raise ValidationFailure("Source view name must be at most 100 characters")
            validate_identifier(view)
        fields["source_view_name"] = view
    return fields

def _options_by_field(fields) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for f in fields or []:
        if f.options.strip():
            out.setdefault(f.field_name, f.options)
    return out

def _live_options(db: Session, view_name: Optional[str]) -> Dict[str, str]:
    return _options_by_field(try_fetch_source_fields(db, view_name, settings.source_view_schema))

def _reconcile_question_set(db: Session, row: QuestionSetHeader):
    # Read the view first: a failed read rolls the session back.
    source = try_fetch_source_fields(db, row.source_view_name, settings.source_view_schema)
    persisted = repo.list_questions(db, row.id)
    return reconcile(persisted, source)

def _summary(row: QuestionSetHeader, count: int) -> QuestionSetSummary:
    return QuestionSetSummary(**QuestionSetOut.model_validate(row).model_dump(), question_count=count)

@app.get("/health")
def health():
    """Basic readiness check.

    Returns:
        dict: {"ok": True}
    """
    return {"ok": True}

# ------------------------
# Source views
# ------------------------
@app.get("/api/database-views")
def database_views(db: Session = Depends(get_db)):
    """List the views that can back a question set.

    Returns:
        dict: {"views": [{name, schema, fullName}]}
    """
    return {"views": list_views(db, settings.source_view_schema)}

@app.get("/api/database-columns")
def database_columns(view_name: Optional[str] = Query(None, alias="viewName"), db: Session = Depends(get_db)):
    """Column metadata of one view.

    Args:
        view_name (str): View name, plain identifier only.

    Returns:
        dict: {"viewName", "columns": [{columnName, dataType, isNullable, defaultValue, ordinalPosition}]}

    Raises:
        ValidationFailure: missing or malformed view name (400).
        SourceViewUnavailable: the view does not exist or cannot be read (502).
    """
    if not view_name:
        raise ValidationFailure("viewName parameter is required")
    return {"viewName": view_name,
            "columns": list_view_columns(db, view_name, settings.source_view_schema)}

@app.get("/api/database-data")
def database_data(view_name: Optional[str] = Query(None, alias="viewName"), db: Session = Depends(get_db)):
    """Raw rows of one view.

    Args:
        view_name (str): View name, plain identifier only.

    Returns:
        dict: {"viewName", "recordCount", "records": [...]}

    Raises:
        ValidationFailure: missing or malformed view name (400).
        SourceViewUnavailable: the view cannot be read (502).
    """
    if not view_name:
        raise ValidationFailure("viewName parameter is required")
    records = fetch_view_rows(db, view_name, settings.source_view_schema)
    return {"viewName": view_name, "recordCount": len(records), "records": records}

# ------------------------
# Question sets
# ------------------------
@app.get("/api/questionsets", response_model=List[QuestionSetSummary])
def list_question_sets(db: Session = Depends(get_db)):
    """List question sets by name with their visible question counts."""
    return [_summary(row, count) for row, count in repo.list_question_sets(db)]

@app.post("/api/questionsets", response_model=QuestionSetOut, status_code=201)
def create_question_set(payload: QuestionSetCreate, db: Session = Depends(get_db)):
    """Create a question set header.

    Args:
        payload (QuestionSetCreate): name (required, 3+ chars), description, sourceViewName.
        db (Session): DB session.

    Returns:
        QuestionSetOut: the new header.

    Raises:
        ValidationFailure: invalid name, description or view name (400).
    """
    fields = _check_question_set_fields(payload.model_dump())
    row = repo.create_question_set(db, subscript=settings.default_subscript, **fields)
    return QuestionSetOut.model_validate(row)

@app.get("/api/questionsets/{question_set_id}", response_model=QuestionSetOut)
def get_question_set(question_set_id: int, db: Session = Depends(get_db)):
    """Fetch one question set header.

    Raises:
        HTTPException: 404 if question set not found.
    """
    return QuestionSetOut.model_validate(_question_set_or_404(db, question_set_id))

@app.put("/api/questionsets/{question_set_id}", response_model=QuestionSetOut)
def update_question_set(question_set_id: int, payload: QuestionSetUpdate, db: Session = Depends(get_db)):
    """Update the fields present in the payload.

    Changing sourceViewName is allowed; saved questions are reconciled
    against the new view on the next configuration load.

    Raises:
        HTTPException: 404 if question set not found.
        ValidationFailure: invalid field values (400).
    """
    row = _question_set_or_404(db, question_set_id)
    fields = _check_question_set_fields(payload.model_dump(exclude_unset=True))
    return QuestionSetOut.model_validate(repo.update_question_set(db, row, **fields))

@app.delete("/api/questionsets/{question_set_id}")
def delete_question_set(question_set_id: int, db: Session = Depends(get_db)):
    """Delete a question set and its questions.

    Returns:
        dict: {"ok": True}

    Raises:
        HTTPException: 404 if question set not found.
        ValidationFailure: the set is still used by a survey template (400).
    """
    row = _question_set_or_404(db, question_set_id)
    repo.delete_question_set(db, row)
    return {"ok": True}

@app.get("/api/questionsets/{question_set_id}/questions", response_model=List[QuestionOut])
def list_questions(question_set_id: int, db: Session = Depends(get_db)):
    """Persisted questions of a set, by sort order.

    Raises:
        HTTPException: 404 if question set not found.
    """
    _question_set_or_404(db, question_set_id)
    return [QuestionOut.model_validate(q) for q in repo.list_questions(db, question_set_id)]

@app.put("/api/questionsets/{question_set_id}/questions", response_model=QuestionsSaved)
def save_questions(question_set_id: int, payload: QuestionsSave, db: Session = Depends(get_db)):
    """Replace the saved questions with the enabled configs of an edited list.

    Everything not enabled in the payload is removed from the set. The
    replacement is one transaction.

    Args:
        question_set_id (int): Question set ID.
        payload (QuestionsSave): The full edited config list.
        db (Session): DB session.

    Returns:
        QuestionsSaved: {saved, questions}

    Raises:
        HTTPException: 404 if question set not found; 500 if the transaction was rolled back.
        ValidationFailure: the list cannot be saved as submitted (400).
    """
    row = _question_set_or_404(db, question_set_id)
    source = try_fetch_source_fields(db, row.source_view_name, settings.source_view_schema)
    live_names = {f.field_name for f in source} if source is not None else None
    enabled = configs_to_save(payload.questions, _options_by_field(source), live_names)
    try:
        saved = repo.replace_questions(db, question_set_id, enabled)
    except SQLAlchemyError as e:
        raise HTTPException(500, detail={"error": "Failed to save questions", "details": str(e).splitlines()[0]})
    return QuestionsSaved(saved=len(saved), questions=[QuestionOut.model_validate(q) for q in saved])

@app.get("/api/questionsets/{question_set_id}/configuration", response_model=QuestionConfigurationOut)
def question_configuration(question_set_id: int, db: Session = Depends(get_db)):
    """Saved questions merged with the live source view, ready for editing.

    Retained fields are enabled, new view fields are offered disabled and
    removed fields are flagged orphaned. If the view cannot be read the saved
    questions come back alone with sourceAvailable=false.

    Raises:
        HTTPException: 404 if question set not found.
    """
    row = _question_set_or_404(db, question_set_id)
    result = _reconcile_question_set(db, row)
    return QuestionConfigurationOut(
        question_set=QuestionSetOut.model_validate(row),
        source_available=result.source_available,
        warning=result.warning,
        enabled_count=result.enabled_count,
        questions=result.questions,
    )

@app.post("/api/questionsets/{question_set_id}/survey-preview")
def survey_preview(question_set_id: int, payload: SurveyPreviewRequest, db: Session = Depends(get_db)):
    """Render an unsaved, edited config list as a survey schema.

    Raises:
        HTTPException: 404 if question set not found.
    """
    row = _question_set_or_404(db, question_set_id)
    live = _live_options(db, row.source_view_name)
    return build_survey_schema(payload.questions, title=payload.title or row.name,
                               description=payload.description, live_options=live)

@app.get("/api/questionsets/{question_set_id}/survey")
def question_set_survey(question_set_id: int, db: Session = Depends(get_db)):
    """Render the current configuration of a set as a survey schema.

    Raises:
        HTTPException: 404 if question set not found.
    """
    row = _question_set_or_404(db, question_set_id)
    result = _reconcile_question_set(db, row)
    return build_survey_schema(result.questions, title=row.name, description=row.description,
                               live_options=result.live_options)

@app.get("/api/questionsets/{question_set_id}/export.csv")
def export_questions_csv(question_set_id: int, db: Session = Depends(get_db)):
    """Export the saved questions of a set as CSV.

    Returns:
        Response: text/csv attachment `questionset_<id>_questions.csv`.

    Raises:
        HTTPException: 404 if question set not found.
    """
    _question_set_or_404(db, question_set_id)
    q = (
        select(
            QuestionSetQuestion.sort_order.label("SortOrder"),
            QuestionSetQuestion.field_name.label("FieldName"),
            QuestionSetQuestion.attribute_label.label("AttributeLabel"),
            QuestionSetQuestion.survey_label.label("SurveyLabel"),
            QuestionSetQuestion.display_type.label("DisplayType"),
            QuestionSetQuestion.choices.label("Choices"),
            QuestionSetQuestion.is_required.label("isRequired"),
            QuestionSetQuestion.is_visible.label("isVisible"),
        )
        .where(QuestionSetQuestion.question_set_header_id == question_set_id)
        .order_by(QuestionSetQuestion.sort_order)
    )
    df = pd.read_sql(q, db.get_bind())
    csv_bytes = df.to_csv(index=False).encode("utf-8")
    return Response(content=csv_bytes, media_type="text/csv",
                    headers={"Content-Disposition": f"attachment; filename=questionset_{question_set_id}_questions.csv"})

# ------------------------
# Survey templates
# ------------------------
@app.get("/api/surveys", response_model=List[SurveyTemplateOut])
def list_surveys(db: Session = Depends(get_db)):
    """List survey templates, newest first."""
    return [SurveyTemplateOut.model_validate(t) for t in repo.list_templates(db)]

@app.post("/api/surveys", response_model=SurveyTemplateOut, status_code=201)
def create_survey(payload: SurveyTemplateCreate, db: Session = Depends(get_db)):
    """Create a survey template.

    Args:
        payload (SurveyTemplateCreate): name (required), description, entityType, pageSplit, isActive.
        db (Session): DB session.

    Raises:
        ValidationFailure: missing name (400).
    """
    name = (payload.name or "").strip()
    if not name:
        raise ValidationFailure("Name is required")
    row = repo.create_template(
        db,
        name=name,
        description=(payload.description or "").strip() or None,
        entity_type=payload.entity_type or settings.default_entity_type,
        page_split=payload.page_split or settings.default_page_split,
        is_active=payload.is_active,
    )
    return SurveyTemplateOut.model_validate(row)

@app.get("/api/surveys/{survey_id}", response_model=SurveyTemplateOut)
def get_survey(survey_id: int, db: Session = Depends(get_db)):
    """Fetch one survey template.

    Raises:
        HTTPException: 404 if survey template not found.
    """
    return SurveyTemplateOut.model_validate(_template_or_404(db, survey_id))

@app.put("/api/surveys/{survey_id}", response_model=SurveyTemplateOut)
def update_survey(survey_id: int, payload: SurveyTemplateUpdate, db: Session = Depends(get_db)):
    """Update the fields present in the payload.

    Raises:
        HTTPException: 404 if survey template not found.
        ValidationFailure: blank name (400).
    """
    row = _template_or_404(db, survey_id)
    fields = payload.model_dump(exclude_unset=True)
    if "name" in fields:
        fields["name"] = (fields["name"] or "").strip()
        if not fields["name"]:
            raise ValidationFailure("Name is required")
    for key in ("entity_type", "page_split"):
        if key in fields and not fields[key]:
            fields.pop(key)
    if fields.get("is_active", False) is None:
        fields.pop("is_active")
    return SurveyTemplateOut.model_validate(repo.update_template(db, row, **fields))

@app.delete("/api/surveys/{survey_id}")
def delete_survey(survey_id: int, db: Session = Depends(get_db)):
    """Delete a survey template and its question set links.

    Returns:
        dict: {"ok": True}

    Raises:
        HTTPException: 404 if survey template not found.
    """
    repo.delete_template(db, _template_or_404(db, survey_id))
    return {"ok": True}

@app.get("/api/surveys/{survey_id}/questions", response_model=List[TemplateQuestionSetOut])
def survey_questions(survey_id: int, db: Session = Depends(get_db)):
    """Question set links of a template with each set's header and visible questions.

    Raises:
        HTTPException: 404 if survey template not found.
    """
    _template_or_404(db, survey_id)
    links = repo.list_links(db, survey_id)
    counts = repo.visible_question_counts(db, {l.question_set_header_id for l in links})
    out = []
    for link in links:
        questions = repo.list_questions(db, link.question_set_header_id, visible_only=True)
        out.append(TemplateQuestionSetOut(
            **TemplateLinkOut.model_validate(link).model_dump(),
            question_set_header=_summary(link.question_set, counts.get(link.question_set_header_id, 0)),
            questions=[QuestionOut.model_validate(q) for q in questions],
        ))
    return out

@app.get("/api/surveys/{survey_id}/available-questionsets", response_model=List[QuestionSetSummary])
def available_question_sets(survey_id: int, db: Session = Depends(get_db)):
    """Question sets not yet actively linked to the template.

    Raises:
        HTTPException: 404 if survey template not found.
    """
    _template_or_404(db, survey_id)
    return [_summary(row, count) for row, count in repo.available_question_sets(db, survey_id)]

@app.post("/api/surveys/{survey_id}/add-questionset", response_model=TemplateLinkOut, status_code=201)
def add_question_set(survey_id: int, payload: AddQuestionSet, db: Session = Depends(get_db)):
    """Append a question set to the end of a template.

    Raises:
        HTTPException: 404 if survey template or question set not found.
        ValidationFailure: the set is already linked (400).
    """
    _template_or_404(db, survey_id)
    _question_set_or_404(db, payload.question_set_header_id)
    return TemplateLinkOut.model_validate(repo.add_link(db, survey_id, payload.question_set_header_id))

@app.put("/api/surveys/{survey_id}/reorder-questionsets", response_model=List[TemplateLinkOut])
def reorder_question_sets(survey_id: int, payload: ReorderQuestionSets, db: Session = Depends(get_db)):
    """Re-sequence a template's links to the submitted order (1..n), atomically.

    Raises:
        HTTPException: 404 if survey template not found; 500 if the transaction was rolled back.
        ValidationFailure: empty, repeated or foreign ids (400).
    """
    _template_or_404(db, survey_id)
    if not payload.reordered_items:
        raise ValidationFailure("reorderedItems must be a non-empty array")
    try:
        ordered = repo.reorder_links(db, survey_id, [item.id for item in payload.reordered_items])
    except SQLAlchemyError as e:
        raise HTTPException(500, detail={"error": "Failed to reorder question sets", "details": str(e).splitlines()[0]})
    return [TemplateLinkOut.model_validate(l) for l in ordered]

@app.delete("/api/surveys/{survey_id}/questionsets/{link_id}")
def remove_question_set(survey_id: int, link_id: int, db: Session = Depends(get_db)):
    """Remove one question set link and close the gap in sort orders.

    Returns:
        dict: {"ok": True}

    Raises:
        HTTPException: 404 if the link does not belong to the template; 500 on rollback.
    """
    link = db.get(SurveyTemplateQuestion, link_id)
    if not link or link.survey_template_header_id != survey_id:
        raise HTTPException(404, "Survey question set link not found")
    try:
        repo.remove_link(db, survey_id, link)
    except SQLAlchemyError as e:
        raise HTTPException(500, detail={"error": "Failed to remove question set", "details": str(e).splitlines()[0]})
    return {"ok": True}

@app.get("/api/surveys/{survey_id}/schema")
def survey_schema(survey_id: int, db: Session = Depends(get_db)):
    """Render a whole template: its active question sets in link order.

    Each set is reconciled against its view first, so saved fields that left
    the view are not rendered and live choices replace stored ones.

    Raises:
        HTTPException: 404 if survey template not found.
    """
    template = _template_or_404(db, survey_id)
    title, description, page_split = template.name, template.description, template.page_split
    sections = []
    qs_ids = [l.question_set_header_id for l in repo.list_links(db, survey_id, active_only=True)]
    for qs_id in qs_ids:
        qs = repo.get_question_set(db, qs_id)
        result = _reconcile_question_set(db, qs)
        sections.append(SchemaSection(name=f"questionset_{qs_id}", title=qs.name, questions=result.questions,
                                      description=qs.description, live_options=result.live_options))
    return build_template_schema(title, sections, description=description, page_split=page_split)
