"""Data access for question sets and survey templates.

Single-row writes commit immediately. The two bulk writes (replacing a
question set's questions, re-sequencing a template's links) run as one
transaction each: any failure rolls back to the state before the call.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import ValidationFailure
from models import QuestionSetHeader, QuestionSetQuestion, SurveyTemplateHeader, SurveyTemplateQuestion
from schemas import QuestionConfig

logger = logging.getLogger(__name__)

# Template links are parked below this offset while being re-sequenced.
REORDER_OFFSET = 1000

# ------------------------
# Question set headers
# ------------------------
def get_question_set(db: Session, question_set_id: int) -> Optional[QuestionSetHeader]:
    return db.get(QuestionSetHeader, question_set_id)

def visible_question_counts(db: Session, question_set_ids: Iterable[int]) -> Dict[int, int]:
    ids = list(question_set_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(QuestionSetQuestion.question_set_header_id, func.count())
        .where(QuestionSetQuestion.question_set_header_id.in_(ids), QuestionSetQuestion.is_visible == True)
        .group_by(QuestionSetQuestion.question_set_header_id)
    ).all()
    return {qs_id: count for qs_id, count in rows}

def list_question_sets(db: Session) -> List[Tuple[QuestionSetHeader, int]]:
    """All question sets ordered by name, each with its visible question count."""
    rows = db.execute(select(QuestionSetHeader).order_by(QuestionSetHeader.name, QuestionSetHeader.id)).scalars().all()
    counts = visible_question_counts(db, [r.id for r in rows])
    return [(r, counts.get(r.id, 0)) for r in rows]

def create_question_set(db: Session, name: str, description: Optional[str],
                        source_view_name: Optional[str], subscript: str) -> QuestionSetHeader:
    row = QuestionSetHeader(name=name, description=description,
                            source_view_name=source_view_name, subscript=subscript)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Created question set", extra={"question_set_id": row.id})
    return row

def update_question_set(db: Session, row: QuestionSetHeader, **fields) -> QuestionSetHeader:
    if "source_view_name" in fields and fields["source_view_name"] != row.source_view_name:
        # Saved questions were reconciled against the old view.
        logger.warning("Source view changed", extra={
            "question_set_id": row.id, "old_view": row.source_view_name, "new_view": fields["source_view_name"]})
    for key, value in fields.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row

def delete_question_set(db: Session, row: QuestionSetHeader) -> None:
    """Delete a question set and its questions.

    Raises:
        ValidationFailure: the set is still linked from a survey template.
    """
    used = db.execute(
        select(func.count()).select_from(SurveyTemplateQuestion)
        .where(SurveyTemplateQuestion.question_set_header_id == row.id)
    ).scalar_one()
    if used:
        raise ValidationFailure(f"Question set is used by {used} survey template link(s)")
    db.delete(row)
    db.commit()
    logger.info("Deleted question set", extra={"question_set_id": row.id})

# ------------------------
# Question set questions
# ------------------------
def list_questions(db: Session, question_set_id: int, visible_only: bool = False) -> List[QuestionSetQuestion]:
    q = select(QuestionSetQuestion).where(QuestionSetQuestion.question_set_header_id == question_set_id)
    if visible_only:
        q = q.where(QuestionSetQuestion.is_visible == True)
    return list(db.execute(q.order_by(QuestionSetQuestion.sort_order, QuestionSetQuestion.id)).scalars().all())

def _apply_config(row: QuestionSetQuestion, config: QuestionConfig) -> None:
    row.field_name = config.field_name
    row.attribute_label = config.attribute_label
    row.survey_label = config.survey_label
    row.display_type = config.display_type
    row.choices = config.options or None
    row.description = config.description or None
    row.placeholder = config.placeholder or None
    row.min_value = config.min_value
    row.max_value = config.max_value
    row.col_count = config.col_count or None
    row.is_read_only = config.is_read_only
    row.is_visible = config.is_visible
    row.is_required = config.is_required
    row.is_blind = config.is_blind
    row.min_is_current = config.min_is_current
    row.sort_order = config.sort_order

def replace_questions(db: Session, question_set_id: int,
                      configs: Sequence[QuestionConfig]) -> List[QuestionSetQuestion]:
    """Make the saved questions of a set exactly ``configs``, atomically.

    Rows whose field is absent from ``configs`` are deleted, remaining sort
    orders are parked on their negatives, then each config is upserted by
    field name. Any failure rolls the whole replacement back.

    Args:
        db (Session): DB session.
        question_set_id (int): Owning question set.
        configs (Sequence[QuestionConfig]): Enabled configs to persist.

    Returns:
        list[QuestionSetQuestion]: Saved rows in submission order.

    Raises:
        SQLAlchemyError: on any store failure (after rollback).
    """
    try:
        existing = db.execute(
            select(QuestionSetQuestion).where(QuestionSetQuestion.question_set_header_id == question_set_id)
        ).scalars().all()
        by_field = {q.field_name: q for q in existing}
        wanted = {c.field_name for c in configs}

        for row in existing:
            if row.field_name not in wanted:
                db.delete(row)
        db.flush()

        db.execute(
            update(QuestionSetQuestion)
            .where(QuestionSetQuestion.question_set_header_id == question_set_id,
                   QuestionSetQuestion.sort_order > 0)
            .values(sort_order=-QuestionSetQuestion.sort_order)
            .execution_options(synchronize_session="fetch")
        )

        saved = []
        for config in configs:
            row = by_field.get(config.field_name)
            if row is None:
                row = QuestionSetQuestion(question_set_header_id=question_set_id)
                db.add(row)
            _apply_config(row, config)
            db.flush()
            saved.append(row)

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Question replace rolled back", extra={"question_set_id": question_set_id})
        raise

    logger.info("Saved questions", extra={"question_set_id": question_set_id, "count": len(saved)})
    return saved

# ------------------------
# Survey templates
# ------------------------
def list_templates(db: Session) -> List[SurveyTemplateHeader]:
    return list(db.execute(select(SurveyTemplateHeader).order_by(SurveyTemplateHeader.id.desc())).scalars().all())

def get_template(db: Session, template_id: int) -> Optional[SurveyTemplateHeader]:
    return db.get(SurveyTemplateHeader, template_id)

def create_template(db: Session, **fields) -> SurveyTemplateHeader:
    row = SurveyTemplateHeader(**fields)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Created survey template", extra={"template_id": row.id})
    return row

def update_template(db: Session, row: SurveyTemplateHeader, **fields) -> SurveyTemplateHeader:
    for key, value in fields.items():
        setattr(row, key, value)
    db.commit()
    db.refresh(row)
    return row

def delete_template(db: Session, row: SurveyTemplateHeader) -> None:
    db.delete(row)
    db.commit()
    logger.info("Deleted survey template", extra={"template_id": row.id})

def list_links(db: Session, template_id: int, active_only: bool = False) -> List[SurveyTemplateQuestion]:
    q = select(SurveyTemplateQuestion).where(SurveyTemplateQuestion.survey_template_header_id == template_id)
    if active_only:
        q = q.where(SurveyTemplateQuestion.is_active == True)
    return list(db.execute(q.order_by(SurveyTemplateQuestion.sort_order, SurveyTemplateQuestion.id)).scalars().all())

def available_question_sets(db: Session, template_id: int) -> List[Tuple[QuestionSetHeader, int]]:
    """Question sets not actively linked to the template, by name."""
    linked = select(SurveyTemplateQuestion.question_set_header_id).where(
        SurveyTemplateQuestion.survey_template_header_id == template_id,
        SurveyTemplateQuestion.is_active == True,
    )
    rows = db.execute(
        select(QuestionSetHeader).where(QuestionSetHeader.id.not_in(linked)).order_by(QuestionSetHeader.name)
    ).scalars().all()
    counts = visible_question_counts(db, [r.id for r in rows])
    return [(r, counts.get(r.id, 0)) for r in rows]

def add_link(db: Session, template_id: int, question_set_id: int) -> SurveyTemplateQuestion:
    """Append a question set to a template (sort order = current max + 1).

    Raises:
        ValidationFailure: the set is already actively linked.
    """
    dup = db.execute(
        select(func.count()).select_from(SurveyTemplateQuestion).where(
            SurveyTemplateQuestion.survey_template_header_id == template_id,
            SurveyTemplateQuestion.question_set_header_id == question_set_id,
            SurveyTemplateQuestion.is_active == True,
        )
    ).scalar_one()
    if dup:
        raise ValidationFailure("Question set is already assigned to this survey")

    current_max = db.execute(
        select(func.max(SurveyTemplateQuestion.sort_order))
        .where(SurveyTemplateQuestion.survey_template_header_id == template_id)
    ).scalar_one_or_none()
    row = SurveyTemplateQuestion(survey_template_header_id=template_id, question_set_header_id=question_set_id,
                                 sort_order=(current_max or 0) + 1, is_active=True)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("Linked question set", extra={"template_id": template_id, "question_set_id": question_set_id})
    return row

def _resequence(db: Session, template_id: int, ordered: Sequence[SurveyTemplateQuestion]) -> None:
    db.execute(
        update(SurveyTemplateQuestion)
        .where(SurveyTemplateQuestion.survey_template_header_id == template_id)
        .values(sort_order=-SurveyTemplateQuestion.sort_order - REORDER_OFFSET)
        .execution_options(synchronize_session="fetch")
    )
    for position, link in enumerate(ordered, start=1):
        link.sort_order = position
        db.flush()

def reorder_links(db: Session, template_id: int, link_ids: Sequence[int]) -> List[SurveyTemplateQuestion]:
    """Give the template's links sort orders 1..n in the order of ``link_ids``.

    Links not mentioned keep their relative order after the mentioned ones.

    Raises:
        ValidationFailure: an id is repeated or does not belong to the template.
        SQLAlchemyError: on store failure (after rollback).
    """
    links = list_links(db, template_id)
    by_id = {l.id: l for l in links}
    if len(set(link_ids)) != len(link_ids):
        raise ValidationFailure("Reordered items contain duplicate ids")
    unknown = [i for i in link_ids if i not in by_id]
    if unknown:
        raise ValidationFailure(f"Unknown survey question set link id(s): {unknown}")

    mentioned = set(link_ids)
    ordered = [by_id[i] for i in link_ids] + [l for l in links if l.id not in mentioned]
    try:
        _resequence(db, template_id, ordered)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Reorder rolled back", extra={"template_id": template_id})
        raise
    return ordered

def remove_link(db: Session, template_id: int, link: SurveyTemplateQuestion) -> None:
    """Delete one link and close the gap it leaves in the sort orders."""
    try:
        db.delete(link)
        db.flush()
        remaining = list_links(db, template_id)
        _resequence(db, template_id, remaining)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Link removal rolled back", extra={"template_id": template_id})
        raise
