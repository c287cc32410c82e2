import logging
from typing import Union

import repository
from schemas import ProjectEvaluation, Session, UpdateEvaluation
from store import EntityStore

logger = logging.getLogger(__name__)


def compute_total(evaluation: Union[UpdateEvaluation, ProjectEvaluation]) -> float:
    """Plain sum of the four marks. Labelled "out of 100" but not clamped."""
    if isinstance(evaluation, ProjectEvaluation):
        return evaluation.review1_marks + evaluation.review2_marks + evaluation.review3_marks + evaluation.final_marks
    return evaluation.review1 + evaluation.review2 + evaluation.review3 + evaluation.final


def update_evaluation(store: EntityStore, session: Session, project_id: str, command: UpdateEvaluation) -> ProjectEvaluation:
    session.require_role("teacher")
    repository.require_project(store, project_id)

    evaluation = ProjectEvaluation(
        review1_marks=command.review1,
        review2_marks=command.review2,
        review3_marks=command.review3,
        final_marks=command.final,
        total_score=compute_total(command),
        feedback=command.feedback,
        updated_at=repository.now(),
    )
    repository.update_project(store, project_id, {"evaluation": evaluation.model_dump()})
    logger.info("Project %s evaluated by %s: %s", project_id, session.user_id, evaluation.total_score)
    return evaluation
