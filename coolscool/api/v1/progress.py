"""
Progress endpoints - topic bands and the per-curriculum dashboard.
"""

import uuid

from fastapi import APIRouter, status

from coolscool.api.deps import CurrentUser, DbSession
from coolscool.engines.proficiency import ProficiencyAggregator
from coolscool.kernel.curriculum import CurriculumCatalog
from coolscool.schemas.common import ErrorResponse
from coolscool.schemas.progress import TopicProficiencyResponse, UserProgressResponse

router = APIRouter(responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}})


@router.get("/{curriculum_id}/progress", response_model=UserProgressResponse)
async def get_user_progress(curriculum_id: uuid.UUID, user: CurrentUser, db: DbSession):
    """Band, XP and activity for every topic of the curriculum."""
    return await ProficiencyAggregator(db).get_user_progress(user.id, curriculum_id)


@router.get(
    "/{curriculum_id}/topics/{topic_id}/proficiency",
    response_model=TopicProficiencyResponse,
)
async def get_topic_proficiency(
    curriculum_id: uuid.UUID,
    topic_id: str,
    user: CurrentUser,
    db: DbSession,
):
    catalog = CurriculumCatalog(db)
    topic = await catalog.get_topic(curriculum_id, topic_id)
    proficiency = await ProficiencyAggregator(db, catalog).get_topic_proficiency(
        user.id, curriculum_id, topic_id
    )
    return TopicProficiencyResponse(
        curriculum_id=curriculum_id,
        topic_id=topic.topic_id,
        topic_name=topic.topic_name,
        proficiency=proficiency,
    )
