"""
Progress and proficiency response schemas.

Bands only: mastery percentages never leave the engine.
"""

import uuid

from pydantic import BaseModel

from coolscool.engines.proficiency import ProficiencyDisplay, UserProgressSummary


class TopicProficiencyResponse(BaseModel):
    curriculum_id: uuid.UUID
    topic_id: str
    topic_name: str
    proficiency: ProficiencyDisplay


UserProgressResponse = UserProgressSummary
