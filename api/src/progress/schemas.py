"""Pydantic schemas for student progress.

Request and response models for:
- Lesson completion
- Course progress queries
- Admin recomputation
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import CourseProgress, LessonProgress, ModuleProgress


# ==============================================================================
# Lesson Completion Schemas
# ==============================================================================


class LessonCompletionRequest(BaseModel):
    """Mark a lesson as completed (or undo it)."""

    completed: bool = Field(default=True, description="Completion flag")
    course_id: UUID | None = Field(
        default=None, description="Optional course check for the lesson"
    )


class LessonProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    module_id: UUID
    course_id: UUID
    completed: bool
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        return cls.model_validate(entity)


class ModuleProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    course_id: UUID
    percentage: int = Field(ge=0, le=100)
    lessons_completed: int
    lessons_total: int

    @classmethod
    def from_entity(cls, entity: ModuleProgress) -> "ModuleProgressResponse":
        return cls.model_validate(entity)


class CourseProgressSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    course_id: UUID
    percentage: int = Field(ge=0, le=100)
    lessons_completed: int
    lessons_total: int

    @classmethod
    def from_entity(cls, entity: CourseProgress) -> "CourseProgressSummary":
        return cls.model_validate(entity)


class LessonCompletionResponse(BaseModel):
    """The three progress rows written by a completion event."""

    lesson_progress: LessonProgressResponse
    module_progress: ModuleProgressResponse
    course_progress: CourseProgressSummary
    course_finished: bool = Field(
        description="True when every active lesson of the course is completed"
    )


# ==============================================================================
# Course Progress Schemas
# ==============================================================================


class ModulePercentage(BaseModel):
    module_id: UUID
    percentage: int = Field(ge=0, le=100)


class CourseProgressResponse(BaseModel):
    """Course percentage with the percentage of each active module."""

    course_id: UUID
    percentage: int = Field(ge=0, le=100)
    lessons_completed: int = 0
    lessons_total: int = 0
    modules: list[ModulePercentage] = Field(default_factory=list)


class RecomputeProgressRequest(BaseModel):
    """Admin request to rebuild a user's roll-ups for a course."""

    user_id: UUID
    course_id: UUID
