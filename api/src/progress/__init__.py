"""Student progress module.

Provides:
- Lesson completion tracking
- Module and course progress roll-up
"""

from .models import (
    PROGRESS_TABLES_CQL,
    CourseProgress,
    LessonProgress,
    ModuleProgress,
    completion_percentage,
)


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CourseProgress",
    "LessonProgress",
    "ModuleProgress",
    "completion_percentage",
]
