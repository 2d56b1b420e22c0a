"""Read-only course catalog (users, courses, modules, lessons)."""

from .models import CATALOG_TABLES_CQL, Course, Lesson, Module, User


__all__ = ["CATALOG_TABLES_CQL", "Course", "Lesson", "Module", "User"]
