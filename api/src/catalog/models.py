"""Catalog models: users, courses, modules and lessons.

The catalog is owned by the content-management side of the platform. This
service only reads it, so the entities are plain frozen dataclasses built
from Cassandra rows.

Module and lesson order comes from ``position`` (the "ordem" column of the
content editor), unique within the parent.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID


if TYPE_CHECKING:
    from cassandra.cluster import Row


USER_ACTIVE_STATUS = "ativo"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

USERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    name TEXT,
    track TEXT,
    status TEXT
)
"""

COURSES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    subject TEXT,
    active BOOLEAN
)
"""

MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules (
    id UUID PRIMARY KEY,
    course_id UUID,
    title TEXT,
    position INT,
    active BOOLEAN
)
"""

LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    module_id UUID,
    title TEXT,
    position INT,
    active BOOLEAN
)
"""

# Modules of a course in order
MODULES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules_by_course (
    course_id UUID,
    position INT,
    module_id UUID,
    title TEXT,
    active BOOLEAN,
    PRIMARY KEY ((course_id), position, module_id)
) WITH CLUSTERING ORDER BY (position ASC, module_id ASC)
"""

# Lessons of a module in order
LESSONS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_module (
    module_id UUID,
    position INT,
    lesson_id UUID,
    title TEXT,
    active BOOLEAN,
    PRIMARY KEY ((module_id), position, lesson_id)
) WITH CLUSTERING ORDER BY (position ASC, lesson_id ASC)
"""

CATALOG_TABLES_CQL = [
    USERS_TABLE_CQL,
    COURSES_TABLE_CQL,
    MODULES_TABLE_CQL,
    LESSONS_TABLE_CQL,
    MODULES_BY_COURSE_TABLE_CQL,
    LESSONS_BY_MODULE_TABLE_CQL,
]


# ==============================================================================
# Entities
# ==============================================================================


@dataclass(frozen=True)
class User:
    id: UUID
    track: str | None = None
    status: str = USER_ACTIVE_STATUS
    name: str | None = None

    @property
    def active(self) -> bool:
        return (self.status or "").lower() == USER_ACTIVE_STATUS

    @classmethod
    def from_row(cls, row: "Row") -> "User":
        return cls(
            id=row.id,
            track=row.track,
            status=row.status or USER_ACTIVE_STATUS,
            name=getattr(row, "name", None),
        )


@dataclass(frozen=True)
class Course:
    id: UUID
    subject: str | None = None
    active: bool = True
    title: str | None = None

    @classmethod
    def from_row(cls, row: "Row") -> "Course":
        return cls(
            id=row.id,
            subject=row.subject,
            active=bool(row.active),
            title=getattr(row, "title", None),
        )


@dataclass(frozen=True)
class Module:
    id: UUID
    course_id: UUID
    position: int
    active: bool = True
    title: str | None = None

    @classmethod
    def from_row(cls, row: "Row") -> "Module":
        return cls(
            id=row.id,
            course_id=row.course_id,
            position=row.position or 0,
            active=bool(row.active),
            title=getattr(row, "title", None),
        )

    @classmethod
    def from_course_row(cls, row: "Row", course_id: UUID) -> "Module":
        """Build from a ``modules_by_course`` row."""
        return cls(
            id=row.module_id,
            course_id=course_id,
            position=row.position or 0,
            active=bool(row.active),
            title=getattr(row, "title", None),
        )


@dataclass(frozen=True)
class Lesson:
    id: UUID
    module_id: UUID
    position: int
    active: bool = True
    title: str | None = None

    @classmethod
    def from_row(cls, row: "Row") -> "Lesson":
        return cls(
            id=row.id,
            module_id=row.module_id,
            position=row.position or 0,
            active=bool(row.active),
            title=getattr(row, "title", None),
        )

    @classmethod
    def from_module_row(cls, row: "Row", module_id: UUID) -> "Lesson":
        """Build from a ``lessons_by_module`` row."""
        return cls(
            id=row.lesson_id,
            module_id=module_id,
            position=row.position or 0,
            active=bool(row.active),
            title=getattr(row, "title", None),
        )
