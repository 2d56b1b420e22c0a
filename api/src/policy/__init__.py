"""Category eligibility of course subjects per user track."""

from src.policy.categories import (
    CATCH_ALL_CATEGORY,
    CATEGORY_KEYWORDS,
    CourseAccessPolicy,
    categories_for,
    category_of_track,
    normalize,
)


__all__ = [
    "CATCH_ALL_CATEGORY",
    "CATEGORY_KEYWORDS",
    "CourseAccessPolicy",
    "categories_for",
    "category_of_track",
    "normalize",
]
