"""Course category policy.

Maps a user's track (the program they enrolled in) to the course subjects it
may see. The table is declarative: replacing it with a real taxonomy does not
touch any caller. Subjects are free text written by course authors, so
matching is loose: case-insensitive, accent-insensitive, trimmed, and by
substring in either direction.
"""

import unicodedata


# Category of subjects that match no other category; open to every track
CATCH_ALL_CATEGORY = "outros"

# Tracks that see every subject
UNRESTRICTED_TRACKS = frozenset({"admin", "administrador"})

# (track, subject) pairs always allowed. "web" is shared by several categories.
ALWAYS_ALLOWED: frozenset[tuple[str, str]] = frozenset({("programacao", "web")})

CATEGORY_KEYWORDS: dict[str, frozenset[str]] = {
    "programacao": frozenset(
        {
            "programacao",
            "python",
            "javascript",
            "typescript",
            "java",
            "web",
            "html",
            "css",
            "react",
            "node",
            "algoritmos",
            "logica de programacao",
            "banco de dados",
            "sql",
            "desenvolvimento",
        }
    ),
    "design": frozenset(
        {
            "design",
            "web design",
            "ui design",
            "ux design",
            "figma",
            "photoshop",
            "ilustracao",
            "tipografia",
        }
    ),
    "robotica": frozenset(
        {
            "robotica",
            "arduino",
            "eletronica",
            "automacao",
            "sensores",
            "microcontroladores",
        }
    ),
    "matematica": frozenset(
        {
            "matematica",
            "algebra",
            "geometria",
            "calculo",
            "estatistica",
            "trigonometria",
        }
    ),
    "administracao": frozenset(
        {
            "administracao",
            "gestao",
            "financas",
            "marketing",
            "empreendedorismo",
            "contabilidade",
        }
    ),
}


def normalize(text: str | None) -> str:
    """Lowercase, trim and strip accents ("Programação " -> "programacao")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _matches(term: str, keyword: str) -> bool:
    return keyword in term or term in keyword


def categories_for(
    subject: str | None, table: dict[str, frozenset[str]] = CATEGORY_KEYWORDS
) -> set[str]:
    """Categories a subject belongs to; ``{"outros"}`` when it matches none."""
    term = normalize(subject)
    if not term:
        return {CATCH_ALL_CATEGORY}
    found = {
        category
        for category, keywords in table.items()
        if any(_matches(term, keyword) for keyword in keywords)
    }
    return found or {CATCH_ALL_CATEGORY}


def category_of_track(
    track: str | None, table: dict[str, frozenset[str]] = CATEGORY_KEYWORDS
) -> str | None:
    """Resolve a free-text track to a category name.

    Exact category names win; otherwise the first category (in table order)
    whose keywords match the track. Unresolvable tracks return None and may
    only see catch-all subjects.
    """
    term = normalize(track)
    if not term:
        return None
    if term in table:
        return term
    for category, keywords in table.items():
        if any(_matches(term, keyword) for keyword in keywords):
            return category
    return None


class CourseAccessPolicy:
    """Decides whether a track may access a course subject.

    Stateless and safe to share between concurrent requests. The keyword
    table can be swapped per instance.
    """

    def __init__(self, categories: dict[str, frozenset[str]] | None = None):
        self.categories = categories if categories is not None else CATEGORY_KEYWORDS

    def allowed(self, track: str | None, subject: str | None) -> bool:
        """Whether a user on ``track`` may see a course about ``subject``."""
        track_key = normalize(track)
        subject_key = normalize(subject)

        if not track_key or not subject_key:
            return True
        if track_key in UNRESTRICTED_TRACKS:
            return True
        if (track_key, subject_key) in ALWAYS_ALLOWED:
            return True

        subject_categories = categories_for(subject_key, self.categories)
        if CATCH_ALL_CATEGORY in subject_categories:
            return True

        return category_of_track(track_key, self.categories) in subject_categories
