"""
Ingredient name normalisation and ingredient-statement splitting.
"""

MIN_FRAGMENT_LENGTH = 2


def clean_name(name: str) -> str:
    """Display form of a name: trimmed, inner whitespace collapsed."""
    return " ".join(name.split())


def normalize_name(name: str) -> str:
    """Case-insensitive identity of an ingredient name."""
    return clean_name(name).casefold()


def split_ingredient_statement(statement: str | None) -> list[str]:
    """
    Split a free-text ingredient statement into candidate ingredient names.

    Fragments are comma-separated; each is trimmed of whitespace and trailing
    periods, cut at the first "(" to drop qualifiers such as percentages, and
    discarded when shorter than two characters.

        >>> split_ingredient_statement("Water, Sugar, Salt.")
        ['Water', 'Sugar', 'Salt']
        >>> split_ingredient_statement("Wheat Flour (Contains 2% or less of Niacin)")
        ['Wheat Flour']
    """
    if not statement:
        return []

    fragments = []
    for raw in statement.split(","):
        fragment = raw.strip().rstrip(".").strip()
        fragment = fragment.split("(", 1)[0].strip()
        if len(fragment) < MIN_FRAGMENT_LENGTH:
            continue
        fragments.append(clean_name(fragment))
    return fragments
