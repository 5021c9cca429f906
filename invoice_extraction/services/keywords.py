from ..models.invoice import FieldName
from .vocabulary import DIACRITIC_FOLDING, KEYWORD_MAP


def fold(text: str | None) -> str:
    """Lowercase and fold Lithuanian letters to plain Latin."""
    if not text:
        return ""
    return text.lower().translate(DIACRITIC_FOLDING)


def normalize_key(line: str) -> FieldName | None:
    """
    Decide which field a line is declaring, from its label.

    Returns the first field in the keyword map with a synonym contained in the
    folded line. Only selects the extractor to try; never extracts a value.
    """
    folded = fold(line.strip())
    if not folded:
        return None
    for field, synonyms in KEYWORD_MAP.items():
        if any(synonym in folded for synonym in synonyms):
            return field
    return None


def contains_any(folded: str, words) -> bool:
    return any(word in folded for word in words)
