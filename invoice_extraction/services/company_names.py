"""
Company-name normalization and the shared rules that decide whether a text
line may be reported as the counterparty's name.

A name whose core matches or contains the caller's own company core is
treated as the own company and dropped.
"""

import re
from .keywords import fold, contains_any
from . import vocabulary as vocab

QUOTES_RE = re.compile(r"[\"'„“”«»‘’\\]+")
WHITESPACE_RE = re.compile(r"\s+")
LEGAL_FORM_RE = re.compile(
    r"\b(?:"
    + "|".join(re.escape(form).replace(r"\ ", r"\s+") for form in vocab.LEGAL_FORMS)
    + r")\b"
)
LONG_DIGIT_RUN_RE = re.compile(r"\d{7,}")
DIGITS_ONLY_RE = re.compile(r"^[\d\s.,]+$")

_SECTION_HEADERS = vocab.BUYER_SECTION_KEYWORDS + vocab.SELLER_SECTION_KEYWORDS + ("pavadinimas",)
_COLON_LABELS = vocab.SECTION_LABELS + ("name", "pvm", "kodas", "numeris")
LEADING_LABEL_RE = re.compile(
    r"^(?:(?:" + "|".join(re.escape(label) for label in _SECTION_HEADERS) + r")\b[\s:.-]*"
    r"|(?:" + "|".join(re.escape(label) for label in _COLON_LABELS) + r")\s*:\s*)"
)
TRAILING_LABEL_RE = re.compile(
    r"[\s,;:]+(?:imones kodas|im\. ?k|kodas|numeris|pvm|vat|saskaita|faktura|invoice)\b.*$"
)

MIN_NAME_LENGTH = 5
HEURISTIC_MAX_LENGTH = 150


def normalize_for_compare(name: str | None) -> str:
    """
    Reduce a company name to its core for equality checks.

    Lowercases, strips quotes, folds Lithuanian letters, removes legal-form
    tokens anywhere in the string and collapses whitespace. Idempotent.
    """
    if not name:
        return ""
    normalized = QUOTES_RE.sub("", name.strip().lower())
    normalized = WHITESPACE_RE.sub(" ", normalized.translate(vocab.DIACRITIC_FOLDING)).strip()
    # removing one form can join the halves of another ("akcine uab bendrove")
    while True:
        stripped = WHITESPACE_RE.sub(" ", LEGAL_FORM_RE.sub(" ", normalized)).strip()
        if stripped == normalized:
            return stripped
        normalized = stripped


def is_same_company(a: str | None, b: str | None) -> bool:
    """
    Fuzzy identity: equal cores, or one core containing the other when both
    are at least 5 characters. Not transitive.
    """
    if not a or not b or not a.strip() or not b.strip():
        return False
    core_a = normalize_for_compare(a)
    core_b = normalize_for_compare(b)
    if core_a and core_a == core_b:
        return True
    if len(core_a) >= 5 and len(core_b) >= 5:
        return core_a in core_b or core_b in core_a
    return False


def has_legal_form(text: str | None) -> bool:
    return bool(text) and LEGAL_FORM_RE.search(fold(text)) is not None


def _has_word(folded: str, words) -> bool:
    return any(re.search(r"\b" + re.escape(word) + r"(?!\w)", folded) for word in words)


def is_section_label(text: str | None) -> bool:
    folded = fold(text).strip().rstrip(":").strip()
    return folded in vocab.SECTION_LABELS


def is_amount_in_words(text: str | None) -> bool:
    """Spelled-out totals such as "Šešiasdešimt aštuoni eurai ir 51 centas"."""
    folded = fold(text)
    if contains_any(folded, vocab.AMOUNT_IN_WORDS_LABELS):
        return True
    return _has_word(folded, vocab.AMOUNT_IN_WORDS_CURRENCY) and _has_word(folded, vocab.AMOUNT_IN_WORDS_FRACTION)


def is_invoice_vocabulary(text: str | None) -> bool:
    return contains_any(fold(text), vocab.INVOICE_VOCABULARY)


def is_identifier_line(text: str | None) -> bool:
    """Lines carrying codes or long digit runs hold identifiers, not names."""
    folded = fold(text)
    if _has_word(folded, vocab.IDENTIFIER_VOCABULARY):
        return True
    if LONG_DIGIT_RUN_RE.search(folded):
        return True
    return _has_word(folded, ("pvm", "vat")) and not has_legal_form(folded)


def clean_company_name(line: str | None) -> str | None:
    """Strip leading section labels, trailing identifier labels and wrapping quotes."""
    if not line:
        return None
    cleaned = line.strip()
    match = LEADING_LABEL_RE.match(fold(cleaned))
    if match and match.end() < len(cleaned):
        cleaned = cleaned[match.end():].strip()
    match = TRAILING_LABEL_RE.search(fold(cleaned))
    if match and match.start() > 0:
        cleaned = cleaned[: match.start()].strip()
    if cleaned.startswith('"') and cleaned.endswith('"') and cleaned.count('"') == 2:
        cleaned = cleaned[1:-1].strip()
    cleaned = cleaned.rstrip(",;:").strip()
    if not cleaned or DIGITS_ONLY_RE.match(cleaned):
        return None
    return cleaned


def is_acceptable_company_name(
    candidate: str | None,
    own_name: str | None = None,
    max_length: int = HEURISTIC_MAX_LENGTH,
    require_legal_form: bool = True,
) -> bool:
    """Rejection rules applied to every heuristic name candidate."""
    if not candidate or not candidate.strip():
        return False
    if not MIN_NAME_LENGTH <= len(candidate) <= max_length:
        return False
    if is_section_label(candidate) or is_invoice_vocabulary(candidate):
        return False
    if is_amount_in_words(candidate):
        return False
    if require_legal_form and not has_legal_form(candidate):
        return False
    if own_name and is_same_company(candidate, own_name):
        return False
    return True


def company_name_from_line(
    line: str | None,
    own_name: str | None = None,
    max_length: int = HEURISTIC_MAX_LENGTH,
) -> str | None:
    """Clean a line and return it only if it passes every rejection rule."""
    if not line or is_section_label(line) or is_amount_in_words(line):
        return None
    if is_invoice_vocabulary(line):
        return None
    cleaned = clean_company_name(line)
    if cleaned and is_identifier_line(cleaned):
        return None
    if is_acceptable_company_name(cleaned, own_name, max_length):
        return cleaned
    return None
