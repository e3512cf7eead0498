import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def normalize_tag(value) -> str:
    """Canonical form of a categorical value: lower-cased, whitespace collapsed.

    Non-string values are converted with str(); None becomes "".
    """
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return normalize_text(value)


def tokenize(text: str, min_length: int = 3) -> list[str]:
    """Lower-case, strip non-alphanumerics and drop short tokens."""
    if not text:
        return []
    cleaned = _NON_ALNUM.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) >= min_length]


def unique(values) -> list[str]:
    """Drop empty values and duplicates while preserving order."""
    seen = set()
    result = []
    for v in values:
        if v and v not in seen:
            seen.add(v)
            result.append(v)
    return result


ENTITY_TYPE_SYNS = {
    "person": "person",
    "people": "person",
    "founder": "person",
    "company": "company",
    "companies": "company",
    "organization": "company",
    "talent": "talent_signal",
    "talent_signal": "talent_signal",
    "talent-signal": "talent_signal",
    "signal": "talent_signal",
}


def normalize_entity_type(entity_type: str | None) -> str | None:
    if not entity_type:
        return None
    return ENTITY_TYPE_SYNS.get(normalize_text(entity_type))
