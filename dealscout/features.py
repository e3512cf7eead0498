"""
Feature extraction for ranked entities.

Turns a heterogeneous entity record (person, company or talent signal) into
an EntityFeatures value: identifier, display name, categorical tags and a
flattened text blob for the lexical embedder.

Extraction is total: missing or wrong-typed fields degrade to empty values,
it never raises.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .normalize import normalize_entity_type, normalize_tag, unique

PERSON = "person"
COMPANY = "company"
TALENT_SIGNAL = "talent_signal"

ID_FIELDS = ("id", "person_id", "company_id", "talent_signal_id")
NAME_FIELDS = ("full_name", "organization_name", "name")
TEXT_FIELDS = ("headline", "about", "tagline", "description")


@dataclass
class EntityFeatures:
    id: str
    entity_type: str
    display_name: str = ""
    categorical_tags: Dict[str, List[str]] = field(default_factory=dict)
    text_blob: str = ""

    def pairs(self) -> Iterator[Tuple[str, str]]:
        """Yield every (category, value) pair in a stable order."""
        for category in sorted(self.categorical_tags):
            for value in self.categorical_tags[category]:
                yield category, value

    def values(self, category: str) -> List[str]:
        return self.categorical_tags.get(category, [])

    def with_tags(self, tags) -> "EntityFeatures":
        """Return a copy with user-selected tags added under the 'tag' category."""
        merged = dict(self.categorical_tags)
        extra = unique(normalize_tag(t) for t in (tags or []))
        if extra:
            merged["tag"] = unique(merged.get("tag", []) + extra)
        return EntityFeatures(
            id=self.id,
            entity_type=self.entity_type,
            display_name=self.display_name,
            categorical_tags=merged,
            text_blob=self.text_blob,
        )


def _get(raw: Dict[str, Any], key: str) -> Any:
    value = raw.get(key)
    return value if value not in ("", None) else None


def _first_str(raw: Dict[str, Any], keys) -> str:
    for key in keys:
        value = _get(raw, key)
        if value is not None and not isinstance(value, (dict, list, tuple)):
            return str(value).strip()
    return ""


def _str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if isinstance(v, (str, int, float)) and not isinstance(v, bool)]
    return []


def _experience(raw: Dict[str, Any]) -> List[Dict[str, Any]]:
    exp = raw.get("experience")
    if not isinstance(exp, list):
        return []
    return [e for e in exp if isinstance(e, dict)]


def _display_name(raw: Dict[str, Any]) -> str:
    name = _first_str(raw, NAME_FIELDS)
    if name:
        return name
    first = _first_str(raw, ("first_name",))
    last = _first_str(raw, ("last_name",))
    return " ".join(p for p in (first, last) if p)


def _tags(**categories: List[str]) -> Dict[str, List[str]]:
    tags = {}
    for category, values in categories.items():
        cleaned = unique(normalize_tag(v) for v in values)
        if cleaned:
            tags[category] = cleaned
    return tags


def _text_blob(name: str, tags: Dict[str, List[str]], raw: Dict[str, Any]) -> str:
    parts = [name]
    for category in ("signal", "highlight", "experience", "industry", "seniority"):
        parts.extend(tags.get(category, []))
    for key in TEXT_FIELDS:
        value = _get(raw, key)
        if isinstance(value, str):
            parts.append(value)
    return " ".join(p for p in parts if p)


def _common(raw: Dict[str, Any]) -> Dict[str, List[str]]:
    experience = _experience(raw)
    industries = _str_list(raw.get("industry")) + _str_list(raw.get("industries"))
    industries += [str(e["industry"]) for e in experience if e.get("industry")]
    return {
        "seniority": _str_list(_get(raw, "seniority") or _get(raw, "level_of_seniority")),
        "region": _str_list(raw.get("region")),
        "highlight": _str_list(raw.get("people_highlights")) or _str_list(raw.get("highlights")),
        "experience": [str(e["company_name"]) for e in experience if e.get("company_name")],
        "industry": industries,
    }


def extract_person(raw: Dict[str, Any]) -> EntityFeatures:
    name = _display_name(raw)
    tags = _tags(**_common(raw))
    return EntityFeatures(
        id=_first_str(raw, ID_FIELDS),
        entity_type=PERSON,
        display_name=name,
        categorical_tags=tags,
        text_blob=_text_blob(name, tags, raw),
    )


def extract_company(raw: Dict[str, Any]) -> EntityFeatures:
    name = _display_name(raw)
    common = _common(raw)
    common["highlight"] = common["highlight"] + _str_list(raw.get("company_highlights"))
    tags = _tags(**common)
    return EntityFeatures(
        id=_first_str(raw, ("company_id", "id")),
        entity_type=COMPANY,
        display_name=name,
        categorical_tags=tags,
        text_blob=_text_blob(name, tags, raw),
    )


def extract_talent_signal(raw: Dict[str, Any]) -> EntityFeatures:
    name = _display_name(raw)
    common = _common(raw)
    common["signal"] = _str_list(raw.get("signal_type"))
    common["experience"] = common["experience"] + _str_list(raw.get("new_position_company_name")) + _str_list(
        raw.get("past_position_company_name")
    )
    tags = _tags(**common)
    return EntityFeatures(
        id=_first_str(raw, ("id", "talent_signal_id", "person_id")),
        entity_type=TALENT_SIGNAL,
        display_name=name,
        categorical_tags=tags,
        text_blob=_text_blob(name, tags, raw),
    )


EXTRACTORS: Dict[str, Callable[[Dict[str, Any]], EntityFeatures]] = {
    PERSON: extract_person,
    COMPANY: extract_company,
    TALENT_SIGNAL: extract_talent_signal,
}


def infer_entity_type(raw: Dict[str, Any]) -> str:
    declared = normalize_entity_type(raw.get("entity_type") if isinstance(raw.get("entity_type"), str) else None)
    if declared:
        return declared
    if _get(raw, "signal_type") is not None:
        return TALENT_SIGNAL
    if _get(raw, "company_id") is not None or _get(raw, "organization_name") is not None:
        return COMPANY
    return PERSON


def extract(raw: Any, entity_type: Optional[str] = None) -> EntityFeatures:
    """
    Normalize an entity record into EntityFeatures.

    Args:
        raw: Entity record (dict). EntityFeatures pass through unchanged and
            anything else yields an empty feature set.
        entity_type: Explicit discriminator (person, company, talent_signal);
            inferred from the record when omitted.

    Returns:
        EntityFeatures. The id may be empty; callers that persist feedback
        validate it.
    """
    if isinstance(raw, EntityFeatures):
        return raw
    if not isinstance(raw, dict):
        return EntityFeatures(id="", entity_type=normalize_entity_type(entity_type) or PERSON)
    kind = normalize_entity_type(entity_type) or infer_entity_type(raw)
    return EXTRACTORS[kind](raw)


def features_from_tags(entity_id: str, entity_type: str, tags) -> EntityFeatures:
    """Feature set carrying only user-selected tags, for callers without a record."""
    return EntityFeatures(
        id=entity_id or "",
        entity_type=normalize_entity_type(entity_type) or PERSON,
        text_blob=" ".join(t for t in (tags or []) if isinstance(t, str)),
    ).with_tags(tags)
