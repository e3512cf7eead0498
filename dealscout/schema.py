import re
from typing import Any, Dict, List, Optional

ACTIONS = ("like", "dislike")
SYNC_ACTIONS = ("like", "dislike", "viewed")
ENTITY_TYPES = ("person", "company", "talent_signal")

SCOPE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_\-]{0,63}$")
MAX_ENTITY_ID_LENGTH = 256


class ValidationError(ValueError):
    """Raised when a scope, entity or feedback payload is malformed."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def scope_errors(scope: Any) -> List[str]:
    if not _is_non_empty_str(scope):
        return ["Scope must be a non-empty string"]
    if not SCOPE_PATTERN.match(scope):
        return [f"Scope '{scope}' must be lowercase letters, digits, '_' or '-' (max 64 chars)"]
    return []


def entity_id_errors(entity_id: Any, field: str = "entity_id") -> List[str]:
    if not _is_non_empty_str(entity_id):
        return [f"Field '{field}' must be a non-empty string"]
    if len(entity_id) > MAX_ENTITY_ID_LENGTH:
        return [f"Field '{field}' exceeds {MAX_ENTITY_ID_LENGTH} characters"]
    if any(c in entity_id for c in "/\\?#") or entity_id != entity_id.strip():
        return [f"Field '{field}' contains characters not allowed in an identifier"]
    return []


def validate_feedback(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    Expected keys: scope, entity_id, entity_type, action; optional tags
    (list of strings), note (string) and prior_score (0-100).
    """
    errors: List[str] = []
    errors.extend(scope_errors(data.get("scope")))
    errors.extend(entity_id_errors(data.get("entity_id")))

    entity_type = data.get("entity_type")
    if entity_type not in ENTITY_TYPES:
        errors.append(f"Field 'entity_type' must be one of {', '.join(ENTITY_TYPES)}")

    if data.get("action") not in ACTIONS:
        errors.append(f"Field 'action' must be one of {', '.join(ACTIONS)}")

    tags = data.get("tags")
    if tags is not None:
        if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags):
            errors.append("Field 'tags' must be a list of strings if provided")

    note = data.get("note")
    if note is not None and not isinstance(note, str):
        errors.append("Field 'note' must be a string if provided")

    prior = data.get("prior_score")
    if prior is not None:
        if isinstance(prior, bool) or not isinstance(prior, int) or not 0 <= prior <= 100:
            errors.append("Field 'prior_score' must be an integer between 0 and 100")

    return errors


def ensure_scope(scope: Any) -> str:
    errors = scope_errors(scope)
    if errors:
        raise ValidationError(errors)
    return scope


def ensure_entity_id(entity_id: Any, field: str = "entity_id") -> str:
    errors = entity_id_errors(entity_id, field)
    if errors:
        raise ValidationError(errors)
    return entity_id


def ensure_sync_action(action: Any) -> str:
    if action not in SYNC_ACTIONS:
        raise ValidationError([f"Sync action must be one of {', '.join(SYNC_ACTIONS)}"])
    return action


def ensure_pair(chosen_id: Any, rejected_id: Any, reason: Optional[str]) -> None:
    errors = entity_id_errors(chosen_id, "chosen_entity_id")
    errors.extend(entity_id_errors(rejected_id, "rejected_entity_id"))
    if not errors and chosen_id == rejected_id:
        errors.append("A preference pair needs two different entities")
    if reason is not None and not isinstance(reason, str):
        errors.append("Field 'reason' must be a string if provided")
    if errors:
        raise ValidationError(errors)
