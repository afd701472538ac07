import re

from predictor.errors import ValidationError
from predictor.models import DIRECTIONS

_UUID_RE = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE,
)


def is_valid_uuid(value) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def require_uuid(value, field: str) -> str:
    if not value:
        raise ValidationError(f'{field} is required')
    if not is_valid_uuid(value):
        raise ValidationError(f'Invalid {field} format')
    return value


def validate_player_name(name, min_length: int = 2, max_length: int = 50) -> str:
    """Return the trimmed name or raise ValidationError."""
    if not name:
        raise ValidationError('Name is required')
    if not isinstance(name, str):
        raise ValidationError('Name must be a string')
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError('Name cannot be empty')
    if len(trimmed) < min_length:
        raise ValidationError(f'Name must be at least {min_length} characters long')
    if len(trimmed) > max_length:
        raise ValidationError(f'Name must be at most {max_length} characters long')
    return trimmed


def validate_direction(direction) -> str:
    if not direction:
        raise ValidationError('Direction is required')
    if not isinstance(direction, str):
        raise ValidationError('Direction must be a string')
    normalized = direction.strip().lower()
    if normalized not in DIRECTIONS:
        raise ValidationError('Direction must be either "up" or "down"')
    return normalized
