"""Small helpers shared by the API views of every app."""
import datetime
from typing import List, Optional

from schoolerp import exceptions as errors


def items_payload(items) -> dict:
    items = list(items)
    return {'items': items, 'total': len(items)}


def query_int(request, name: str, required: bool = False) -> Optional[int]:
    raw = request.query_params.get(name)
    if raw in (None, ''):
        if required:
            raise errors.ValidationError(f'{name} is required.', field=name)
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise errors.ValidationError(f'{name} must be an integer.', field=name)


def query_int_list(request, name: str, required: bool = False) -> List[int]:
    """Comma-separated integers, e.g. ``?period_slot_ids=3,4``."""
    raw = request.query_params.get(name) or ''
    parts = [p.strip() for p in raw.split(',') if p.strip()]
    if not parts and required:
        raise errors.ValidationError(f'{name} is required.', field=name)
    try:
        return [int(p) for p in parts]
    except ValueError:
        raise errors.ValidationError(f'{name} must be a comma-separated list of integers.', field=name)


def query_date(request, name: str, required: bool = False) -> Optional[datetime.date]:
    raw = request.query_params.get(name)
    if raw in (None, ''):
        if required:
            raise errors.ValidationError(f'{name} is required.', field=name)
        return None
    try:
        return datetime.date.fromisoformat(raw)
    except ValueError:
        raise errors.ValidationError(f'{name} must be a date in YYYY-MM-DD format.', field=name)


def query_bool(request, name: str) -> Optional[bool]:
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return None
    return str(raw).strip().lower() in ('1', 'true', 'yes')
