import datetime
from dataclasses import asdict, dataclass
from typing import Optional

WINDOW_EXPIRED = 'edit window expired'
NOT_ORIGINAL_MARKER = 'only the original marker may edit'


@dataclass(frozen=True)
class EditWindowStatus:
    marked_at: datetime.datetime
    window_minutes: int
    elapsed_minutes: int
    remaining_minutes: int
    is_within_window: bool
    is_original_marker: bool
    has_override: bool
    can_edit: bool
    requires_admin_edit: bool
    edit_denied_reason: Optional[str] = None

    def as_dict(self) -> dict:
        data = asdict(self)
        data['marked_at'] = self.marked_at.isoformat()
        return data


def evaluate_edit_window(marked_at: datetime.datetime, now: datetime.datetime, window_minutes: int,
                         is_original_marker: bool, has_override: bool) -> EditWindowStatus:
    """Decide whether a marked attendance record may still be edited.

    The original marker may edit while fewer than ``window_minutes`` whole
    minutes have passed since ``marked_at``; a holder of the override
    capability may edit at any time.
    """
    elapsed = max(0, int((now - marked_at).total_seconds() // 60))
    within = elapsed < window_minutes
    can_edit = (within and is_original_marker) or has_override

    reason = None
    if not can_edit:
        reason = WINDOW_EXPIRED if not within else NOT_ORIGINAL_MARKER

    return EditWindowStatus(
        marked_at=marked_at,
        window_minutes=window_minutes,
        elapsed_minutes=elapsed,
        remaining_minutes=max(0, window_minutes - elapsed),
        is_within_window=within,
        is_original_marker=is_original_marker,
        has_override=has_override,
        can_edit=can_edit,
        requires_admin_edit=not within,
        edit_denied_reason=reason,
    )
