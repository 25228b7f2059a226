"""Phone visibility rules for provider profiles returned to callers."""
from typing import Iterable, List, Optional

from models.profile import Profile, TIER_BASIC, TIER_SPECIALIST
from utils.serialize import row_to_dict


def can_view_phone(profile: Profile, viewer_id: Optional[str] = None) -> bool:
    if viewer_id is not None and viewer_id == profile.user_id:
        return True
    if profile.provider_tier == TIER_BASIC:
        return True
    return profile.provider_tier == TIER_SPECIALIST and profile.phone_visible is True


def sanitize_for_viewer(profile: Profile, viewer_id: Optional[str] = None) -> dict:
    """
    Serialize ``profile`` for ``viewer_id``, nulling the phone unless the
    viewer owns the profile, the tier is basic, or a specialist opted in.
    The ORM row itself is never modified.
    """
    data = row_to_dict(profile)
    if not can_view_phone(profile, viewer_id):
        data["phone"] = None
    return data


def sanitize_many(profiles: Iterable[Profile], viewer_id: Optional[str] = None) -> List[dict]:
    return [sanitize_for_viewer(p, viewer_id) for p in profiles]
