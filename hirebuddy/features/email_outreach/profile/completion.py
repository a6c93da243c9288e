"""
Profile completion gate.

Sending is blocked until the weighted profile completion reaches the
configured threshold. A profile without a resume never scores above 80.
"""

import math

from hirebuddy.config import settings
from hirebuddy.features.email_outreach.domain.models import ProfileCompletionGate, ProfileSnapshot

FIELD_WEIGHTS: dict[str, int] = {
    "full_name": 15,
    "location": 10,
    "phone": 10,
    "bio": 20,
    "skills": 15,
    "college": 10,
    "linkedin": 5,
    "github": 5,
    "website": 5,
    "resume_url": 15,
}
EXPERIENCE_WEIGHT = 10
NO_RESUME_CAP = 80

# Fields reported back to the user, in display order
REQUIRED_FIELD_LABELS: tuple[tuple[str, str], ...] = (
    ("full_name", "Full Name"),
    ("bio", "Bio/Summary"),
    ("skills", "Skills"),
    ("resume_url", "Resume"),
    ("location", "Location"),
    ("phone", "Phone Number"),
)


def _is_filled(value) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list | tuple):
        return len(value) > 0
    return value is not None


def completion_percentage(profile: ProfileSnapshot) -> int:
    """Weighted completion, rounded half up."""
    total = sum(FIELD_WEIGHTS.values()) + EXPERIENCE_WEIGHT
    earned = sum(
        weight for name, weight in FIELD_WEIGHTS.items() if _is_filled(getattr(profile, name))
    )
    if profile.experiences:
        earned += EXPERIENCE_WEIGHT

    percentage = math.floor(earned / total * 100 + 0.5)
    if not _is_filled(profile.resume_url) and percentage >= NO_RESUME_CAP:
        percentage = NO_RESUME_CAP
    return percentage


def missing_fields(profile: ProfileSnapshot) -> list[str]:
    missing = [
        label for name, label in REQUIRED_FIELD_LABELS if not _is_filled(getattr(profile, name))
    ]
    if not profile.experiences:
        missing.append("Work Experience")
    return missing


def evaluate_profile_gate(
    profile: ProfileSnapshot | None, required_percentage: int | None = None
) -> ProfileCompletionGate:
    required = (
        required_percentage
        if required_percentage is not None
        else settings.PROFILE_COMPLETION_THRESHOLD
    )
    if profile is None:
        return ProfileCompletionGate(
            completion_percentage=0, missing_fields=("profile",), required_percentage=required
        )

    return ProfileCompletionGate(
        completion_percentage=completion_percentage(profile),
        missing_fields=tuple(missing_fields(profile)),
        required_percentage=required,
    )
