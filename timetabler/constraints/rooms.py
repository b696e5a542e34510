"""
Classroom suitability checks.

This module decides whether a classroom can host a session:
- Capacity must cover the session's required capacity
- A lab requirement needs a lab, or a room with a "Computers" feature
- Required features must be matched (fully, or by a minimum fraction)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from timetabler.data.models import Classroom
from timetabler.sessions import Session

COMPUTERS_FEATURE = "Computers"


@dataclass
class RoomSuitability:
    """Suitability analysis for a classroom-session pair."""
    classroom_id: str
    is_valid: bool = True
    capacity_ok: bool = True
    lab_ok: bool = True
    feature_ratio: float = 1.0
    missing_features: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)


def meets_lab_requirement(room: Classroom, session: Session) -> bool:
    """Labs qualify, and so does any room with computers."""
    if not session.requires_lab:
        return True
    return room.is_lab or room.has_feature(COMPUTERS_FEATURE)


def feature_match_ratio(room: Classroom, required: tuple[str, ...] | list[str]) -> float:
    """Fraction of required features the room has (1.0 when nothing is required)."""
    if not required:
        return 1.0
    matched = sum(1 for feature in required if room.has_feature(feature))
    return matched / len(required)


def evaluate_room_suitability(
    room: Classroom,
    session: Session,
    min_feature_match: float = 1.0,
) -> RoomSuitability:
    """
    Evaluate if a classroom is suitable for a session.

    Args:
        room: The classroom to evaluate
        session: The session needing a room
        min_feature_match: Fraction of required features that must be present

    Returns:
        RoomSuitability with validity and reasons
    """
    result = RoomSuitability(classroom_id=room.id)

    if room.capacity < session.required_capacity:
        result.capacity_ok = False
        result.reasons.append(
            f"capacity {room.capacity} below required {session.required_capacity}"
        )

    if not meets_lab_requirement(room, session):
        result.lab_ok = False
        result.reasons.append(f"{room.type.value} is not a lab and has no computers")

    result.missing_features = [f for f in session.required_features if not room.has_feature(f)]
    result.feature_ratio = feature_match_ratio(room, session.required_features)
    if result.feature_ratio < min_feature_match:
        result.reasons.append(f"missing features: {', '.join(result.missing_features)}")

    result.is_valid = not result.reasons
    return result


def is_room_suitable(room: Classroom, session: Session, min_feature_match: float = 1.0) -> bool:
    """Fast path of ``evaluate_room_suitability`` for domain building."""
    return (
        room.capacity >= session.required_capacity
        and meets_lab_requirement(room, session)
        and feature_match_ratio(room, session.required_features) >= min_feature_match
    )


def suitable_rooms(
    rooms: list[Classroom],
    session: Session,
    min_feature_match: float = 1.0,
) -> list[Classroom]:
    """Suitable classrooms, tightest capacity fit first."""
    candidates = [r for r in rooms if is_room_suitable(r, session, min_feature_match)]
    return sorted(candidates, key=lambda r: (abs(r.capacity - session.required_capacity), r.id))
