"""Data models for the group blueprint."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from trailsync.constants import (
    GROUP_ID,
    GROUP_LEADER_ID,
    GROUP_MEMBERS,
    GROUP_NAME,
    LOCATION_LATITUDE,
    LOCATION_LONGITUDE,
    LOCATION_TIMESTAMP,
    LOCATION_USER_ID,
)
from trailsync.errors import DataFormatError
from trailsync.location.geo import Coordinate, is_valid_coordinate


@dataclass(frozen=True)
class Group:
    """A hiking group: a name, a member id set and at most one leader.

    ``member_ids`` keeps insertion order for display; membership checks treat
    it as a set. The leader, when present, is always a member.
    """

    id: str
    name: str
    member_ids: tuple[str, ...]
    leader_id: str | None = None

    def __post_init__(self) -> None:
        if self.leader_id is not None and self.leader_id not in self.member_ids:
            raise DataFormatError(
                f"Leader {self.leader_id} is not a member of group {self.id}."
            )

    @classmethod
    def create(cls, group_id: str, name: str, creator_id: str) -> Group:
        """A new group whose creator is its only member and its leader."""
        return cls(id=group_id, name=name, member_ids=(creator_id,), leader_id=creator_id)

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> Group:
        """Parse a group document.

        Raises:
            DataFormatError: If ``id``, ``name`` or ``members`` is missing or
                has the wrong type.
        """
        group_id = data.get(GROUP_ID)
        name = data.get(GROUP_NAME)
        members = data.get(GROUP_MEMBERS)
        if not isinstance(group_id, str) or not group_id:
            raise DataFormatError("Group document has no id.")
        if not isinstance(name, str):
            raise DataFormatError(f"Group {group_id} has no name.")
        if not isinstance(members, list) or not all(
            isinstance(m, str) for m in members
        ):
            raise DataFormatError(f"Group {group_id} has an invalid member list.")

        member_ids = tuple(dict.fromkeys(members))
        leader_id = data.get(GROUP_LEADER_ID) or None
        if leader_id is not None and not isinstance(leader_id, str):
            raise DataFormatError(f"Group {group_id} has an invalid leader id.")
        # A leader who left the group no longer leads it.
        if leader_id not in member_ids:
            leader_id = None

        return cls(id=group_id, name=name, member_ids=member_ids, leader_id=leader_id)

    def has_member(self, member_id: str) -> bool:
        return member_id in self.member_ids

    def is_leader(self, member_id: str) -> bool:
        return self.leader_id is not None and self.leader_id == member_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "members": list(self.member_ids),
            "leader_id": self.leader_id,
        }


def _as_degrees(value: Any, field: str, member_id: str) -> float:
    # bool is an int subclass but never a coordinate.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DataFormatError(f"Location of {member_id} has no valid {field}.")
    return float(value)


@dataclass(frozen=True)
class MemberLocation:
    """The latest known position of one group member."""

    member_id: str
    latitude: float
    longitude: float
    timestamp: datetime

    @classmethod
    def from_document(cls, data: Mapping[str, Any]) -> MemberLocation:
        """Parse a member location record.

        The member id is the document id, falling back to ``userId``.

        Raises:
            DataFormatError: On a missing field, a wrong type, or a coordinate
                outside WGS84 ranges.
        """
        member_id = data.get("id") or data.get(LOCATION_USER_ID)
        if not isinstance(member_id, str) or not member_id:
            raise DataFormatError("Location record has no member id.")

        latitude = _as_degrees(data.get(LOCATION_LATITUDE), "latitude", member_id)
        longitude = _as_degrees(data.get(LOCATION_LONGITUDE), "longitude", member_id)
        if not is_valid_coordinate(latitude, longitude):
            raise DataFormatError(
                f"Location of {member_id} is out of range: {latitude}, {longitude}"
            )

        timestamp = data.get(LOCATION_TIMESTAMP)
        if not isinstance(timestamp, datetime):
            raise DataFormatError(f"Location of {member_id} has no timestamp.")
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        return cls(member_id, latitude, longitude, timestamp)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def age(self, now: datetime | None = None) -> timedelta:
        """Time elapsed since the server stamped this record."""
        now = now or datetime.now(timezone.utc)
        return now - self.timestamp

    def is_stale(self, max_age: timedelta, now: datetime | None = None) -> bool:
        return self.age(now) > max_age

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_id": self.member_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
        }
