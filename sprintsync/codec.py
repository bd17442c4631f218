"""Wire codec for snapshots and bridge files.

Every entity has an explicit encoder/decoder pair. Field transforms:

* ``id``, ``projectId``              UUID            <-> canonical UUID string
* ``color``, ``assigneeColor``       Color(r, g, b)  <-> 6-digit uppercase hex, no ``#``
* ``sourcePath``                     absolute path   <-> ``~/...`` when under the home directory
* ``timestamp``, ``lastModified``,
  ``startDate``, ``endDate``         UTC datetime    <-> ISO-8601 with ``Z`` suffix
* ``priority``, ``status``           enum            <-> enum value string

All other fields pass through unchanged. JSON documents are written with
sorted keys so the same state always produces the same bytes.

Decoders raise ``DecodeError`` for anything malformed; callers at the
persistence and bridge boundary treat that as "no data".
"""
from __future__ import annotations

import json
import os
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from sprintsync.date_utils import format_iso, parse_iso
from sprintsync.models import (
    ActivityItem,
    Color,
    Priority,
    Project,
    ProjectPatch,
    Snapshot,
    Sprint,
    TaskItem,
    TaskStatus,
    TeamMember,
    VelocityPoint,
)

M = TypeVar("M", bound=BaseModel)


class DecodeError(ValueError):
    """Raised when a wire document is malformed or does not match the schema."""


# ── Field transforms ───────────────────────────────────────────────

def encode_color(color: Iterable[int]) -> str:
    r, g, b = color
    return f"{int(r) & 0xFF:02X}{int(g) & 0xFF:02X}{int(b) & 0xFF:02X}"


def decode_color(value: Any) -> Color:
    """Parse ``RRGGBB`` (or ``AARRGGBB``, alpha dropped), tolerating ``#`` and lowercase."""
    if not isinstance(value, str):
        raise DecodeError(f"Expected hex color string, got {type(value).__name__}")
    token = value.strip().lstrip("#")
    if len(token) not in (6, 8):
        raise DecodeError(f"Invalid hex color: {value!r}")
    try:
        raw = int(token, 16)
    except ValueError as exc:
        raise DecodeError(f"Invalid hex color: {value!r}") from exc
    return Color((raw >> 16) & 0xFF, (raw >> 8) & 0xFF, raw & 0xFF)


def encode_path(path: str, home: Optional[Path] = None) -> str:
    if not path:
        return ""
    home = home or Path.home()
    absolute = Path(os.path.expanduser(path))
    try:
        relative = absolute.relative_to(home)
    except ValueError:
        return str(absolute)
    if relative == Path("."):
        return "~"
    return f"~/{relative.as_posix()}"


def decode_path(value: Any, home: Optional[Path] = None) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DecodeError(f"Expected path string, got {type(value).__name__}")
    if not value:
        return ""
    home = home or Path.home()
    if value == "~":
        return str(home)
    if value.startswith("~/"):
        return str(home / value[2:])
    return os.path.expanduser(value)


def encode_uuid(value: uuid.UUID) -> str:
    return str(value)


def decode_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except (ValueError, TypeError, AttributeError) as exc:
        raise DecodeError(f"Invalid UUID: {value!r}") from exc


def _decode_optional_uuid(value: Any) -> Optional[uuid.UUID]:
    if value is None or value == "":
        return None
    return decode_uuid(value)


def _encode_optional_uuid(value: Optional[uuid.UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def encode_datetime(value) -> str:
    return format_iso(value)


def decode_datetime(value: Any):
    if not isinstance(value, str):
        raise DecodeError(f"Expected ISO-8601 string, got {type(value).__name__}")
    parsed = parse_iso(value)
    if parsed is None:
        raise DecodeError(f"Invalid ISO-8601 timestamp: {value!r}")
    return parsed


def _enum_value(value: Enum) -> str:
    return value.value


def _enum_decoder(enum_type: Type[Enum]) -> Callable[[Any], Enum]:
    def _decode(value: Any) -> Enum:
        try:
            return enum_type(value)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in enum_type)
            raise DecodeError(f"Invalid {enum_type.__name__} {value!r} (allowed: {allowed})") from exc
    return _decode


# ── Entity tables ──────────────────────────────────────────────────

# field name -> (encoder, decoder); fields not listed pass through unchanged
Transforms = dict[str, tuple[Callable[[Any], Any], Callable[[Any], Any]]]

_ID = (encode_uuid, decode_uuid)
_COLOR = (encode_color, decode_color)
_DATETIME = (encode_datetime, decode_datetime)

PROJECT_TRANSFORMS: Transforms = {
    "id": _ID,
    "color": _COLOR,
    "sourcePath": (encode_path, decode_path),
    "lastModified": _DATETIME,
}

TASK_TRANSFORMS: Transforms = {
    "id": _ID,
    "projectId": (_encode_optional_uuid, _decode_optional_uuid),
    "assigneeColor": _COLOR,
    "priority": (_enum_value, _enum_decoder(Priority)),
    "status": (_enum_value, _enum_decoder(TaskStatus)),
}

SPRINT_TRANSFORMS: Transforms = {
    "id": _ID,
    "projectId": _ID,
    "startDate": _DATETIME,
    "endDate": _DATETIME,
}

VELOCITY_TRANSFORMS: Transforms = {"id": _ID}
ACTIVITY_TRANSFORMS: Transforms = {"id": _ID}
TEAM_MEMBER_TRANSFORMS: Transforms = {"id": _ID, "color": _COLOR}


def _encode_model(model: BaseModel, transforms: Transforms) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        if name in transforms:
            encoded[name] = transforms[name][0](value)
        elif isinstance(value, list):
            encoded[name] = list(value)
        else:
            encoded[name] = value
    return encoded


def _decode_fields(data: Any, transforms: Transforms, kind: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected {kind} object, got {type(data).__name__}")
    fields = dict(data)
    for name, (_, decoder) in transforms.items():
        if name in fields and fields[name] is not None:
            fields[name] = decoder(fields[name])
    return fields


def _decode_model(model_type: Type[M], data: Any, transforms: Transforms) -> M:
    fields = _decode_fields(data, transforms, model_type.__name__)
    try:
        return model_type.model_validate(fields)
    except ValidationError as exc:
        raise DecodeError(f"Invalid {model_type.__name__}: {exc}") from exc


def encode_project(project: Project) -> dict[str, Any]:
    return _encode_model(project, PROJECT_TRANSFORMS)


def decode_project(data: Any) -> Project:
    return _decode_model(Project, data, PROJECT_TRANSFORMS)


def decode_project_patch(data: Any) -> ProjectPatch:
    """Decode a project.json document as a sparse patch.

    Only keys present in ``data`` end up in the patch's ``model_fields_set``;
    derived fields and unknown keys are ignored. ``id`` is required.
    """
    if isinstance(data, dict) and "id" not in data:
        raise DecodeError("project.json is missing the required 'id' field")
    return _decode_model(ProjectPatch, data, PROJECT_TRANSFORMS)


def encode_task(task: TaskItem) -> dict[str, Any]:
    return _encode_model(task, TASK_TRANSFORMS)


def decode_task(data: Any) -> TaskItem:
    return _decode_model(TaskItem, data, TASK_TRANSFORMS)


def encode_sprint(sprint: Sprint) -> dict[str, Any]:
    return _encode_model(sprint, SPRINT_TRANSFORMS)


def decode_sprint(data: Any) -> Sprint:
    return _decode_model(Sprint, data, SPRINT_TRANSFORMS)


def encode_velocity_point(point: VelocityPoint) -> dict[str, Any]:
    return _encode_model(point, VELOCITY_TRANSFORMS)


def decode_velocity_point(data: Any) -> VelocityPoint:
    return _decode_model(VelocityPoint, data, VELOCITY_TRANSFORMS)


def encode_activity(activity: ActivityItem) -> dict[str, Any]:
    return _encode_model(activity, ACTIVITY_TRANSFORMS)


def decode_activity(data: Any) -> ActivityItem:
    return _decode_model(ActivityItem, data, ACTIVITY_TRANSFORMS)


def encode_team_member(member: TeamMember) -> dict[str, Any]:
    return _encode_model(member, TEAM_MEMBER_TRANSFORMS)


def decode_team_member(data: Any) -> TeamMember:
    return _decode_model(TeamMember, data, TEAM_MEMBER_TRANSFORMS)


# ── Snapshot ───────────────────────────────────────────────────────

def _decode_list(data: dict, key: str, decoder: Callable[[Any], Any]) -> list:
    items = data.get(key)
    if items is None:
        return []
    if not isinstance(items, list):
        raise DecodeError(f"Expected '{key}' to be a list")
    return [decoder(item) for item in items]


def _decode_number_list(data: dict, key: str) -> list[float]:
    items = data.get(key)
    if items is None:
        return []
    if not isinstance(items, list) or not all(
        isinstance(item, (int, float)) and not isinstance(item, bool) for item in items
    ):
        raise DecodeError(f"Expected '{key}' to be a list of numbers")
    return [float(item) for item in items]


def encode_snapshot(snapshot: Snapshot) -> dict[str, Any]:
    return {
        "timestamp": encode_datetime(snapshot.timestamp),
        "projects": [encode_project(p) for p in snapshot.projects],
        "tasks": [encode_task(t) for t in snapshot.tasks],
        "sprints": [encode_sprint(s) for s in snapshot.sprints],
        "velocityData": [encode_velocity_point(v) for v in snapshot.velocityData],
        "activities": [encode_activity(a) for a in snapshot.activities],
        "teamMembers": [encode_team_member(m) for m in snapshot.teamMembers],
        "burndownIdeal": list(snapshot.burndownIdeal),
        "burndownActual": list(snapshot.burndownActual),
    }


def decode_snapshot(data: Any) -> Snapshot:
    if not isinstance(data, dict):
        raise DecodeError(f"Expected snapshot object, got {type(data).__name__}")
    if "timestamp" not in data:
        raise DecodeError("Snapshot is missing 'timestamp'")
    task_key = "tasks" if "tasks" in data else "kanbanTasks"
    return Snapshot(
        timestamp=decode_datetime(data["timestamp"]),
        projects=_decode_list(data, "projects", decode_project),
        tasks=_decode_list(data, task_key, decode_task),
        sprints=_decode_list(data, "sprints", decode_sprint),
        velocityData=_decode_list(data, "velocityData", decode_velocity_point),
        activities=_decode_list(data, "activities", decode_activity),
        teamMembers=_decode_list(data, "teamMembers", decode_team_member),
        burndownIdeal=_decode_number_list(data, "burndownIdeal"),
        burndownActual=_decode_number_list(data, "burndownActual"),
    )


# ── Documents ──────────────────────────────────────────────────────

def dumps(payload: Any) -> bytes:
    text = json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False)
    return (text + "\n").encode("utf-8")


def loads(raw: bytes | str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DecodeError(f"Malformed JSON: {exc}") from exc


def dumps_snapshot(snapshot: Snapshot) -> bytes:
    return dumps(encode_snapshot(snapshot))


def loads_snapshot(raw: bytes | str) -> Snapshot:
    return decode_snapshot(loads(raw))


def dumps_tasks(tasks: Iterable[TaskItem]) -> bytes:
    return dumps([encode_task(task) for task in tasks])


def loads_tasks(raw: bytes | str) -> list[TaskItem]:
    data = loads(raw)
    if not isinstance(data, list):
        raise DecodeError(f"Expected task array, got {type(data).__name__}")
    return [decode_task(item) for item in data]


def dumps_project(project: Project) -> bytes:
    return dumps(encode_project(project))


def loads_project_patch(raw: bytes | str) -> ProjectPatch:
    return decode_project_patch(loads(raw))
