"""Model for a Home Dashboard Event."""

from dataclasses import dataclass, field
from typing import Any

from mashumaro import DataClassDictMixin

from homedash.common.helpers.json import get_serializable_value
from homedash.common.models.enums import EventType


@dataclass
class HomeDashEvent(DataClassDictMixin):
    """Representation of an Event emitted in/by the Home Dashboard."""

    event: EventType
    object_id: str | None = None  # device_id, group_id or companion url
    data: Any = field(
        default=None,
        metadata={
            "serialize": lambda v: get_serializable_value(v)  # pylint: disable=unnecessary-lambda
        },
    )
