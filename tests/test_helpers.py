"""Tests for utility/helper functions."""

import pytest

from homedash.common.helpers.json import (
    get_serializable_value,
    json_dumps,
    json_loads,
    json_loads_as,
)
from homedash.common.models.companion import CompanionStatus
from homedash.common.models.device import Device
from homedash.common.models.enums import CompanionState, EventType
from homedash.common.models.errors import InvalidDataError
from homedash.common.models.event import HomeDashEvent
from tests.common import make_player


def test_json_dumps_models() -> None:
    """Test (nested) models are serialized through their to_dict."""
    device = Device.from_provider(make_player("D1", "Office"))
    data = json_loads(json_dumps({"devices": [device], "count": 1}))
    assert data["count"] == 1
    assert data["devices"][0]["device_id"] == "D1"
    assert data["devices"][0]["current_track"]["title"] == "Title"

    status = CompanionStatus(
        state=CompanionState.RUNNING,
        running=False,
        responding=True,
        external=True,
        url="http://localhost:5005",
    )
    assert json_loads(json_dumps(status))["state"] == "running"


def test_serializable_value() -> None:
    """Test conversion of values that can not be serialized as-is."""
    assert get_serializable_value({"D2", "D1"}) == ["D1", "D2"]
    assert get_serializable_value(("a", {3, 1})) == ["a", [1, 3]]
    event = HomeDashEvent(EventType.TOPOLOGY_UPDATED, data={"devices": 2})
    assert event.to_dict() == {
        "event": "topology_updated",
        "object_id": None,
        "data": {"devices": 2},
    }


def test_json_dumps_indent() -> None:
    """Test the (indented) output used for the settings file."""
    assert json_dumps({"a": 1}, indent=True) == '{\n  "a": 1\n}'


def test_json_loads_as() -> None:
    """Test loading json with a verified top-level type."""
    assert json_loads_as('[{"uuid": "Z1"}]', list, "zones") == [{"uuid": "Z1"}]
    with pytest.raises(InvalidDataError, match="invalid json for zones"):
        json_loads_as("[{broken", list, "zones")
    with pytest.raises(InvalidDataError, match="expected a list for zones, got dict"):
        json_loads_as('{"uuid": "Z1"}', list, "zones")
