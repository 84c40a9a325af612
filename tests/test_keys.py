"""Tests for scope resolution and cache key construction."""

import pytest

from ratecounter.config import PolicyConfig
from ratecounter.keys import EMPTY_UUID, get_local_key, get_service_and_route_ids


class TestServiceAndRouteIds:
    """Test scope resolution."""

    def test_unscoped_config_uses_sentinel(self):
        """Test that a config without scope falls back to the all-zero id."""
        assert get_service_and_route_ids(PolicyConfig()) == (EMPTY_UUID, EMPTY_UUID)

    def test_none_config_uses_sentinel(self):
        """Test that no config at all is treated as unscoped."""
        assert get_service_and_route_ids(None) == (EMPTY_UUID, EMPTY_UUID)

    def test_blank_values_use_sentinel(self):
        """Test that blank identifiers are treated as missing."""
        conf = PolicyConfig(service_id="  ", route_id="")
        assert get_service_and_route_ids(conf) == (EMPTY_UUID, EMPTY_UUID)

    def test_scoped_config(self):
        """Test that concrete identifiers are kept."""
        conf = PolicyConfig(service_id="svc", route_id="rt")
        assert get_service_and_route_ids(conf) == ("svc", "rt")

    def test_dict_config(self):
        """Test that plain dict configs are accepted."""
        assert get_service_and_route_ids({"service_id": "svc"}) == ("svc", EMPTY_UUID)


class TestLocalKey:
    """Test cache key construction."""

    def test_key_layout(self):
        """Test the key component order."""
        conf = PolicyConfig(service_id="svc", route_id="rt")
        key = get_local_key(conf, "client-A", "minute", 1699999980000)
        assert key == "ratelimit:rt:svc:client-A:1699999980000:minute"

    def test_unscoped_key_is_stable(self):
        """Test that unscoped keys always embed the same sentinel."""
        first = get_local_key(PolicyConfig(), "client-A", "hour", 1)
        second = get_local_key(None, "client-A", "hour", 1)
        assert first == second
        assert first == f"ratelimit:{EMPTY_UUID}:{EMPTY_UUID}:client-A:1:hour"

    def test_deterministic(self):
        """Test that identical inputs yield identical keys."""
        conf = PolicyConfig(service_id="svc", route_id="rt")
        keys = {get_local_key(conf, "id", "day", 42) for _ in range(10)}
        assert len(keys) == 1

    @pytest.mark.parametrize(
        "changed",
        [
            {"service_id": "other"},
            {"route_id": "other"},
            {"identifier": "other"},
            {"period": "hour"},
            {"period_date": 43},
        ],
    )
    def test_any_component_changes_key(self, changed):
        """Test that changing a single component changes the key."""
        base = {
            "service_id": "svc",
            "route_id": "rt",
            "identifier": "id",
            "period": "day",
            "period_date": 42,
        }
        other = {**base, **changed}

        def build(values):
            conf = PolicyConfig(service_id=values["service_id"], route_id=values["route_id"])
            return get_local_key(
                conf, values["identifier"], values["period"], values["period_date"]
            )

        assert build(base) != build(other)
