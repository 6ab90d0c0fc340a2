"""
Tests for the registry cache and full snapshot transformation.
"""

import pytest

from eureka_client.exceptions import ParseError
from eureka_client.registry import (
    RegistryCache,
    as_list,
    normalize_applications,
    transform_registry,
)
from eureka_client.types import Instance, InstanceStatus, parse_port


def snapshot(*apps):
    return {"applications": {"application": list(apps)}}


class TestWireHelpers:
    """Tests for wire-format normalization."""

    def test_as_list_wraps_single_object(self):
        """Should wrap a bare object and map None to an empty list."""
        assert as_list({"a": 1}) == [{"a": 1}]
        assert as_list([1, 2]) == [1, 2]
        assert as_list(None) == []

    def test_normalize_does_not_mutate_input(self, make_instance):
        """Should return normalized copies and leave the input alone."""
        app = {"name": "APP", "instance": make_instance()}
        apps = normalize_applications(app)
        assert isinstance(apps[0]["instance"], list)
        assert isinstance(app["instance"], dict)

    def test_normalize_rejects_non_dict_entries(self):
        """Should raise ParseError for malformed application entries."""
        with pytest.raises(ParseError):
            normalize_applications(["not-an-app"])
        with pytest.raises(ParseError):
            normalize_applications({"name": "APP", "instance": ["bad"]})

    @pytest.mark.parametrize("value,expected", [
        (8080, 8080),
        ("8080", 8080),
        ({"$": 8080, "@enabled": "true"}, 8080),
        ({"$": "9090"}, 9090),
        (None, None),
        ("abc", None),
    ])
    def test_parse_port(self, value, expected):
        """Should normalize plain and wrapped port values."""
        assert parse_port(value) == expected

    def test_instance_from_dict(self, make_instance):
        """Should read the wire record into an Instance."""
        data = make_instance(host="h1", port={"$": 81}, status="down", vip="a.com, b.com")
        instance = Instance.from_dict(data)
        assert instance.host_name == "h1"
        assert instance.port == 81
        assert instance.status is InstanceStatus.DOWN
        assert instance.vip_addresses == ["a.com", "b.com"]
        assert instance.raw is data

    def test_unknown_status_is_unknown(self, make_instance):
        """Should map unrecognized statuses to UNKNOWN."""
        instance = Instance.from_dict(make_instance(status="WEIRD"))
        assert instance.status is InstanceStatus.UNKNOWN
        assert not instance.is_up

    def test_identity_is_host_and_port(self, make_instance):
        """Should match on hostName and port only."""
        a = Instance.from_dict(make_instance(host="h", port=1, status="UP"))
        b = Instance.from_dict(make_instance(host="h", port=1, status="DOWN", vip="other"))
        c = Instance.from_dict(make_instance(host="h", port=2))
        assert a.matches(b)
        assert not a.matches(c)


class TestTransformRegistry:
    """Tests for transform_registry."""

    def test_indexes_by_app_and_vip(self, make_instance):
        """Should index every UP instance by app and by each VIP."""
        cache = transform_registry(snapshot(
            {"name": "ALPHA", "instance": [
                make_instance(host="a1", app="ALPHA", vip="alpha.com"),
                make_instance(host="a2", app="ALPHA", vip="alpha.com,shared.com"),
            ]},
            {"name": "beta", "instance": make_instance(host="b1", app="beta", vip="shared.com")},
        ))

        assert [i.host_name for i in cache.get_instances_by_app_id("alpha")] == ["a1", "a2"]
        assert [i.host_name for i in cache.get_instances_by_app_id("BETA")] == ["b1"]
        assert [i.host_name for i in cache.get_instances_by_vip_address("alpha.com")] == ["a1", "a2"]
        assert {i.host_name for i in cache.get_instances_by_vip_address("shared.com")} == {"a2", "b1"}
        assert len(cache) == 3

    @pytest.mark.parametrize("app_count", [0, 1, 3, 10])
    def test_app_count_matches_snapshot(self, make_instance, app_count):
        """Should produce one app key per named application."""
        apps = [
            {"name": f"app{n}", "instance": [make_instance(host=f"h{n}", app=f"app{n}", vip=f"v{n}")]}
            for n in range(app_count)
        ]
        cache = transform_registry(snapshot(*apps))
        assert len(cache.app) == app_count
        assert len(cache.vip) == app_count

    def test_filters_non_up_instances(self, make_instance):
        """Should drop non-UP instances but keep the app key."""
        cache = transform_registry(snapshot(
            {"name": "APP", "instance": [
                make_instance(host="down", status="DOWN"),
                make_instance(host="starting", status="STARTING"),
            ]},
        ))
        assert "APP" in cache.app
        assert cache.get_instances_by_app_id("APP") == []
        assert cache.get_instances_by_vip_address("vip.test.com") == []

    def test_keeps_all_statuses_without_filter(self, make_instance):
        """Should keep every instance when filtering is disabled."""
        cache = transform_registry(
            snapshot({"name": "APP", "instance": [
                make_instance(host="up"),
                make_instance(host="down", status="DOWN"),
            ]}),
            filter_up_instances=False,
        )
        assert len(cache.get_instances_by_app_id("APP")) == 2

    def test_single_app_object(self, make_instance):
        """Should accept a bare application object."""
        cache = transform_registry(
            {"applications": {"application": {"name": "APP", "instance": make_instance()}}}
        )
        assert len(cache.get_instances_by_app_id("APP")) == 1

    def test_absent_application_list(self):
        """Should build an empty cache when no applications are listed."""
        cache = transform_registry({"applications": {}})
        assert cache.app == {}
        assert cache.vip == {}

    def test_deduplicates_by_host_and_port(self, make_instance):
        """Should store a (hostName, port) pair once per slot."""
        cache = transform_registry(snapshot(
            {"name": "APP", "instance": [make_instance(host="h"), make_instance(host="h")]},
        ))
        assert len(cache.get_instances_by_app_id("APP")) == 1

    def test_rejects_missing_applications(self):
        """Should raise ParseError without an applications object."""
        with pytest.raises(ParseError):
            transform_registry({})
        with pytest.raises(ParseError):
            transform_registry("nope")

    def test_rejects_unnamed_app(self, make_instance):
        """Should raise ParseError for an application without a name."""
        with pytest.raises(ParseError):
            transform_registry(snapshot({"instance": make_instance()}))

    def test_returns_new_cache(self, make_instance):
        """Should build a fresh cache on every call."""
        data = snapshot({"name": "APP", "instance": make_instance()})
        assert transform_registry(data) is not transform_registry(data)


class TestRegistryCache:
    """Tests for RegistryCache queries."""

    def test_queries_return_copies(self, make_instance):
        """Should not expose the internal lists."""
        cache = RegistryCache()
        cache.insert(Instance.from_dict(make_instance()))
        cache.get_instances_by_app_id("app").clear()
        cache.get_instances_by_vip_address("vip.test.com").clear()
        assert len(cache.get_instances_by_app_id("APP")) == 1
        assert len(cache.get_instances_by_vip_address("vip.test.com")) == 1

    def test_unknown_keys_return_empty(self):
        """Should return empty lists for unknown keys."""
        cache = RegistryCache()
        assert cache.get_instances_by_app_id("missing") == []
        assert cache.get_instances_by_vip_address("missing") == []
