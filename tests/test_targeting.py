"""
Tests for slotflow targeting helpers.
"""
import random
from unittest.mock import MagicMock

import pytest

from slotflow.ads import (
    ab_test_value,
    add_infinite_slot,
    extract_top_private_domain,
    remove_child_id,
    resolve_ad_unit_path,
)
from slotflow.config import StaticConfig
from slotflow.dom import Window
from slotflow.errors import ConfigurationError


class TestAdUnitPath:
    """Tests for ad unit path helpers."""

    def test_resolve_variables(self):
        path = resolve_ad_unit_path("/1234/{domain}/{device}/top", {"domain": "example.com", "device": "mobile"})

        assert path == "/1234/example.com/mobile/top"

    def test_path_without_variables_unchanged(self):
        assert resolve_ad_unit_path("/1234/top", {}) == "/1234/top"

    def test_undefined_variable_raises(self):
        with pytest.raises(ConfigurationError, match="device"):
            resolve_ad_unit_path("/1234/{device}/top", {})

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/1234,5678/Travel", "/1234/Travel"),
            ("/1234,5678/Travel/Berlin", "/1234/Travel/Berlin"),
            ("/1234/Travel", "/1234/Travel"),
        ],
    )
    def test_remove_child_id(self, path, expected):
        assert remove_child_id(path) == expected


class TestTopPrivateDomain:
    """Tests for extract_top_private_domain()."""

    @pytest.mark.parametrize(
        "hostname,expected",
        [
            ("www.example.com", "example.com"),
            ("example.com", "example.com"),
            ("a.b.example.de", "example.de"),
            ("www.example.co.uk", "example.co.uk"),
            ("shop.example.com.br", "example.com.br"),
            ("www.example.com.mx", "example.com.mx"),
            ("news.example.com.au", "example.com.au"),
            ("localhost", "localhost"),
        ],
    )
    def test_hostnames(self, hostname, expected):
        assert extract_top_private_domain(hostname) == expected

    def test_empty_hostname(self):
        assert extract_top_private_domain("") is None
        assert extract_top_private_domain(None) is None


class TestAbTest:
    """Tests for the ABtest key-value."""

    def test_query_parameter_wins(self):
        assert ab_test_value(Window("https://www.example.com/?ABtest=42")) == "42"

    def test_random_value_in_range(self):
        rng = random.Random(7)
        values = {int(ab_test_value(Window("https://www.example.com/"), rng)) for _ in range(200)}

        assert min(values) >= 1
        assert max(values) <= 100


class TestInfiniteSlots:
    """Tests for add_infinite_slot()."""

    @pytest.fixture
    def config(self):
        return StaticConfig.model_validate(
            {
                "slots": [
                    {"domId": "top", "adUnitPath": "/1/top"},
                    {
                        "domId": "infinite",
                        "adUnitPath": "/1/infinite",
                        "behaviour": {"loaded": "infinite", "selector": ".infinite"},
                    },
                ]
            }
        )

    def test_clone(self, config):
        updated = add_infinite_slot(config, "infinite", "infinite-1")

        clone = updated.slot_by_dom_id("infinite-1")
        assert clone is not None
        assert clone.ad_unit_path == "/1/infinite"
        assert clone.behaviour.loaded == "infinite"
        assert config.slot_by_dom_id("infinite-1") is None

    def test_unknown_configured_slot_is_skipped(self, config):
        assert add_infinite_slot(config, "missing", "infinite-1") is config

    def test_non_infinite_slot_is_skipped(self, config):
        assert add_infinite_slot(config, "top", "infinite-1") is config

    def test_existing_dom_id_is_not_duplicated(self, config):
        once = add_infinite_slot(config, "infinite", "infinite-1")

        assert add_infinite_slot(once, "infinite", "infinite-1") is once

    def test_skipped_slot_is_logged_to_tag_logger(self, config):
        logger = MagicMock()

        add_infinite_slot(config, "missing", "infinite-1", logger)

        logger.warn.assert_called_once()
        assert "missing" in logger.warn.call_args.args[1]
