"""
Tests for environment-driven configuration, logging setup and the item catalog.
"""
import logging
from unittest.mock import patch

import pytest

import config
from catalog import DEFAULT_ITEMS, ItemCatalog, TrackedItem


class TestEnvHelpers:

    def test_int_env_default_when_unset(self, monkeypatch):
        monkeypatch.delenv("RECOMPUTE_BATCH_SIZE", raising=False)
        assert config._int_env("RECOMPUTE_BATCH_SIZE", 100) == 100

    def test_int_env_reads_value(self, monkeypatch):
        monkeypatch.setenv("RECOMPUTE_BATCH_SIZE", " 25 ")
        assert config._int_env("RECOMPUTE_BATCH_SIZE", 100) == 25

    def test_csv_env(self, monkeypatch):
        monkeypatch.setenv("RANK_TIME_RANGES", "7d, 30d,,90d")
        assert config._csv_env("RANK_TIME_RANGES", "7d") == ["7d", "30d", "90d"]

    def test_csv_env_default(self, monkeypatch):
        monkeypatch.setenv("RANK_TIME_RANGES", "  ")
        assert config._csv_env("RANK_TIME_RANGES", "7d,30d") == ["7d", "30d"]

    def test_configure_logging_uses_level(self):
        with patch("config.logging.basicConfig") as basic:
            config.configure_logging("DEBUG")
        assert basic.call_args.kwargs["level"] == logging.DEBUG


class TestItemCatalog:

    def test_default_names(self):
        catalog = ItemCatalog()
        assert catalog.name("poor-sleep") == "Poor sleep"
        assert catalog.name("unknown-id") == "unknown-id"

    def test_by_category(self):
        foods = ItemCatalog().by_category("food")
        assert {i.id for i in foods} >= {"dairy", "gluten"}
        assert all(i.category == "food" for i in foods)

    def test_defaults_are_not_custom(self):
        assert not any(item.is_custom for item in DEFAULT_ITEMS)

    def test_invalid_category_rejected(self):
        with pytest.raises(ValueError):
            TrackedItem(id="x", name="X", category="supplement")
