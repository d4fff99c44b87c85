"""Tests for settings and package definitions."""
from __future__ import annotations

import pytest

from huggnote.config import (
    MAX_SONGS_PER_ORDER,
    PACKAGES,
    Settings,
    VARIATIONS_PER_SONG,
    package_for_song_count,
)


def test_defaults():
    s = Settings(_env_file=None)
    assert s.app_name == "Huggnote"
    assert s.request_pacing_seconds == 5.0
    assert s.poll_interval_seconds == 15.0
    assert s.watch_timeout_seconds == 300.0
    assert s.max_prompt_chars == 250
    assert s.cors_origins == []


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("HUGGNOTE_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("HUGGNOTE_STRIPE_CURRENCY", "usd")
    s = Settings(_env_file=None)
    assert s.poll_interval_seconds == 2.5
    assert s.stripe_currency == "usd"


def test_limits():
    assert MAX_SONGS_PER_ORDER == 5
    assert VARIATIONS_PER_SONG == 3


@pytest.mark.parametrize("count,expected", [
    (1, "solo-serenade"),
    (2, "holiday-hamper"),
    (5, "holiday-hamper"),
])
def test_package_for_song_count(count, expected):
    package = package_for_song_count(count)
    assert package == expected
    assert PACKAGES[package]["min_songs"] <= count <= PACKAGES[package]["max_songs"]


def test_package_prices():
    assert PACKAGES["solo-serenade"]["unit_amount"] == 3700
    assert PACKAGES["holiday-hamper"]["unit_amount"] == 8700
