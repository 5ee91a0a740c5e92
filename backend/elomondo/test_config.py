from __future__ import annotations

import pytest

from elomondo.config import RatingConfig


def test_defaults() -> None:
    config = RatingConfig()
    assert (config.base_elo, config.k_factor, config.decay_half_life_days) == (1000, 32, 30)
    assert config.k_for(0) == 32


def test_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELOMONDO_K_FACTOR", "24")
    monkeypatch.setenv("ELOMONDO_PROVISIONAL_K_FACTOR", "48")
    monkeypatch.setenv("ELOMONDO_PROVISIONAL_THRESHOLD", "5")
    config = RatingConfig.from_env()
    assert config.k_factor == 24
    assert config.k_for(4) == 48
    assert config.k_for(5) == 24


def test_malformed_env_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELOMONDO_DECAY_HALF_LIFE_DAYS", "a month")
    monkeypatch.setenv("ELOMONDO_K_FACTOR", "-3")
    config = RatingConfig.from_env()
    assert config.decay_half_life_days == 30
    assert config.k_factor == 32


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValueError):
        RatingConfig(k_factor=0)
    with pytest.raises(ValueError):
        RatingConfig(decay_half_life_days=-1)


@pytest.mark.parametrize("env_var", ["ELOMONDO_K_FACTOR", "ELOMONDO_DECAY_HALF_LIFE_DAYS"])
def test_zero_env_falls_back_to_default(monkeypatch: pytest.MonkeyPatch, env_var: str) -> None:
    monkeypatch.setenv(env_var, "0")
    config = RatingConfig.from_env()
    assert config.k_factor == 32
    assert config.decay_half_life_days == 30


def test_zero_is_allowed_for_grace_and_threshold(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ELOMONDO_DECAY_GRACE_DAYS", "0")
    monkeypatch.setenv("ELOMONDO_PROVISIONAL_THRESHOLD", "0")
    config = RatingConfig.from_env()
    assert config.decay_grace_days == 0
    assert config.provisional_threshold == 0
