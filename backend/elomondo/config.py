from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

BASE_ELO = 1000
K_FACTOR = 32
DECAY_HALF_LIFE_DAYS = 30
# Players below this many matches are flagged provisional on the leaderboard.
PROVISIONAL_THRESHOLD = 10


@dataclass(frozen=True)
class RatingConfig:
    base_elo: float = BASE_ELO
    k_factor: float = K_FACTOR
    decay_half_life_days: float = DECAY_HALF_LIFE_DAYS
    provisional_threshold: int = PROVISIONAL_THRESHOLD
    # When set, players with fewer than provisional_threshold processed matches use this K.
    provisional_k_factor: float | None = None
    decay_grace_days: float = 0

    def __post_init__(self) -> None:
        if self.k_factor <= 0:
            raise ValueError("k_factor must be > 0")
        if self.decay_half_life_days <= 0:
            raise ValueError("decay_half_life_days must be > 0")
        if self.provisional_threshold < 0:
            raise ValueError("provisional_threshold must be >= 0")
        if self.provisional_k_factor is not None and self.provisional_k_factor <= 0:
            raise ValueError("provisional_k_factor must be > 0")
        if self.decay_grace_days < 0:
            raise ValueError("decay_grace_days must be >= 0")

    def k_for(self, matches_played: int) -> float:
        if self.provisional_k_factor is not None and matches_played < self.provisional_threshold:
            return self.provisional_k_factor
        return self.k_factor

    @classmethod
    def from_env(cls) -> "RatingConfig":
        provisional_k = env_float("ELOMONDO_PROVISIONAL_K_FACTOR", None, positive=True)
        return cls(
            base_elo=env_float("ELOMONDO_BASE_ELO", BASE_ELO),
            k_factor=env_float("ELOMONDO_K_FACTOR", K_FACTOR, positive=True),
            decay_half_life_days=env_float(
                "ELOMONDO_DECAY_HALF_LIFE_DAYS", DECAY_HALF_LIFE_DAYS, positive=True
            ),
            provisional_threshold=int(
                env_float("ELOMONDO_PROVISIONAL_THRESHOLD", PROVISIONAL_THRESHOLD, non_negative=True)
            ),
            provisional_k_factor=provisional_k,
            decay_grace_days=env_float("ELOMONDO_DECAY_GRACE_DAYS", 0, non_negative=True),
        )


def env_float(
    env_var: str,
    default: float | None,
    *,
    positive: bool = False,
    non_negative: bool = False,
) -> float | None:
    raw_value = os.getenv(env_var)
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        value = float(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid number (got %r); defaulting to %r",
            env_var,
            raw_value,
            default,
        )
        return default

    if positive and value <= 0:
        logger.warning("%s must be positive (got %r); defaulting to %r", env_var, raw_value, default)
        return default
    if non_negative and value < 0:
        logger.warning("%s cannot be negative (got %r); defaulting to %r", env_var, raw_value, default)
        return default

    return value
