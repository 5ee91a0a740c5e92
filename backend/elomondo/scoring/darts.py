from __future__ import annotations

from dataclasses import dataclass

from elomondo.errors import InvalidThrowError

BULL = 25
SEGMENTS: tuple[int, ...] = (0, *range(1, 21), BULL)


@dataclass(frozen=True)
class DartThrow:
    """
    A single dart as entered on the scoring pad.

    - segment: 1-20, 25 for the bull, 0 for a miss (50 is accepted as inner bull
      and stored as segment=25, multiplier=2)
    - multiplier: 1 (single), 2 (double), 3 (triple); bulls are 1 or 2, a miss is 1
    """

    segment: int
    multiplier: int = 1

    def __post_init__(self) -> None:
        if self.segment == 50:
            if self.multiplier != 1:
                raise InvalidThrowError("inner bull (50) cannot take a multiplier")
            object.__setattr__(self, "segment", BULL)
            object.__setattr__(self, "multiplier", 2)
            return

        if self.multiplier not in (1, 2, 3):
            raise InvalidThrowError("multiplier must be 1, 2, or 3")
        if self.segment not in SEGMENTS:
            raise InvalidThrowError("segment must be 1-20, 25 (bull), 50 (inner bull), or 0 (miss)")
        if self.segment == 0 and self.multiplier != 1:
            raise InvalidThrowError("a miss has no multiplier")
        if self.segment == BULL and self.multiplier == 3:
            raise InvalidThrowError("bull cannot be a triple")

    @property
    def score(self) -> int:
        return self.segment * self.multiplier

    @property
    def is_double(self) -> bool:
        return self.multiplier == 2

    @property
    def is_miss(self) -> bool:
        return self.segment == 0

    @property
    def label(self) -> str:
        if self.is_miss:
            return "MISS"
        if self.segment == BULL:
            return "BULL" if self.multiplier == 2 else "25"
        prefix = {1: "", 2: "D", 3: "T"}[self.multiplier]
        return f"{prefix}{self.segment}"

    @classmethod
    def miss(cls) -> "DartThrow":
        return cls(0, 1)

    @classmethod
    def from_label(cls, label: str) -> "DartThrow":
        """
        Parse a pad label: "T20", "D16", "S5" or "5", "25"/"SBULL" (outer bull),
        "BULL"/"DBULL"/"D25"/"50" (inner bull), "MISS"/"0".
        """
        text = (label or "").strip().upper()
        if text in ("MISS", "M", "0"):
            return cls.miss()
        if text in ("BULL", "DBULL", "D25", "50"):
            return cls(BULL, 2)
        if text in ("SBULL", "S25", "25"):
            return cls(BULL, 1)

        multiplier = 1
        if text[:1] in ("S", "D", "T"):
            multiplier = {"S": 1, "D": 2, "T": 3}[text[0]]
            text = text[1:]
        if not text.isdigit():
            raise InvalidThrowError(f"unrecognised dart label {label!r}")
        return cls(int(text), multiplier)

    def __str__(self) -> str:
        return self.label
