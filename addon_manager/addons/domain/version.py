from __future__ import annotations

from functools import total_ordering

from pydantic import BaseModel, ConfigDict, Field


@total_ordering
class VersionInfo(BaseModel):
    """
    Semantic version reported by the loader (or by an add-on it enumerates).

    Renders as "major.minor.patch"; the name only breaks ties when ordering.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    major: int = Field(default=0, ge=0)
    minor: int = Field(default=0, ge=0)
    patch: int = Field(default=0, ge=0)

    @classmethod
    def parse(cls, text: str, name: str = "") -> "VersionInfo":
        parts = text.strip().lstrip("vV").split(".")
        if not parts or len(parts) > 3 or not all(p.isdigit() for p in parts):
            raise ValueError(f"Not a semantic version: {text!r}")
        nums = [int(p) for p in parts] + [0] * (3 - len(parts))
        return cls(name=name, major=nums[0], minor=nums[1], patch=nums[2])

    def _key(self) -> tuple[int, int, int, str]:
        return (self.major, self.minor, self.patch, self.name)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionInfo):
            return NotImplemented
        return self._key() < other._key()

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"
