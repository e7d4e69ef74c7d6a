import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping


def _check_component(name: str, value: Any) -> float:
    # bool is an int subclass, but True/False is never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{name} must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise TypeError(f"{name} must be finite, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class Vec2:
    """
    A point in normalized map-image space.

    Both components are required and must be finite numbers. Instances are
    frozen; build a new one instead of assigning to x/y.
    """
    x: float
    y: float

    def __post_init__(self):
        object.__setattr__(self, "x", _check_component("x", self.x))
        object.__setattr__(self, "y", _check_component("y", self.y))

    def distance_to(self, other: "Vec2") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Vec2":
        if not isinstance(data, Mapping):
            raise TypeError("coordinate must be an object with x and y")
        return cls(data.get("x"), data.get("y"))
