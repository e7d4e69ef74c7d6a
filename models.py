"""
Records exchanged between the game server and the player client.

The JSON documents use camelCase keys (mapUrl, correctAnswer, highscoreList);
from_dict() validates a decoded document and raises TypeError/ValueError when
it doesn't match.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from vec2 import Vec2

Number = Union[int, float]


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise TypeError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _require_str(data: Mapping[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise TypeError(f"{what}.{key} must be a string")
    return value


def _require_number(data: Mapping[str, Any], key: str, what: str) -> Number:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{what}.{key} must be a number")
    if not math.isfinite(value):
        raise ValueError(f"{what}.{key} must be finite")
    return value


def _require_list(data: Mapping[str, Any], key: str, what: str, default=None) -> list:
    value = data.get(key, default)
    if not isinstance(value, list):
        raise TypeError(f"{what}.{key} must be a list")
    return value


# eq=False keeps identity semantics: two rounds with the same image and
# answer are still two rounds.
@dataclass(frozen=True, eq=False)
class Screenshot:
    url: str
    correct_answer: Vec2
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "Screenshot":
        data = _require_mapping(data, "screenshot")
        answer = data.get("correctAnswer")
        if answer is None:
            raise ValueError("screenshot.correctAnswer is missing")
        sid = data.get("id")
        return cls(
            url=_require_str(data, "url", "screenshot"),
            correct_answer=Vec2.from_dict(answer),
            id=str(sid) if sid is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"url": self.url, "correctAnswer": self.correct_answer.to_dict()}
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass(frozen=True)
class User:
    username: str

    @classmethod
    def from_dict(cls, data: Any) -> "User":
        data = _require_mapping(data, "user")
        return cls(username=_require_str(data, "username", "user"))

    def to_dict(self) -> Dict[str, Any]:
        return {"username": self.username}


@dataclass(frozen=True)
class Highscore:
    user: Optional[User]
    score: Number
    time: Number

    @classmethod
    def from_dict(cls, data: Any) -> "Highscore":
        data = _require_mapping(data, "highscore")
        user = data.get("user")
        return cls(
            user=User.from_dict(user) if user is not None else None,
            score=_require_number(data, "score", "highscore"),
            time=_require_number(data, "time", "highscore"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user": self.user.to_dict() if self.user else None,
            "score": self.score,
            "time": self.time,
        }

    @property
    def username(self) -> str:
        return self.user.username if self.user else ""


@dataclass(frozen=True)
class GameData:
    map_url: str
    screenshots: Tuple[Screenshot, ...] = ()
    highscore_list: Tuple[Highscore, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "GameData":
        data = _require_mapping(data, "game data")
        screenshots = _require_list(data, "screenshots", "game data")
        highscores = _require_list(data, "highscoreList", "game data", default=[])
        return cls(
            map_url=_require_str(data, "mapUrl", "game data"),
            screenshots=tuple(Screenshot.from_dict(s) for s in screenshots),
            highscore_list=parse_highscore_list(highscores),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mapUrl": self.map_url,
            "screenshots": [s.to_dict() for s in self.screenshots],
            "highscoreList": [h.to_dict() for h in self.highscore_list],
        }


def parse_highscore_list(data: Any) -> Tuple[Highscore, ...]:
    if not isinstance(data, list):
        raise TypeError("highscore list must be a list")
    return tuple(Highscore.from_dict(h) for h in data)


def rank_highscores(highscores: Iterable[Highscore]) -> List[Highscore]:
    """Best score first; equal scores are ordered by the faster time."""
    return sorted(highscores, key=lambda h: (-h.score, h.time))
