"""
Player-side game engine.

A Game is driven only through its transition methods:

    game = Game("http://127.0.0.1:5000/game/<id>/data")
    game.fetch_game_data()
    while not game.game_over:
        image_url = game.next_round()
        game.select_location(0.42, 0.17)
        round_score = game.submit_guess()
    game.post_highscore(game.total_score, elapsed_seconds)
"""

import enum
import logging
import math
import random
from typing import Optional, Set, Tuple
from urllib.parse import urljoin

import requests

from models import GameData, Highscore, Screenshot, parse_highscore_list
from vec2 import Vec2

logger = logging.getLogger(__name__)

MAX_ROUNDS = 5
MAXIMUM_ROUND_SCORE = 1000
DECAY_RATE = 10.0
SCORE_BOOST = 1.1
HTTP_TIMEOUT = 10.0


class GameError(Exception):
    pass


class InvalidStateError(GameError):
    pass


class NoMoreRoundsError(GameError):
    pass


class FetchError(GameError):
    pass


class GameState(enum.Enum):
    NOT_STARTED = "not_started"
    WAITING_FOR_GUESS = "waiting_for_guess"
    WAITING_FOR_NEXT_ROUND = "waiting_for_next_round"
    GAME_OVER = "game_over"


def score_from_distance(d: float) -> int:
    """
    Exponential decay on normalized map distance. Anything within
    ln(1.1)/10 of the answer gets the full 1000 points.
    """
    factor = min(math.exp(-DECAY_RATE * d) * SCORE_BOOST, 1.0)
    # half-up rounding; round() would go to even on exact halves
    return int(math.floor(MAXIMUM_ROUND_SCORE * factor + 0.5))


class Game:
    def __init__(self, url: str, session: Optional[requests.Session] = None,
                 max_rounds: int = MAX_ROUNDS, rng: Optional[random.Random] = None,
                 timeout: float = HTTP_TIMEOUT):
        if not isinstance(url, str):
            raise TypeError("url must be a string")
        if not url.strip():
            raise ValueError("url must not be empty")
        if isinstance(max_rounds, bool) or not isinstance(max_rounds, int) or max_rounds < 1:
            raise ValueError("max_rounds must be a positive integer")

        self.url = url
        self.session = session if session is not None else requests.Session()
        self.max_rounds = max_rounds
        self.timeout = timeout
        self._rng = rng or random.Random()

        self._state = GameState.NOT_STARTED
        self._game_data: Optional[GameData] = None
        self._played: Set[Screenshot] = set()
        self._current: Optional[Screenshot] = None
        self._guess: Optional[Vec2] = None
        self._total_score = 0
        self._rounds_played = 0

    # -----------------------------
    # Read-only state
    # -----------------------------
    @property
    def state(self) -> GameState:
        return self._state

    @property
    def game_data(self) -> Optional[GameData]:
        return self._game_data

    @property
    def map_url(self) -> Optional[str]:
        if self._game_data is None:
            return None
        return self._resolve(self._game_data.map_url)

    @property
    def current_screenshot(self) -> Optional[Screenshot]:
        return self._current

    @property
    def guess_position(self) -> Optional[Vec2]:
        return self._guess

    @property
    def total_score(self) -> int:
        return self._total_score

    @property
    def rounds_played(self) -> int:
        return self._rounds_played

    @property
    def game_over(self) -> bool:
        return self._state is GameState.GAME_OVER

    @property
    def highscore_list(self) -> Tuple[Highscore, ...]:
        if self._game_data is None:
            return ()
        return self._game_data.highscore_list

    @property
    def highscore_url(self) -> str:
        return urljoin(self.url, "highscore")

    def remaining_screenshots(self) -> Tuple[Screenshot, ...]:
        if self._game_data is None:
            return ()
        return tuple(s for s in self._game_data.screenshots if s not in self._played)

    # -----------------------------
    # Transitions
    # -----------------------------
    def fetch_game_data(self) -> GameData:
        self._require_state(GameState.NOT_STARTED, "fetch game data")

        try:
            response = self.session.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"failed to fetch game data: {e}") from e
        if not response.ok:
            raise FetchError(f"failed to fetch game data: HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise FetchError("game data is not valid JSON") from e
        if not body:
            raise FetchError("no game data")

        try:
            data = GameData.from_dict(body)
        except (TypeError, ValueError) as e:
            raise FetchError(f"malformed game data: {e}") from e

        self._game_data = data
        self._state = GameState.WAITING_FOR_NEXT_ROUND
        logger.debug("Loaded %d screenshot(s) from %s", len(data.screenshots), self.url)
        return data

    def select_location(self, x: float, y: float) -> None:
        self._require_state(GameState.WAITING_FOR_GUESS, "select a location")
        self._guess = Vec2(x, y)

    def next_round(self) -> str:
        # An unanswered round is scored before moving on, as if its timer ran out.
        if self._state is GameState.WAITING_FOR_GUESS:
            self.submit_guess()

        remaining = self.remaining_screenshots()
        if self._state is GameState.GAME_OVER and not remaining:
            raise NoMoreRoundsError("no more screenshots")
        self._require_state(GameState.WAITING_FOR_NEXT_ROUND, "start the next round")
        if not remaining:
            raise NoMoreRoundsError("no more screenshots")

        screenshot = self._rng.choice(remaining)
        self._played.add(screenshot)
        self._current = screenshot
        self._guess = None
        self._state = GameState.WAITING_FOR_GUESS
        return self._resolve(screenshot.url)

    def calculate_score(self) -> int:
        if self._current is None:
            raise InvalidStateError("no current screenshot to score against")
        if self._guess is None:
            return 0

        return score_from_distance(self._guess.distance_to(self._current.correct_answer))

    def submit_guess(self) -> int:
        self._require_state(GameState.WAITING_FOR_GUESS, "submit a guess")

        score = self.calculate_score()
        self._total_score += score
        self._rounds_played += 1

        if not self.remaining_screenshots() or self._rounds_played >= self.max_rounds:
            self._state = GameState.GAME_OVER
        else:
            self._state = GameState.WAITING_FOR_NEXT_ROUND

        logger.debug("Round %d scored %d (total %d)", self._rounds_played, score, self._total_score)
        return score

    def post_highscore(self, score: float, time: float) -> Tuple[Highscore, ...]:
        if self._game_data is None:
            raise InvalidStateError("game data has not been fetched")

        try:
            response = self.session.post(
                self.highscore_url, json={"score": score, "time": time}, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise FetchError(f"failed to post highscore: {e}") from e
        if not response.ok:
            raise FetchError(f"failed to post highscore: HTTP {response.status_code}")

        try:
            highscores = parse_highscore_list(response.json())
        except (TypeError, ValueError) as e:
            raise FetchError(f"malformed highscore list: {e}") from e

        self._game_data = GameData(
            map_url=self._game_data.map_url,
            screenshots=self._game_data.screenshots,
            highscore_list=highscores,
        )
        return highscores

    # -----------------------------
    # Helpers
    # -----------------------------
    def _require_state(self, expected: GameState, action: str):
        if self._state is not expected:
            raise InvalidStateError(
                f"cannot {action} in state {self._state.name} (expected {expected.name})"
            )

    def _resolve(self, url: str) -> str:
        return urljoin(self.url, url)
