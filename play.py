"""
Terminal player for GeoCreator games.

Usage:
    python play.py http://127.0.0.1:5000/game/<id>/data --username roger

Each round prints the screenshot URL; answer with the normalized map
position "x y" (0..1 from the top-left corner). An empty line skips the
round. Guesses typed after the round timer ran out are discarded.
"""

import argparse
import getpass
import logging
import math
import sys
import time
from typing import Callable, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests

from game import MAX_ROUNDS, Game, GameError
from models import rank_highscores

logger = logging.getLogger("play")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
ROUND_TIME = 60.0  # seconds


def parse_guess(text: str) -> Optional[Tuple[float, float]]:
    text = text.strip()
    if not text:
        return None
    parts = text.replace(",", " ").split()
    if len(parts) != 2:
        raise ValueError("enter two numbers: x y")
    x, y = float(parts[0]), float(parts[1])
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError("coordinates must be finite numbers")
    return x, y


def login(session: requests.Session, game_url: str, username: str, password: str) -> bool:
    """Logs in through the server's form; a redirect back to /login means it failed."""
    login_url = urljoin(game_url, "/login")
    try:
        response = session.post(login_url, data={"username": username, "password": password},
                                allow_redirects=False, timeout=10)
    except requests.RequestException as e:
        logger.error("Login request failed: %s", e)
        return False
    location = urlparse(response.headers.get("Location", "")).path
    return response.is_redirect and location != "/login"


def play_round(game: Game, round_time: float, input_fn: Callable[[str], str],
               clock: Callable[[], float]) -> Tuple[int, float]:
    image_url = game.next_round()
    print(f"\nRound {game.rounds_played + 1}: {image_url}")

    start = clock()
    while True:
        try:
            guess = parse_guess(input_fn("Your guess (x y): "))
            break
        except ValueError as e:
            print(f"  {e}")

    elapsed = clock() - start
    if elapsed > round_time:
        print("  Time's up! Your guess came too late.")
        elapsed = round_time
    elif guess is not None:
        game.select_location(*guess)
    return game.submit_guess(), elapsed


def run(args: argparse.Namespace, input_fn: Callable[[str], str] = input,
        clock: Callable[[], float] = time.monotonic,
        session: Optional[requests.Session] = None) -> int:
    session = session or requests.Session()
    game = Game(args.url, session=session, max_rounds=args.rounds)

    try:
        game.fetch_game_data()
    except GameError as e:
        logger.error("Could not load the game: %s", e)
        return 1

    if not game.remaining_screenshots():
        print("This game has no screenshots to play.")
        return 1

    print(f"Map: {game.map_url}")
    total_time = 0.0
    while not game.game_over:
        score, elapsed = play_round(game, args.round_time, input_fn, clock)
        total_time += elapsed
        print(f"  +{score} points (total {game.total_score})")

    print(f"\nGame over! Final score: {game.total_score} in {total_time:.1f}s")

    if args.username:
        password = args.password if args.password is not None else getpass.getpass("Password: ")
        if login(session, args.url, args.username, password):
            try:
                game.post_highscore(game.total_score, round(total_time, 2))
            except GameError as e:
                logger.warning("Could not submit highscore: %s", e)
        else:
            logger.warning("Login failed, highscore not submitted.")

    print_leaderboard(game)
    return 0


def print_leaderboard(game: Game):
    ranked = rank_highscores(game.highscore_list)
    if not ranked:
        print("No highscores yet.")
        return
    print("\nHighscores")
    for i, h in enumerate(ranked, start=1):
        print(f"{i:>3}. {h.username:<20} {h.score:>6}  {h.time:.1f}s")


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return value


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Play a GeoCreator game in the terminal.")
    parser.add_argument("url", help="game data URL, e.g. http://127.0.0.1:5000/game/<id>/data")
    parser.add_argument("--username", help="log in and submit the highscore as this user")
    parser.add_argument("--password", help="password (prompted when omitted)")
    parser.add_argument("--rounds", type=positive_int, default=MAX_ROUNDS, help="maximum number of rounds")
    parser.add_argument("--round-time", type=float, default=ROUND_TIME, help="seconds per round")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    try:
        return run(args)
    except KeyboardInterrupt:
        print()
        return 130


if __name__ == "__main__":
    sys.exit(main())
