import copy
import io
from unittest.mock import Mock

import pytest
import requests
from PIL import Image

import app as server


GAME_URL = "https://example.com/data"

GAME_DATA = {
    "mapUrl": "https://example.com/map.png",
    "screenshots": [
        {"url": "https://example.com/screenshot1.png", "correctAnswer": {"x": 0.1, "y": 0.2}},
        {"url": "./screenshot2.png", "correctAnswer": {"x": 0.3, "y": 0.4}},
    ],
    "highscoreList": [],
}

HIGHSCORE_DATA = [
    {"user": {"username": "alice"}, "score": 100, "time": 5},
    {"user": {"username": "bob"}, "score": 100, "time": 3},
    {"user": {"username": "carol"}, "score": 50, "time": 1},
]


def make_response(body=None, ok=True, status_code=200):
    response = Mock(spec=requests.Response)
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = copy.deepcopy(body)
    return response


def make_session(get_body=GAME_DATA, post_body=HIGHSCORE_DATA, get_ok=True, post_ok=True):
    session = Mock(spec=requests.Session)
    session.get.return_value = make_response(get_body, ok=get_ok, status_code=200 if get_ok else 404)
    session.post.return_value = make_response(post_body, ok=post_ok, status_code=201 if post_ok else 500)
    return session


def game_data_with(n_screenshots):
    return {
        "mapUrl": "https://example.com/map.png",
        "screenshots": [
            {"url": f"https://example.com/s{i}.png", "correctAnswer": {"x": i / 10, "y": i / 20}}
            for i in range(n_screenshots)
        ],
        "highscoreList": [],
    }


def png_bytes(size=(40, 20), color="blue", fmt="PNG"):
    buffered = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffered, format=fmt)
    return buffered.getvalue()


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def client(tmp_path):
    server.reset_state()
    server.app.config.update(TESTING=True, UPLOAD_DIR=str(tmp_path / "uploads"))
    with server.app.test_client() as c:
        yield c
    server.reset_state()


def signup(client, username="roger", password="secret"):
    return client.post("/signup", data={"username": username, "password": password})


def create_game(client, title="Campus", description="Find the spot"):
    response = client.post("/game/", data={"title": title, "description": description})
    assert response.status_code == 302
    return response.headers["Location"].rstrip("/").split("/")[-2]
