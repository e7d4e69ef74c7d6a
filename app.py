import base64
import binascii
import hashlib
import io
import math
import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv
from flask import (Flask, request, redirect, url_for, send_from_directory, render_template_string,
                   abort, jsonify, make_response, session, flash)
from PIL import Image
from werkzeug.security import generate_password_hash, check_password_hash

from models import Highscore, User, rank_highscores
from vec2 import Vec2

# -----------------------------
# Config
# -----------------------------
load_dotenv()

APP_HOST = os.environ.get("GEOCREATOR_HOST", "127.0.0.1")
APP_PORT = int(os.environ.get("GEOCREATOR_PORT", "5000"))

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
UPLOAD_DIR = os.environ.get("GEOCREATOR_UPLOAD_DIR", os.path.join(BASE_DIR, ".cache/uploads"))

ALLOWED_EXT = {".png", ".jpg", ".jpeg", ".webp"}
# Pillow format name -> stored extension
ALLOWED_FORMATS = {"PNG": ".png", "JPEG": ".jpg", "WEBP": ".webp"}

MIN_RATING = 1
MAX_RATING = 5

app = Flask(__name__)
app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "dev")
app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("MAX_CONTENT_LENGTH", 25 * 1024 * 1024))  # 25MB
app.config["UPLOAD_DIR"] = UPLOAD_DIR

if app.config["SECRET_KEY"] == "dev":
    app.logger.warning("SECRET_KEY not set, using the development key.")

# -----------------------------
# In-memory "database"
# -----------------------------
@dataclass
class UserRecord:
    username: str
    password_hash: str

@dataclass
class ScreenshotRecord:
    id: str
    filename: str
    answer: Optional[Vec2] = None

@dataclass
class HighscoreRecord:
    username: str
    score: float
    time: float

@dataclass
class GameRecord:
    id: str
    title: str
    creator: str
    description: str = ""
    map_filename: Optional[str] = None
    map_size: Optional[Tuple[int, int]] = None  # (w,h) in pixels
    screenshots: List[ScreenshotRecord] = field(default_factory=list)
    highscores: List[HighscoreRecord] = field(default_factory=list)
    ratings: Dict[str, float] = field(default_factory=dict)  # username -> rating
    average_rating: float = 0.0

    @property
    def playable(self) -> bool:
        return bool(self.map_filename) and any(s.answer is not None for s in self.screenshots)

@dataclass
class Database:
    users: Dict[str, UserRecord] = field(default_factory=dict)  # normalized name -> user
    games: Dict[str, GameRecord] = field(default_factory=dict)

STATE = Database()

def reset_state():
    STATE.users.clear()
    STATE.games.clear()

# -----------------------------
# Helpers
# -----------------------------
def ext_ok(filename: str) -> bool:
    _, ext = os.path.splitext(filename.lower())
    return ext in ALLOWED_EXT

def normalize_username(name: str) -> str:
    return (name or "").strip().casefold()

def current_user() -> Optional[str]:
    return session.get("username")

def json_error(status: int, message: str):
    abort(make_response(jsonify({"message": message}), status))

def upload_dir() -> str:
    path = app.config["UPLOAD_DIR"]
    os.makedirs(path, exist_ok=True)
    return path

def save_image(data: bytes) -> Tuple[str, Tuple[int, int]]:
    """
    Stores an uploaded image under the SHA-256 of its content, so uploading
    the same file twice yields the same filename. Returns (filename, (w,h)).
    """
    if not data:
        raise ValueError("No file selected.")
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.verify()
        # verify() leaves the image unusable, reopen for the metadata
        with Image.open(io.BytesIO(data)) as im:
            fmt, size = im.format, im.size
    except Exception as e:
        raise ValueError("Not a valid image.") from e

    ext = ALLOWED_FORMATS.get(fmt)
    if ext is None:
        raise ValueError("Unsupported file type. Use png/jpg/jpeg/webp.")

    safe_name = f"{hashlib.sha256(data).hexdigest()}{ext}"
    path = os.path.join(upload_dir(), safe_name)
    if not os.path.exists(path):
        with open(path, "wb") as f:
            f.write(data)
    return safe_name, size

def save_upload(file_storage) -> Tuple[str, Tuple[int, int]]:
    if not file_storage or not file_storage.filename:
        raise ValueError("No file selected.")
    if not ext_ok(file_storage.filename):
        raise ValueError("Unsupported file type. Use png/jpg/jpeg/webp.")
    return save_image(file_storage.read())

def decode_base64_image(value: Any) -> bytes:
    # accepts a bare base64 string or a data URL ("data:image/png;base64,...")
    if not isinstance(value, str):
        raise ValueError("Image must be a base64 string.")
    if value.startswith("data:"):
        _, _, value = value.partition(",")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Image is not valid base64.") from e

def parse_number(value: Any, name: str) -> float:
    """Accepts JSON numbers and numeric form strings; rejects NaN/inf."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid {name}.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name}.")
    if not math.isfinite(number):
        raise ValueError(f"Invalid {name}.")
    return number

def request_data() -> Mapping[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data:
        return data
    return request.form

def text_field(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        json_error(400, f"Invalid {name}.")
    return value.strip()

def get_game(game_id: str) -> GameRecord:
    game = STATE.games.get(game_id)
    if not game:
        json_error(404, "Game not found")
    return game

def get_screenshot(game: GameRecord, screenshot_id: str) -> ScreenshotRecord:
    shot = next((s for s in game.screenshots if s.id == screenshot_id), None)
    if not shot:
        json_error(404, "Screenshot not found")
    return shot

def require_creator(game: GameRecord):
    user = current_user()
    if user is None or user != game.creator:
        json_error(403, "Forbidden")

def image_url(filename: Optional[str]) -> str:
    if not filename:
        return ""
    return url_for("uploads", filename=filename, _external=True)

def screenshot_to_dict(shot: ScreenshotRecord) -> Dict[str, Any]:
    return {
        "id": shot.id,
        "url": image_url(shot.filename),
        "correctAnswer": shot.answer.to_dict() if shot.answer else None,
    }

def highscore_list(game: GameRecord) -> List[Dict[str, Any]]:
    return [to_highscore(h).to_dict() for h in game.highscores]

def to_highscore(record: HighscoreRecord) -> Highscore:
    return Highscore(user=User(record.username), score=record.score, time=record.time)

def game_to_dict(game: GameRecord) -> Dict[str, Any]:
    # Only screenshots with a placed answer can be played.
    return {
        "id": game.id,
        "title": game.title,
        "description": game.description,
        "creator": {"username": game.creator},
        "mapUrl": image_url(game.map_filename),
        "mapSize": list(game.map_size) if game.map_size else None,
        "screenshots": [screenshot_to_dict(s) for s in game.screenshots if s.answer is not None],
        "highscoreList": highscore_list(game),
        "averageRating": game.average_rating,
    }

def record_highscore(game: GameRecord, username: str, score: float, time: float) -> bool:
    """
    Keeps one entry per user: a new score replaces the old one only when it
    is higher, or equal and faster. Returns True when a new entry was added.
    """
    existing = next((h for h in game.highscores if h.username == username), None)
    if existing is None:
        game.highscores.append(HighscoreRecord(username=username, score=score, time=time))
        return True
    if score > existing.score or (score == existing.score and time < existing.time):
        existing.score = score
        existing.time = time
    return False

def rate_game(game: GameRecord, username: str, rating: float) -> float:
    game.ratings[username] = rating
    game.average_rating = sum(game.ratings.values()) / (len(game.ratings) or 1)
    return game.average_rating

def add_screenshot(game: GameRecord, filename: str, answer: Optional[Vec2] = None) -> ScreenshotRecord:
    shot = ScreenshotRecord(id=uuid.uuid4().hex, filename=filename, answer=answer)
    game.screenshots.append(shot)
    return shot

def answer_from(data: Mapping[str, Any]) -> Optional[Vec2]:
    x, y = data.get("x"), data.get("y")
    if x in (None, "") and y in (None, ""):
        return None
    return Vec2(parse_number(x, "x"), parse_number(y, "y"))

# -----------------------------
# Error handlers
# -----------------------------
@app.errorhandler(413)
def too_large(e):
    return jsonify({"message": "Upload too large."}), 413

@app.errorhandler(500)
def internal_error(e):
    app.logger.error("Unhandled error on %s %s: %s", request.method, request.path,
                     getattr(e, "original_exception", e))
    return jsonify({"message": "Internal server error"}), 500

# -----------------------------
# Routes: static uploads
# -----------------------------
@app.route("/uploads/<path:filename>")
def uploads(filename):
    return send_from_directory(upload_dir(), filename)

# -----------------------------
# Pages (Flat design)
# -----------------------------
PAGE_TOP = """
<!doctype html>
<html><head>
  <meta charset="utf-8" />
  <title>{{title}} - GeoCreator</title>
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <style>
    :root{
      --bg:#f6f7fb; --card:#ffffff; --text:#101828; --muted:#475467;
      --border:#e4e7ec; --accent:#2563eb; --accent2:#1d4ed8;
      --good:#067647; --bad:#b42318; --radius:14px;
    }
    body{ margin:0; font-family: ui-sans-serif, system-ui, -apple-system, Segoe UI, Roboto, Arial, sans-serif;
      color:var(--text); background: linear-gradient(180deg, #f6f7fb, #eef2ff); padding:24px 18px; }
    .wrap{max-width:1150px; margin:0 auto;}
    h1{margin:0 0 6px 0; font-size:26px; letter-spacing:-0.02em;}
    .muted{color:var(--muted);}
    .grid{display:grid; grid-template-columns: 1fr 1fr; gap:14px;}
    @media (max-width: 980px){ .grid{grid-template-columns:1fr;} }
    .card{ background: var(--card); border-radius: var(--radius); padding: 18px; border: 1px solid var(--border); margin-top:14px; }
    .row{display:flex; gap:10px; flex-wrap:wrap; align-items:center;}
    input, select, textarea{
      padding:10px 12px; border-radius:12px; border:1px solid var(--border);
      background: white; color: var(--text); outline:none;
    }
    button{
      padding:10px 12px; border-radius:12px; border:1px solid var(--border);
      background: var(--accent); color:white; cursor:pointer; font-weight:800;
    }
    button:hover{background: var(--accent2);}
    .btn-ghost{ background:white; color:var(--text); }
    .btn-ghost:hover{ background:#f2f4f7; }
    .flash-success{color:var(--good); font-weight:700;}
    .flash-danger{color:var(--bad); font-weight:700;}
    table{width:100%; border-collapse:collapse;}
    th, td{padding:10px 6px; border-bottom: 1px solid var(--border); text-align:left; font-size:14px;}
    code{background: #f2f4f7; padding: 2px 6px; border-radius: 8px; border: 1px solid var(--border);}
    .tag{
      display:inline-flex; padding: 4px 10px; border-radius: 999px;
      background: #eff6ff; color: #1d4ed8; font-weight: 800; font-size: 12px; border: 1px solid #dbeafe;
    }
    img{max-width:100%; border-radius:12px; border:1px solid var(--border);}
    a{color:var(--accent); text-decoration:none; font-weight:900;}
    a:hover{text-decoration:underline;}
  </style>
</head><body>
  <div class="wrap">
    <div class="row" style="justify-content:space-between; align-items:flex-end;">
      <div>
        <h1><a href="{{url_for('home')}}" style="color:inherit;">GeoCreator</a></h1>
        <div class="muted">Make a map, hide some screenshots, let people guess.</div>
      </div>
      <div class="row">
        {% if user %}
          <span class="muted">Logged in as <b>{{user}}</b></span>
          <a class="tag" href="{{url_for('my_games')}}">My games</a>
          <a class="tag" href="{{url_for('logout')}}">Log out</a>
        {% else %}
          <a class="tag" href="{{url_for('login')}}">Log in</a>
          <a class="tag" href="{{url_for('signup')}}">Sign up</a>
        {% endif %}
      </div>
    </div>
    {% for category, message in get_flashed_messages(with_categories=true) %}
      <p class="flash-{{category}}">{{message}}</p>
    {% endfor %}
"""

PAGE_BOTTOM = """
  </div>
</body></html>
"""

def render_page(title: str, body: str, **context):
    return render_template_string(PAGE_TOP + body + PAGE_BOTTOM, title=title, user=current_user(), **context)

@app.route("/")
def home():
    games = sorted(STATE.games.values(), key=lambda g: g.average_rating, reverse=True)
    return render_page("Games", """
    <div class="card">
      <div class="tag">Games</div>
      {% if games %}
        <table style="margin-top:10px;">
          <tr><th>Title</th><th>Creator</th><th>Screenshots</th><th>Rating</th></tr>
          {% for g in games %}
          <tr>
            <td><a href="{{url_for('game_page', game_id=g.id)}}">{{g.title}}</a></td>
            <td>{{g.creator}}</td>
            <td>{{g.screenshots|length}}</td>
            <td>{{'%.1f'|format(g.average_rating)}}</td>
          </tr>
          {% endfor %}
        </table>
      {% else %}
        <p class="muted" style="margin-top:10px;">No games yet.</p>
      {% endif %}
    </div>

    {% if user %}
    <div class="card">
      <div class="tag">New game</div>
      <form method="post" action="{{url_for('games_create')}}" class="row" style="margin-top:12px;">
        <input name="title" placeholder="Title" required />
        <input name="description" placeholder="Description" />
        <button type="submit">Create</button>
      </form>
    </div>
    {% endif %}
""", games=games)

@app.route("/my-games")
def my_games():
    user = current_user()
    if user is None:
        abort(404)
    games = sorted((g for g in STATE.games.values() if g.creator == user),
                   key=lambda g: g.average_rating, reverse=True)
    return render_page("My games", """
    <div class="card">
      <div class="tag">My games</div>
      {% if games %}
        <table style="margin-top:10px;">
          <tr><th>Title</th><th>Screenshots</th><th>Rating</th><th></th></tr>
          {% for g in games %}
          <tr>
            <td><a href="{{url_for('game_page', game_id=g.id)}}">{{g.title}}</a></td>
            <td>{{g.screenshots|length}}</td>
            <td>{{'%.1f'|format(g.average_rating)}}</td>
            <td><a href="{{url_for('game_edit', game_id=g.id)}}">Edit</a></td>
          </tr>
          {% endfor %}
        </table>
      {% else %}
        <p class="muted" style="margin-top:10px;">You have not created any games yet.</p>
      {% endif %}
    </div>
""", games=games)

# -----------------------------
# Routes: auth
# -----------------------------
AUTH_FORM = """
    <div class="card" style="max-width:420px;">
      <div class="tag">{{heading}}</div>
      <form method="post" style="margin-top:12px; display:grid; gap:10px;">
        <input name="username" placeholder="Username" required />
        <input name="password" type="password" placeholder="Password" required />
        <button type="submit">{{heading}}</button>
      </form>
    </div>
"""

@app.route("/signup", methods=["GET", "POST"])
def signup():
    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        password = request.form.get("password") or ""
        key = normalize_username(username)
        if not key or not password:
            flash("Username and password are required.", "danger")
            return redirect(url_for("signup"))
        if key in STATE.users:
            flash("Username already taken", "danger")
            return redirect(url_for("signup"))

        STATE.users[key] = UserRecord(username=username, password_hash=generate_password_hash(password))
        session["username"] = username
        app.logger.info("New user signed up: %s", username)
        flash("Successfully signed up", "success")
        return redirect(url_for("home"))

    return render_page("Sign up", AUTH_FORM, heading="Sign up")

@app.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        user = STATE.users.get(normalize_username(request.form.get("username")))
        if user is None or not check_password_hash(user.password_hash, request.form.get("password") or ""):
            flash("Invalid username or password", "danger")
            return redirect(url_for("login"))
        session["username"] = user.username
        flash("Logged in as " + user.username, "success")
        return redirect(url_for("home"))

    return render_page("Log in", AUTH_FORM, heading="Log in")

@app.route("/logout")
def logout():
    session.pop("username", None)
    flash("Logged out", "success")
    return redirect(url_for("home"))

# -----------------------------
# API: games
# -----------------------------
@app.route("/game/", methods=["GET"])
def games_list():
    return jsonify([f"./{game_id}" for game_id in STATE.games])

@app.route("/game/", methods=["POST"])
def games_create():
    user = current_user()
    if user is None:
        json_error(401, "Unauthorized")

    data = request_data()
    title = text_field(data, "title")
    if not title:
        json_error(400, "Title is required")

    game = GameRecord(id=uuid.uuid4().hex, title=title, creator=user,
                      description=text_field(data, "description"))
    STATE.games[game.id] = game
    app.logger.info("Game %s created by %s", game.id, user)
    return redirect(url_for("game_edit", game_id=game.id))

@app.route("/game/<game_id>", methods=["GET"])
def game_page(game_id):
    game = get_game(game_id)
    user = current_user()
    ranked = rank_highscores(to_highscore(h) for h in game.highscores)

    return render_page(game.title, """
    <div class="card">
      <div class="row" style="justify-content:space-between;">
        <div>
          <div class="tag">Game</div>
          <h1 style="margin-top:8px;">{{game.title}}</h1>
          <div class="muted">{{game.description}}</div>
          <div class="muted" style="margin-top:6px;">by <b>{{game.creator}}</b> · rating <b>{{'%.1f'|format(game.average_rating)}}</b></div>
        </div>
        {% if editable %}<a class="tag" href="{{url_for('game_edit', game_id=game.id)}}">Edit</a>{% endif %}
      </div>
      {% if game.map_filename %}
        <div style="margin-top:12px;"><img src="{{url_for('uploads', filename=game.map_filename)}}" /></div>
      {% endif %}
      {% if playable %}
        <p style="margin-top:12px;">Play from a terminal:</p>
        <code>python play.py {{url_for('game_data', game_id=game.id, _external=True)}}</code>
      {% else %}
        <p class="muted" style="margin-top:12px;">This game has no map or no placed screenshots yet.</p>
      {% endif %}
    </div>

    <div class="grid">
      <div class="card">
        <div class="tag">Highscores</div>
        {% if ranked %}
          <table style="margin-top:10px;">
            <tr><th>#</th><th>Player</th><th>Score</th><th>Time (s)</th></tr>
            {% for h in ranked %}
            <tr><td>{{loop.index}}</td><td>{{h.username}}</td><td><b>{{h.score|int}}</b></td><td>{{'%.1f'|format(h.time)}}</td></tr>
            {% endfor %}
          </table>
        {% else %}
          <p class="muted" style="margin-top:10px;">No highscores yet.</p>
        {% endif %}
      </div>

      <div class="card">
        <div class="tag">Rate this game</div>
        {% if user %}
          <form method="post" action="{{url_for('rating_post', game_id=game.id)}}" class="row" style="margin-top:12px;">
            <select name="rating">
              {% for r in range(5, 0, -1) %}
                <option value="{{r}}" {% if r == user_rating %}selected{% endif %}>{{r}}</option>
              {% endfor %}
            </select>
            <button type="submit">{% if user_rating %}Update{% else %}Rate{% endif %}</button>
          </form>
        {% else %}
          <p class="muted" style="margin-top:10px;">Log in to rate.</p>
        {% endif %}
      </div>
    </div>
""", game=game, ranked=ranked, playable=game.playable, editable=user is not None and user == game.creator,
        user_rating=game.ratings.get(user) if user else None)

@app.route("/game/<game_id>", methods=["PUT"])
def game_put(game_id):
    game = get_game(game_id)
    require_creator(game)

    data = request_data()
    if "title" in data:
        game.title = text_field(data, "title") or game.title
    if "description" in data:
        game.description = text_field(data, "description")

    map_file = request.files.get("mapUrl")
    if map_file:
        try:
            game.map_filename, game.map_size = save_upload(map_file)
        except ValueError as e:
            json_error(400, str(e))

    return jsonify({})

@app.route("/game/<game_id>", methods=["DELETE"])
def game_delete(game_id):
    game = get_game(game_id)
    require_creator(game)
    del STATE.games[game.id]
    app.logger.info("Game %s deleted", game.id)
    flash("Game deleted", "success")
    return jsonify({"message": "Game deleted"})

@app.route("/game/<game_id>/data", methods=["GET"])
def game_data(game_id):
    return jsonify(game_to_dict(get_game(game_id)))

# -----------------------------
# Pages: editing
# -----------------------------
@app.route("/game/<game_id>/edit", methods=["GET", "POST"])
def game_edit(game_id):
    game = get_game(game_id)
    require_creator(game)

    if request.method == "POST":
        action = request.form.get("action")
        try:
            if action == "update_game":
                game.title = (request.form.get("title") or "").strip() or game.title
                game.description = (request.form.get("description") or "").strip()
                flash("Game updated", "success")

            elif action == "upload_map":
                game.map_filename, game.map_size = save_upload(request.files.get("map_image"))
                flash("Map uploaded", "success")

            elif action == "add_screenshot":
                filename, _ = save_upload(request.files.get("screenshot_image"))
                shot = add_screenshot(game, filename)
                # go place the answer right away
                return redirect(url_for("edit_location", game_id=game.id, screenshot_id=shot.id))

            elif action == "delete_screenshot":
                shot = get_screenshot(game, request.form.get("screenshot_id"))
                game.screenshots.remove(shot)
                flash("Screenshot deleted", "success")

            elif action == "delete_game":
                del STATE.games[game.id]
                flash("Game deleted", "success")
                return redirect(url_for("home"))

            else:
                raise ValueError("Unknown action.")
        except ValueError as e:
            flash(str(e), "danger")
        return redirect(url_for("game_edit", game_id=game.id))

    return render_page("Edit " + game.title, """
    <div class="grid">
      <div class="card">
        <div class="tag">Details</div>
        <form method="post" style="margin-top:12px; display:grid; gap:10px;">
          <input type="hidden" name="action" value="update_game" />
          <input name="title" value="{{game.title}}" required />
          <textarea name="description" rows="3">{{game.description}}</textarea>
          <div class="row">
            <button type="submit">Save</button>
            <a href="{{url_for('game_page', game_id=game.id)}}">View game</a>
          </div>
        </form>
      </div>

      <div class="card">
        <div class="tag">Map</div>
        {% if game.map_filename %}
          <div class="muted" style="margin-top:8px;">Map size: <code>{{game.map_size[0]}}×{{game.map_size[1]}}</code></div>
          <img style="margin-top:10px; max-height:220px;" src="{{url_for('uploads', filename=game.map_filename)}}" />
        {% else %}
          <p class="muted" style="margin-top:10px;">No map yet.</p>
        {% endif %}
        <form method="post" enctype="multipart/form-data" class="row" style="margin-top:12px;">
          <input type="hidden" name="action" value="upload_map" />
          <input type="file" name="map_image" accept=".png,.jpg,.jpeg,.webp" required />
          <button type="submit">Upload map</button>
        </form>
      </div>
    </div>

    <div class="card">
      <div class="tag">Screenshots</div>
      <div class="muted" style="margin-top:8px;">Each screenshot is one round. Place its location on the map after uploading.</div>
      <form method="post" enctype="multipart/form-data" class="row" style="margin-top:12px;">
        <input type="hidden" name="action" value="add_screenshot" />
        <input type="file" name="screenshot_image" accept=".png,.jpg,.jpeg,.webp" required />
        <button type="submit" {% if not game.map_filename %}disabled title="Upload a map first"{% endif %}>Add screenshot</button>
      </form>
      {% if game.screenshots %}
        <table style="margin-top:10px;">
          <tr><th>#</th><th>Image</th><th>Answer</th><th></th></tr>
          {% for s in game.screenshots %}
          <tr>
            <td>{{loop.index}}</td>
            <td><img style="max-height:60px;" src="{{url_for('uploads', filename=s.filename)}}" /></td>
            <td>
              {% if s.answer %}
                <code>({{'%.3f'|format(s.answer.x)}}, {{'%.3f'|format(s.answer.y)}})</code>
              {% else %}
                <span class="tag" style="background:#fff1f3;border-color:#fecdd6;color:#b42318;">not set</span>
              {% endif %}
            </td>
            <td class="row">
              <a class="tag" href="{{url_for('edit_location', game_id=game.id, screenshot_id=s.id)}}">Set location</a>
              <form method="post" style="margin:0">
                <input type="hidden" name="action" value="delete_screenshot" />
                <input type="hidden" name="screenshot_id" value="{{s.id}}" />
                <button class="btn-ghost" type="submit">Delete</button>
              </form>
            </td>
          </tr>
          {% endfor %}
        </table>
      {% else %}
        <p class="muted" style="margin-top:10px;">No screenshots yet.</p>
      {% endif %}
      <hr style="border:none; height:1px; background:var(--border); margin:14px 0;">
      <form method="post" class="row">
        <input type="hidden" name="action" value="delete_game" />
        <button class="btn-ghost" type="submit" onclick="return confirm('Delete this game?')">Delete game</button>
      </form>
    </div>
""", game=game)

@app.route("/game/<game_id>/edit/location/<screenshot_id>", methods=["GET", "POST"])
def edit_location(game_id, screenshot_id):
    game = get_game(game_id)
    require_creator(game)
    shot = get_screenshot(game, screenshot_id)

    if request.method == "POST":
        try:
            shot.answer = Vec2(parse_number(request.form.get("x"), "x"),
                               parse_number(request.form.get("y"), "y"))
            flash("Location saved", "success")
            return redirect(url_for("game_edit", game_id=game.id))
        except ValueError as e:
            flash(str(e), "danger")
            return redirect(url_for("edit_location", game_id=game.id, screenshot_id=shot.id))

    if not game.map_filename:
        flash("Upload a map first.", "danger")
        return redirect(url_for("game_edit", game_id=game.id))

    return render_page("Set location", """
    <div class="grid">
      <div class="card">
        <div class="tag">Screenshot</div>
        <img style="margin-top:10px;" src="{{url_for('uploads', filename=shot.filename)}}" />
      </div>
      <div class="card">
        <div class="tag">Map</div>
        <p class="muted" style="margin:10px 0 10px 0;">Click where the screenshot was taken. Selected: <code id="xy">{% if shot.answer %}({{'%.3f'|format(shot.answer.x)}}, {{'%.3f'|format(shot.answer.y)}}){% else %}(none){% endif %}</code></p>
        <div style="position:relative; display:inline-block; max-width:100%;">
          <img id="map" style="cursor:crosshair;" src="{{url_for('uploads', filename=game.map_filename)}}" />
          <div id="pin" style="position:absolute; width:14px; height:14px; margin:-7px 0 0 -7px; border-radius:50%;
               background:rgba(220,38,38,0.98); border:2px solid white; pointer-events:none;
               {% if shot.answer %}left:{{shot.answer.x*100}}%; top:{{shot.answer.y*100}}%;{% else %}display:none;{% endif %}"></div>
        </div>
        <form method="post" class="row" style="margin-top:12px;">
          <input type="hidden" name="x" id="x" value="{{shot.answer.x if shot.answer else ''}}" />
          <input type="hidden" name="y" id="y" value="{{shot.answer.y if shot.answer else ''}}" />
          <button type="submit">Save location</button>
          <a href="{{url_for('game_edit', game_id=game.id)}}">Cancel</a>
        </form>
      </div>
    </div>

<script>
const img = document.getElementById("map");
const pin = document.getElementById("pin");
const xInput = document.getElementById("x");
const yInput = document.getElementById("y");
const xy = document.getElementById("xy");

// normalized map coordinates, independent of how large the image is drawn
img.addEventListener("click", (e) => {
  const rect = img.getBoundingClientRect();
  const x = (e.clientX - rect.left) / rect.width;
  const y = (e.clientY - rect.top) / rect.height;
  xInput.value = x;
  yInput.value = y;
  xy.textContent = `(${x.toFixed(3)}, ${y.toFixed(3)})`;
  pin.style.left = (x * 100) + "%";
  pin.style.top = (y * 100) + "%";
  pin.style.display = "block";
});
</script>
""", game=game, shot=shot)

# -----------------------------
# API: screenshots
# -----------------------------
@app.route("/game/<game_id>/screenshot", methods=["POST"])
def screenshot_post(game_id):
    game = get_game(game_id)
    require_creator(game)

    data = request_data()
    file_storage = request.files.get("image")
    encoded = data.get("image")
    if not file_storage and not encoded:
        json_error(400, "No image provided")

    try:
        if file_storage:
            filename, _ = save_upload(file_storage)
        else:
            filename, _ = save_image(decode_base64_image(encoded))
        answer = answer_from(data)
    except ValueError as e:
        json_error(400, str(e))

    shot = add_screenshot(game, filename, answer)
    location = url_for("screenshot_get", game_id=game.id, screenshot_id=shot.id)
    response = jsonify(screenshot_to_dict(shot))
    response.status_code = 201
    response.headers["Location"] = location
    return response

@app.route("/game/<game_id>/screenshot/<screenshot_id>", methods=["GET"])
def screenshot_get(game_id, screenshot_id):
    game = get_game(game_id)
    return jsonify(screenshot_to_dict(get_screenshot(game, screenshot_id)))

@app.route("/game/<game_id>/screenshot/<screenshot_id>", methods=["PUT"])
def screenshot_put(game_id, screenshot_id):
    game = get_game(game_id)
    require_creator(game)
    shot = get_screenshot(game, screenshot_id)

    data = request_data()
    try:
        file_storage = request.files.get("image")
        if file_storage:
            shot.filename, _ = save_upload(file_storage)
        elif data.get("image"):
            shot.filename, _ = save_image(decode_base64_image(data["image"]))

        # either coordinate may be updated on its own
        if data.get("x") is not None or data.get("y") is not None:
            old = shot.answer
            x = parse_number(data["x"], "x") if data.get("x") is not None else (old.x if old else None)
            y = parse_number(data["y"], "y") if data.get("y") is not None else (old.y if old else None)
            if x is None or y is None:
                raise ValueError("Both x and y are required for a new location.")
            shot.answer = Vec2(x, y)
    except ValueError as e:
        json_error(400, str(e))

    return jsonify({})

@app.route("/game/<game_id>/screenshot/<screenshot_id>", methods=["DELETE"])
def screenshot_delete(game_id, screenshot_id):
    game = get_game(game_id)
    require_creator(game)
    game.screenshots.remove(get_screenshot(game, screenshot_id))
    return jsonify({})

# -----------------------------
# API: highscores
# -----------------------------
@app.route("/game/<game_id>/highscore", methods=["GET"])
def highscore_get(game_id):
    return jsonify(highscore_list(get_game(game_id)))

@app.route("/game/<game_id>/highscore", methods=["POST"])
def highscore_post(game_id):
    game = get_game(game_id)
    user = current_user()
    if user is None:
        json_error(401, "Unauthorized")

    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        data = {}
    score, time = data.get("score"), data.get("time")
    for name, value in (("score", score), ("time", time)):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            json_error(400, f"Invalid {name}.")

    created = record_highscore(game, user, score, time)
    app.logger.info("Highscore from %s on game %s: %s in %ss", user, game.id, score, time)
    return jsonify(highscore_list(game)), 201 if created else 200

# -----------------------------
# API: ratings
# -----------------------------
@app.route("/game/<game_id>/rating", methods=["GET"])
def rating_get(game_id):
    return jsonify({"averageRating": get_game(game_id).average_rating})

@app.route("/game/<game_id>/rating", methods=["POST"])
def rating_post(game_id):
    game = get_game(game_id)
    from_form = not request.is_json
    data = request_data()

    try:
        rating = parse_number(data.get("rating"), "rating")
    except ValueError:
        rating = None
    if rating is None or rating < MIN_RATING or rating > MAX_RATING:
        json_error(400, f"Rating must be a number between {MIN_RATING} and {MAX_RATING}")

    user = current_user()
    if user is None:
        json_error(403, "Must be logged in")

    average = rate_game(game, user, rating)
    if from_form:
        flash("Thanks for rating!", "success")
        return redirect(url_for("game_page", game_id=game.id))
    return jsonify({"averageRating": average})

if __name__ == "__main__":
    upload_dir()
    print(f"Running on http://{APP_HOST}:{APP_PORT}")
    app.run(host=APP_HOST, port=APP_PORT, debug=False)
