import argparse
from unittest.mock import Mock

import pytest

import play
from conftest import GAME_DATA, GAME_URL, make_session


def args_for(**overrides):
    defaults = dict(url=GAME_URL, username=None, password=None, rounds=5, round_time=60.0, verbose=False)
    defaults.update(overrides)
    return argparse.Namespace(**defaults)


def scripted(*answers):
    it = iter(answers)
    return lambda prompt: next(it)


def ticking_clock(step):
    now = [0.0]

    def clock():
        now[0] += step
        return now[0]
    return clock


def login_response(location):
    response = Mock()
    response.is_redirect = True
    response.headers = {"Location": location}
    return response


def session_with_login(location="/", post_ok=True):
    session = make_session(post_ok=post_ok)
    highscore = session.post.return_value

    def post(url, **kwargs):
        return login_response(location) if url.endswith("/login") else highscore
    session.post.side_effect = post
    return session


class TestParseGuess:
    def test_space_or_comma(self):
        assert play.parse_guess("0.1 0.2") == (0.1, 0.2)
        assert play.parse_guess(" 0.1, 0.2 ") == (0.1, 0.2)

    def test_blank_means_no_guess(self):
        assert play.parse_guess("   ") is None

    @pytest.mark.parametrize("text", ["0.1", "a b", "1 2 3", "nan 0.1", "inf 1"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            play.parse_guess(text)


class TestRun:
    def test_plays_to_game_over(self, capsys):
        session = make_session()
        code = play.run(args_for(), input_fn=scripted("", "", ""), clock=ticking_clock(1.0), session=session)
        assert code == 0
        out = capsys.readouterr().out
        assert "Game over! Final score: 0" in out
        session.post.assert_not_called()

    def test_retries_bad_input(self, capsys):
        session = make_session()
        code = play.run(args_for(), input_fn=scripted("nope", "", ""), clock=ticking_clock(1.0), session=session)
        assert code == 0
        assert "enter two numbers" in capsys.readouterr().out

    def test_late_guess_is_discarded(self, capsys):
        body = dict(GAME_DATA, screenshots=GAME_DATA["screenshots"][:1])
        session = make_session(get_body=body)
        code = play.run(args_for(round_time=5.0), input_fn=scripted("0.1 0.2"),
                        clock=ticking_clock(10.0), session=session)
        assert code == 0
        out = capsys.readouterr().out
        assert "Time's up" in out
        assert "Final score: 0 in 5.0s" in out

    def test_in_time_guess_scores(self, capsys):
        body = dict(GAME_DATA, screenshots=GAME_DATA["screenshots"][:1])
        session = make_session(get_body=body)
        play.run(args_for(), input_fn=scripted("0.1 0.2"), clock=ticking_clock(1.0), session=session)
        assert "Final score: 1000" in capsys.readouterr().out

    def test_posts_highscore_after_login(self, capsys):
        session = session_with_login("/")
        code = play.run(args_for(username="roger", password="secret"), input_fn=scripted("", ""),
                        clock=ticking_clock(1.0), session=session)
        assert code == 0
        urls = [c.args[0] for c in session.post.call_args_list]
        assert urls == ["https://example.com/login", "https://example.com/highscore"]
        out = capsys.readouterr().out
        # bob (100 in 3s) beats alice (100 in 5s)
        assert out.index("bob") < out.index("alice") < out.index("carol")

    def test_failed_login_skips_highscore(self, caplog):
        session = session_with_login("/login")
        play.run(args_for(username="roger", password="bad"), input_fn=scripted("", ""),
                 clock=ticking_clock(1.0), session=session)
        assert len(session.post.call_args_list) == 1
        assert "Login failed" in caplog.text

    def test_failed_highscore_post_is_logged(self, caplog, capsys):
        session = session_with_login("/", post_ok=False)
        code = play.run(args_for(username="roger", password="secret"), input_fn=scripted("", ""),
                        clock=ticking_clock(1.0), session=session)
        assert code == 0
        assert "Could not submit highscore" in caplog.text
        assert "No highscores yet." in capsys.readouterr().out

    def test_fetch_failure(self, caplog):
        code = play.run(args_for(), input_fn=scripted(), session=make_session(get_ok=False))
        assert code == 1
        assert "Could not load the game" in caplog.text

    def test_empty_game(self, capsys):
        body = dict(GAME_DATA, screenshots=[])
        assert play.run(args_for(), input_fn=scripted(), session=make_session(get_body=body)) == 1


def test_login_helper_detects_failure():
    session = Mock()
    session.post.return_value = login_response("http://127.0.0.1:5000/login")
    assert play.login(session, "http://127.0.0.1:5000/game/abc/data", "roger", "bad") is False
    session.post.return_value = login_response("http://127.0.0.1:5000/")
    assert play.login(session, "http://127.0.0.1:5000/game/abc/data", "roger", "secret") is True


class TestParseArgs:
    @pytest.mark.parametrize("value", ["0", "-3", "two"])
    def test_rounds_must_be_positive(self, value, capsys):
        with pytest.raises(SystemExit) as exc:
            play.parse_args([GAME_URL, "--rounds", value])
        assert exc.value.code == 2
        assert "--rounds" in capsys.readouterr().err

    def test_defaults(self):
        args = play.parse_args([GAME_URL])
        assert (args.rounds, args.round_time, args.username) == (5, 60.0, None)
