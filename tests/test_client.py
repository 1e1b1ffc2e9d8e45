import httpx
import pytest

from conftest import make_quiz, make_user
from stemplay.client.api_client import StemPlayClient, error_from_response
from stemplay.client.games import report_game_score
from stemplay.client.session import AttemptSession, SessionState
from stemplay.errors import (
    AuthorizationError, NotFoundError, QuotaExceededError, TransientNetworkError, ValidationError,
)
from stemplay.games import multiplier_for
from stemplay.main import app

pytestmark = pytest.mark.anyio


class ManualTimer:
    running = False
    remaining = 0

    def start(self, duration_sec, on_tick=None, on_expire=None):
        self.running = True
        self.remaining = duration_sec

    def cancel(self):
        self.running = False


def _http():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


async def test_full_attempt_through_the_api(client, session):
    # the client fixture installs the in-memory database override
    teacher = make_user(session, "Ms T", role="teacher")
    student = make_user(session, "Sam")
    quiz = make_quiz(session, teacher, max_attempts=1)

    async with _http() as http:
        api = StemPlayClient(user_id=student.id, client=http)

        attempt = AttemptSession(api, quiz.id, timer=ManualTimer())
        assert await attempt.load() == SessionState.ACTIVE
        await attempt.record_answer(1)
        await attempt.record_answer(0)

        assert attempt.state == SessionState.COMPLETED
        assert attempt.result.correct_count == 2
        assert attempt.result.total_points == 200

        board = await api.leaderboard("quiz", quiz.id)
        assert board["you"] == {"rank": 1, "best_points": 200}

        second = AttemptSession(api, quiz.id, timer=ManualTimer())
        assert await second.load() == SessionState.BLOCKED
        assert isinstance(second.error, QuotaExceededError)

        with pytest.raises(QuotaExceededError):
            await api.submit_attempt(quiz.id, [
                {"question_index": 0, "selected_index": 1, "time_taken_sec": 0},
                {"question_index": 1, "selected_index": 0, "time_taken_sec": 0},
            ])


async def test_game_score_reporting(client, session):
    student = make_user(session, "Sam")

    async with _http() as http:
        api = StemPlayClient(user_id=student.id, client=http)

        saved = await report_game_score(api, "mathtrail-lv3", raw_score=30, multiplier=10)
        assert saved.saved and saved.points == 300
        lower = await report_game_score(api, "mathtrail-lv3", raw_score=25, multiplier=10)
        assert lower.saved and lower.points == 250

        board = await api.leaderboard("game", "mathtrail-lv3", window="daily")
        assert board["top"][0]["best_points"] == 300

        unknown = await report_game_score(api, "nosuchgame", raw_score=1)
        assert not unknown.saved


async def test_game_score_degrades_on_network_failure():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(refuse)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        api = StemPlayClient(user_id="u1", client=http)
        outcome = await report_game_score(api, "circuitsnap", raw_score=4, multiplier=10)
        assert outcome.points == 40
        assert outcome.saved is False
        assert "connection refused" in outcome.error

        with pytest.raises(TransientNetworkError):
            await api.fetch_quiz("q1")


def _response(status, body=None):
    return httpx.Response(status, json=body) if body is not None else httpx.Response(status)


def test_error_mapping():
    assert isinstance(error_from_response(_response(400, {"error": "validation_error", "message": "x"})), ValidationError)
    assert isinstance(error_from_response(_response(401, {"error": "unauthorized", "message": "x"})), AuthorizationError)
    assert isinstance(error_from_response(_response(403, {"error": "quota_exceeded", "message": "x"})), QuotaExceededError)
    assert isinstance(error_from_response(_response(404, {"error": "not_found", "message": "x"})), NotFoundError)
    assert isinstance(error_from_response(_response(422, {"detail": []})), ValidationError)
    assert isinstance(error_from_response(_response(502)), TransientNetworkError)


async def test_game_score_uses_catalog_multiplier():
    sent = []

    def accept(request):
        sent.append(request)
        return httpx.Response(200, json={"ok": True})

    async with httpx.AsyncClient(transport=httpx.MockTransport(accept), base_url="http://test") as http:
        api = StemPlayClient(user_id="u1", client=http)
        outcome = await report_game_score(api, "wordquest", raw_score=7)

    # wordquest is worth 5 points per raw point in games.yaml
    assert outcome.points == 35 and outcome.saved
    assert b'"points":35' in sent[0].content.replace(b" ", b"")


def test_multiplier_lookup():
    catalog = {"mathtrail": {"slug": "mathtrail", "multiplier": 10.0}}
    assert multiplier_for("mathtrail-lv3", catalog) == 10.0
    assert multiplier_for("game:MathTrail", catalog) == 10.0
    assert multiplier_for("nosuchgame", catalog) == 1.0
