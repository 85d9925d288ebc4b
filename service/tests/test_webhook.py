"""
Tests for the FastAPI app: Telegram webhook and the direct tool endpoint.

Run with: pytest service/tests/test_webhook.py -v
"""

import pytest
from fastapi.testclient import TestClient

from celestial_bot.agents.prompts import RESET_TEXT, WELCOME_TEXT
from celestial_bot.agents.schemas import SendResult
from celestial_bot.config import get_settings
from celestial_bot.main import app
from celestial_bot.telegram_bot import handlers
from celestial_bot.telegram_bot.telegram_api import TelegramAPIError
from celestial_bot.workflows.celestial_workflow import AGENT_STEP_ID, SEND_STEP_ID, WorkflowStepError

WEBHOOK = "/webhooks/telegram/action"


def telegram_update(text=None, chat_id=42):
    message = {
        "message_id": 5,
        "date": 1718950000,
        "chat": {"id": chat_id, "type": "private"},
        "from": {"id": 7, "is_bot": False, "first_name": "Asha", "username": "asha"},
    }
    if text is not None:
        message["text"] = text
    return {"update_id": 1001, "message": message}


@pytest.fixture
def client():
    # No context manager: startup (database file) is not needed here
    return TestClient(app)


@pytest.fixture
def telegram(monkeypatch, store):
    """Replace outbound Telegram calls and the workflow with recorders."""
    calls = {"sent": [], "actions": [], "workflow": []}

    async def fake_send(chat_id, text, parse_mode="Markdown"):
        calls["sent"].append((chat_id, text, parse_mode))
        return {"ok": True, "result": {"message_id": 1}}

    async def fake_action(chat_id, action="typing"):
        calls["actions"].append((chat_id, action))

    async def fake_workflow(message, thread_id, chat_id):
        calls["workflow"].append((message, thread_id, chat_id))
        return SendResult(sent=True, message_id=99)

    monkeypatch.setattr(handlers, "send_message", fake_send)
    monkeypatch.setattr(handlers, "send_chat_action", fake_action)
    monkeypatch.setattr(handlers, "run_celestial_workflow", fake_workflow)
    monkeypatch.setattr(handlers, "get_conversation_store", lambda: store)
    return calls


class TestWebhook:

    def test_text_message_runs_workflow(self, client, telegram):
        response = client.post(WEBHOOK, json=telegram_update("What can I see from Patna tonight?"))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "sent": True, "messageId": 99}
        assert telegram["workflow"] == [("What can I see from Patna tonight?", "telegram-42", 42)]
        assert telegram["actions"] == [(42, "typing")]

    def test_update_without_text_is_ignored(self, client, telegram):
        response = client.post(WEBHOOK, json=telegram_update(text=None))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "ignored": True}
        assert telegram["workflow"] == []

    def test_update_without_message_is_ignored(self, client, telegram):
        response = client.post(WEBHOOK, json={"update_id": 1002})

        assert response.json() == {"ok": True, "ignored": True}

    def test_non_object_body(self, client, telegram):
        response = client.post(WEBHOOK, json=[1, 2, 3])
        assert response.status_code == 400

    def test_invalid_json(self, client, telegram):
        response = client.post(WEBHOOK, content=b"{not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_secret_mismatch(self, client, telegram, monkeypatch):
        monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "s3cret")
        get_settings.cache_clear()

        response = client.post(
            WEBHOOK,
            json=telegram_update("hi"),
            headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
        )

        assert response.status_code == 403
        assert telegram["workflow"] == []

    def test_secret_match(self, client, telegram, monkeypatch):
        monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", "s3cret")
        get_settings.cache_clear()

        response = client.post(
            WEBHOOK,
            json=telegram_update("hi"),
            headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
        )

        assert response.status_code == 200
        assert len(telegram["workflow"]) == 1


class TestWorkflowFailures:

    def test_agent_failure_reported_with_200(self, client, telegram, monkeypatch):
        async def failing_workflow(message, thread_id, chat_id):
            raise WorkflowStepError(AGENT_STEP_ID, RuntimeError("gateway down"))

        monkeypatch.setattr(handlers, "run_celestial_workflow", failing_workflow)

        response = client.post(WEBHOOK, json=telegram_update("hi"))

        assert response.status_code == 200
        assert response.json() == {"ok": False, "step": AGENT_STEP_ID, "error": "gateway down"}
        # The user is told something went wrong
        assert telegram["sent"] == [(42, handlers.ERROR_TEXT, None)]

    def test_send_failure_not_retried(self, client, telegram, monkeypatch):
        async def failing_workflow(message, thread_id, chat_id):
            raise WorkflowStepError(SEND_STEP_ID, RuntimeError("HTTP 400"))

        monkeypatch.setattr(handlers, "run_celestial_workflow", failing_workflow)

        response = client.post(WEBHOOK, json=telegram_update("hi"))

        assert response.status_code == 200
        assert response.json()["step"] == SEND_STEP_ID
        assert telegram["sent"] == []


class TestCommands:

    def test_start(self, client, telegram):
        response = client.post(WEBHOOK, json=telegram_update("/start"))

        assert response.json() == {"ok": True, "command": "start"}
        assert telegram["sent"] == [(42, WELCOME_TEXT, "Markdown")]
        assert telegram["workflow"] == []

    def test_help_with_bot_suffix(self, client, telegram):
        response = client.post(WEBHOOK, json=telegram_update("/help@CelestialBot"))
        assert response.json()["command"] == "start"

    def test_reset_clears_memory(self, client, telegram, store):
        store.get_or_create_thread("telegram-42", "celestial-bot")
        store.append_message("telegram-42", "user", "I'm in Patna")

        response = client.post(WEBHOOK, json=telegram_update("/reset"))

        assert response.json() == {"ok": True, "command": "reset"}
        assert store.recent_messages("telegram-42") == []
        assert telegram["sent"] == [(42, RESET_TEXT, None)]

    def test_unknown_command_goes_to_agent(self, client, telegram):
        client.post(WEBHOOK, json=telegram_update("/mars"))
        assert telegram["workflow"] == [("/mars", "telegram-42", 42)]


class TestTelegramUnavailable:
    """Replies that cannot be delivered are reported, never a 500."""

    @pytest.fixture(autouse=True)
    def local_store(self, monkeypatch, store):
        monkeypatch.setattr(handlers, "get_conversation_store", lambda: store)

    def test_start_without_token(self, client):
        response = client.post(WEBHOOK, json=telegram_update("/start"))

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is False
        assert body["command"] == "start"
        assert "TELEGRAM_BOT_TOKEN" in body["error"]

    def test_reset_when_telegram_errors(self, client, store, bot_token, monkeypatch):
        async def telegram_500(chat_id, text, parse_mode="Markdown"):
            raise TelegramAPIError(500, {"ok": False, "description": "Internal Server Error"})

        monkeypatch.setattr(handlers, "send_message", telegram_500)
        store.get_or_create_thread("telegram-42", "celestial-bot")
        store.append_message("telegram-42", "user", "I'm in Patna")

        response = client.post(WEBHOOK, json=telegram_update("/reset"))

        assert response.status_code == 200
        assert response.json()["ok"] is False
        assert response.json()["command"] == "reset"
        # Memory is cleared even though the confirmation was lost
        assert store.recent_messages("telegram-42") == []

    def test_start_when_telegram_errors(self, client, bot_token, monkeypatch):
        async def telegram_500(chat_id, text, parse_mode="Markdown"):
            raise TelegramAPIError(500, {"ok": False})

        monkeypatch.setattr(handlers, "send_message", telegram_500)

        response = client.post(WEBHOOK, json=telegram_update("/help"))

        assert response.status_code == 200
        assert response.json()["ok"] is False

    def test_text_without_token_still_runs_workflow(self, client, monkeypatch):
        """The typing indicator is best effort; the workflow reports the failure."""
        async def failing_workflow(message, thread_id, chat_id):
            raise WorkflowStepError(SEND_STEP_ID, RuntimeError("TELEGRAM_BOT_TOKEN environment variable is not set"))

        monkeypatch.setattr(handlers, "run_celestial_workflow", failing_workflow)

        response = client.post(WEBHOOK, json=telegram_update("hi"))

        assert response.status_code == 200
        assert response.json()["step"] == SEND_STEP_ID


class TestHandlerHelpers:

    @pytest.mark.parametrize("text, expected", [
        ("/start", "start"),
        ("/Reset now", "reset"),
        ("/help@CelestialBot", "help"),
        ("hello", None),
        ("/", None),
    ])
    def test_parse_command(self, text, expected):
        assert handlers.parse_command(text) == expected

    def test_thread_id(self):
        assert handlers.thread_id_for_chat(-100123) == "telegram--100123"


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_tool_endpoint(self, client):
        response = client.post("/api/tools/celestial-visibility", json={
            "latitude": 25.6,
            "longitude": 85.1,
            "time": "2024-06-21T18:20:00Z",
            "timezone": "Asia/Kolkata",
        })

        assert response.status_code == 200
        body = response.json()
        assert body["observationTime"] == "2024-06-21T18:20:00.000Z"
        assert body["timezone"] == "Asia/Kolkata"
        assert len(body["celestialBodies"]) == 9
        assert "bestViewingTime" in body["celestialBodies"][0]

    def test_tool_endpoint_bad_latitude(self, client):
        response = client.post("/api/tools/celestial-visibility", json={"latitude": 120, "longitude": 0})
        assert response.status_code == 422

    def test_tool_endpoint_bad_timezone(self, client):
        response = client.post("/api/tools/celestial-visibility", json={
            "latitude": 10, "longitude": 10, "timezone": "Moon/Tranquility_Base",
        })
        assert response.status_code == 422
        assert "Unknown time zone" in response.json()["detail"]
