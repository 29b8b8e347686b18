"""
Tests for the tutor HTTP API.

Verifies:
- POST /tutor/reply and /tutor/word (camelCase, absent fields omitted)
- Word lookups are correlated by session_id
- Conversation create / read / message / delete
- Speech: speak text or a stored message, stop, status
- GET /events by session_id
- GET /health
"""
import pytest
from fastapi.testclient import TestClient

from observability.event_store import event_store
from tutor.api import app, get_tutor_service, get_tutor_session
from tutor.conversation import ConversationManager
from tutor.instructions import load_scenario
from tutor.service import TutorService, TutorSession


class FakeClient:
    model = "fake-model"

    def __init__(self):
        self.responses = []

    async def complete(self, prompt):
        if not self.responses:
            raise ConnectionError("connection refused")
        return self.responses.pop(0)


class FakeOrchestrator:
    def __init__(self, supported=True):
        self.supported = supported
        self.is_speaking = False
        self.spoken = []

    def speak(self, text, on_complete=None, on_error=None):
        self.spoken.append(text)
        self.is_speaking = self.supported

    def stop(self):
        self.is_speaking = False


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def orchestrator():
    return FakeOrchestrator()


@pytest.fixture
def client(fake_client, orchestrator):
    """FastAPI test client with an in-memory tutor."""
    scenario = load_scenario("default")
    service = TutorService(fake_client, scenario)
    session = TutorSession(service, ConversationManager(scenario), orchestrator)

    app.dependency_overrides[get_tutor_service] = lambda: service
    app.dependency_overrides[get_tutor_session] = lambda: session
    event_store.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()
    event_store.clear()


def test_reply(client, fake_client):
    fake_client.responses.append(
        '{"reply": "Привет means hello.", "followUp": "Can you say it?", '
        '"pronunciationTip": {"word": "Привет", "phonetic": "/prʲɪˈvʲet/", "tip": "Stress the last syllable"}}'
    )

    response = client.post("/tutor/reply", json={"message": "How do I say hello?"})

    assert response.status_code == 200
    data = response.json()
    assert data["reply"] == "Привет means hello."
    assert data["followUp"] == "Can you say it?"
    assert data["pronunciationTip"]["phonetic"] == "/prʲɪˈvʲet/"
    assert "corrections" not in data
    assert "vocabularyTip" not in data


def test_reply_provider_failure_is_still_200(client):
    response = client.post("/tutor/reply", json={"message": "hello", "session_id": "chat-x"})

    assert response.status_code == 200
    assert response.json()["reply"].startswith("I'm sorry, I had trouble processing that.")

    events = client.get("/events", params={"session_id": "chat-x", "event_type": "provider.error"}).json()
    assert events["count"] == 1
    assert events["events"][0]["category"] == "provider.network_error"


def test_reply_requires_message(client):
    assert client.post("/tutor/reply", json={"message": ""}).status_code == 422


def test_word(client, fake_client):
    fake_client.responses.append('{"phonetic": "/kot/", "examples": [], "translation": "cat"}')

    response = client.post("/tutor/word", json={"word": "кот"})

    assert response.status_code == 200
    assert response.json() == {"word": "кот", "phonetic": "/kot/", "examples": [], "translation": "cat"}


def test_word_events_by_session(client, fake_client):
    fake_client.responses.append('{"translation": "cat"}')

    client.post("/tutor/word", json={"word": "кот", "session_id": "chat-w"})

    events = client.get("/events", params={"session_id": "chat-w", "event_type": "llm."}).json()
    assert [e["event_type"] for e in events["events"]] == ["llm.request", "llm.response"]
    assert events["events"][0]["operation"] == "word_lookup"


def test_conversation_flow(client, fake_client):
    created = client.post("/conversations", json={"name": "Food"})
    assert created.status_code == 201
    conversation = created.json()
    assert conversation["name"] == "Food"
    assert conversation["messages"][0]["role"] == "tutor"
    conversation_id = conversation["id"]

    fake_client.responses.append('{"reply": "Хлеб means bread.", "followUp": "Do you like хлеб?"}')
    sent = client.post(f"/conversations/{conversation_id}/messages", json={"text": "What is bread?"})
    assert sent.status_code == 200
    assert sent.json()["content"] == "Хлеб means bread."
    assert sent.json()["followUp"] == "Do you like хлеб?"

    fetched = client.get(f"/conversations/{conversation_id}").json()
    assert [m["role"] for m in fetched["messages"]] == ["tutor", "user", "tutor"]

    listed = client.get("/conversations").json()
    assert [c["id"] for c in listed] == [conversation_id]

    events = client.get("/events", params={"session_id": conversation_id, "event_type": "llm."}).json()
    assert [e["event_type"] for e in events["events"]] == ["llm.request", "llm.response"]

    assert client.delete(f"/conversations/{conversation_id}").status_code == 204
    assert client.get(f"/conversations/{conversation_id}").status_code == 404


def test_create_conversation_default_name(client):
    response = client.post("/conversations")
    assert response.status_code == 201
    assert response.json()["name"] == "New Chat"


def test_unknown_conversation(client):
    assert client.get("/conversations/chat-missing").status_code == 404
    assert client.delete("/conversations/chat-missing").status_code == 404
    response = client.post("/conversations/chat-missing/messages", json={"text": "hi"})
    assert response.status_code == 404


def test_blank_message_rejected(client):
    conversation_id = client.post("/conversations").json()["id"]
    response = client.post(f"/conversations/{conversation_id}/messages", json={"text": "   "})
    assert response.status_code == 400


def test_events_require_session_id(client):
    assert client.get("/events").status_code == 422


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["component"] == "tutor"


class TestSpeech:
    """On-demand speech routes."""

    def test_speak_text(self, client, orchestrator):
        response = client.post("/speech/speak", json={"text": "Привет means hello"})

        assert response.status_code == 202
        assert orchestrator.spoken == ["Привет means hello"]
        assert client.get("/speech/status").json() == {
            "supported": True,
            "is_speaking": True,
            "auto_speak": False,
        }

    def test_speak_stored_message(self, client, orchestrator):
        conversation = client.post("/conversations").json()
        greeting = conversation["messages"][0]

        response = client.post(
            "/speech/speak",
            json={"conversation_id": conversation["id"], "message_id": greeting["id"]},
        )

        assert response.status_code == 202
        assert orchestrator.spoken == [greeting["content"]]

    def test_speak_unknown_message(self, client):
        conversation_id = client.post("/conversations").json()["id"]

        missing_message = client.post(
            "/speech/speak", json={"conversation_id": conversation_id, "message_id": "missing"}
        )
        missing_conversation = client.post(
            "/speech/speak", json={"conversation_id": "chat-missing", "message_id": "missing"}
        )

        assert missing_message.status_code == 404
        assert missing_message.json()["detail"] == "Message not found"
        assert missing_conversation.status_code == 404

    def test_speak_requires_text_or_message(self, client, orchestrator):
        assert client.post("/speech/speak", json={}).status_code == 400
        assert client.post("/speech/speak", json={"text": "   "}).status_code == 400
        assert client.post("/speech/speak", json={"conversation_id": "chat-1"}).status_code == 400
        assert orchestrator.spoken == []

    def test_stop(self, client):
        client.post("/speech/speak", json={"text": "Спасибо"})

        first = client.post("/speech/stop").json()
        second = client.post("/speech/stop").json()

        assert first == {"status": "stopped", "was_speaking": True}
        assert second == {"status": "stopped", "was_speaking": False}
        assert client.get("/speech/status").json()["is_speaking"] is False

    @pytest.mark.parametrize("orchestrator", [FakeOrchestrator(supported=False)])
    def test_speak_unsupported(self, client, orchestrator):
        response = client.post("/speech/speak", json={"text": "Привет"})

        assert response.status_code == 503
        assert response.json()["detail"] == "Speech is not available on this device."
        assert orchestrator.spoken == []
        assert client.get("/speech/status").json()["supported"] is False
