"""
HTTP API for the tutor.

Exposes:
- Tutor API: one-off replies and word lookups
- Conversation API: create/read conversations and send messages
- Speech API: read text or a stored message aloud, stop, status
- Event API: query emitted events by session_id

Services are resolved through FastAPI dependencies (get_tutor_service,
get_tutor_session) so they can be overridden in tests.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from logging_setup import get_logger, Component as LogComponent
from observability.event_store import event_store
from observability.events import Component as ObsComponent, EventEmitter, Severity
from speech_pipeline.config import get_config as get_speech_config
from speech_pipeline.google_cloud_tts import GoogleCloudTTSBackend
from speech_pipeline.orchestrator import SynthesisOrchestrator
from speech_pipeline.sinks import SoundDeviceSink

from .config import get_config
from .conversation import ConversationManager
from .errors import (
    ConversationNotFoundError,
    MessageNotFoundError,
    ProviderErrorCategory,
    ProviderErrorHandler,
)
from .gemini_client import GeminiClient
from .instructions import get_scenario
from .service import TutorService, TutorSession

logger = get_logger(LogComponent.API)
emitter = EventEmitter(ObsComponent.API)

router = APIRouter()

_service: Optional[TutorService] = None
_session: Optional[TutorSession] = None
_tts_backend: Optional[GoogleCloudTTSBackend] = None


def get_tutor_service() -> TutorService:
    """Get or create the global tutor service."""
    global _service
    if _service is None:
        config = get_config()
        client = GeminiClient(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            timeout_seconds=config.gemini_timeout_seconds,
        )
        _service = TutorService(client, get_scenario(config.scenario))
    return _service


def get_tutor_session(service: TutorService = Depends(get_tutor_service)) -> TutorSession:
    """Get or create the global conversation loop."""
    global _session, _tts_backend
    if _session is None:
        config = get_config()
        speech_config = get_speech_config()
        # Also used for on-demand speech; unsupported without an API key or audio device
        _tts_backend = GoogleCloudTTSBackend(
            api_key=speech_config.google_tts_api_key,
            sink=SoundDeviceSink(),
            config=speech_config,
        )
        _session = TutorSession(
            service,
            ConversationManager(service.scenario),
            orchestrator=SynthesisOrchestrator(_tts_backend, speech_config),
            auto_speak=config.auto_speak,
        )
    return _session


# --- Tutor API ---


class ReplyRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[str] = Field(default_factory=list)
    session_id: str = "unknown"


class WordRequest(BaseModel):
    word: str = Field(..., min_length=1)
    session_id: str = "unknown"


@router.post("/tutor/reply")
async def tutor_reply(
    req: ReplyRequest,
    service: TutorService = Depends(get_tutor_service),
) -> Dict[str, Any]:
    """
    Tutor reply to one message.

    Always 200: provider failures produce the default apology reply.
    """
    reply = await service.respond(req.message, req.history, session_id=req.session_id)
    return reply.to_payload()


@router.post("/tutor/word")
async def tutor_word(
    req: WordRequest,
    service: TutorService = Depends(get_tutor_service),
) -> Dict[str, Any]:
    lookup = await service.lookup_word(req.word, session_id=req.session_id)
    return {"word": req.word, **lookup.to_payload()}


# --- Conversation API ---


class CreateConversationRequest(BaseModel):
    name: str = Field("New Chat", min_length=1)


class SendMessageRequest(BaseModel):
    text: str


@router.post("/conversations", status_code=201)
async def create_conversation(
    req: Optional[CreateConversationRequest] = None,
    session: TutorSession = Depends(get_tutor_session),
) -> Dict[str, Any]:
    name = req.name if req else "New Chat"
    conversation = session.conversations.create(name)
    emitter.emit(
        "conversation.created",
        session_id=conversation.conversation_id,
        severity=Severity.INFO,
        name=name,
    )
    return conversation.to_dict()


@router.get("/conversations")
async def list_conversations(session: TutorSession = Depends(get_tutor_session)) -> List[Dict[str, Any]]:
    return [
        {"id": c.conversation_id, "name": c.name, "created_at": c.created_at.isoformat()}
        for c in session.conversations.list()
    ]


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    session: TutorSession = Depends(get_tutor_session),
) -> Dict[str, Any]:
    conversation = session.conversations.get(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation.to_dict()


@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    session: TutorSession = Depends(get_tutor_session),
) -> None:
    if not session.conversations.delete(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.post("/conversations/{conversation_id}/messages")
async def send_message(
    conversation_id: str,
    req: SendMessageRequest,
    session: TutorSession = Depends(get_tutor_session),
) -> Dict[str, Any]:
    try:
        message = await session.send(conversation_id, req.text)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    if message is None:
        raise HTTPException(status_code=400, detail="Message text is empty")
    return message.to_dict()


# --- Speech API ---


class SpeakRequest(BaseModel):
    """Either text, or a stored message addressed by conversation_id and message_id."""

    text: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    session_id: str = "unknown"


@router.post("/speech/speak", status_code=202)
async def speak(
    req: SpeakRequest,
    session: TutorSession = Depends(get_tutor_session),
) -> Dict[str, Any]:
    """
    Start reading text or a stored message aloud, replacing whatever is playing.

    Returns immediately; playback continues in the background.
    """
    by_message = bool(req.conversation_id and req.message_id)
    if not by_message and not (req.text and req.text.strip()):
        raise HTTPException(status_code=400, detail="Provide text, or conversation_id and message_id")

    if not session.speech_supported:
        raise HTTPException(
            status_code=503,
            detail=ProviderErrorHandler.get_user_message(ProviderErrorCategory.SPEECH_UNSUPPORTED),
        )

    if by_message:
        try:
            session.speak_message(req.conversation_id, req.message_id)
        except ConversationNotFoundError:
            raise HTTPException(status_code=404, detail="Conversation not found")
        except MessageNotFoundError:
            raise HTTPException(status_code=404, detail="Message not found")
    else:
        session.speak_text(req.text, session_id=req.session_id)
    return {"status": "speaking"}


@router.post("/speech/stop")
async def stop_speech(session: TutorSession = Depends(get_tutor_session)) -> Dict[str, Any]:
    was_speaking = session.stop_speaking()
    return {"status": "stopped", "was_speaking": was_speaking}


@router.get("/speech/status")
async def speech_status(session: TutorSession = Depends(get_tutor_session)) -> Dict[str, Any]:
    return {
        "supported": session.speech_supported,
        "is_speaking": session.is_speaking,
        "auto_speak": session.auto_speak,
    }


# --- Event API ---


@router.get("/events")
async def get_events(
    session_id: str = Query(..., min_length=1),
    event_type: Optional[str] = Query(None, description="Exact type, or a prefix ending in '.'"),
    component: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=1000),
) -> Dict[str, Any]:
    events = event_store.query(
        session_id=session_id,
        event_type=event_type,
        component=component,
        limit=limit,
    )
    return {"session_id": session_id, "events": events, "count": len(events)}


@router.get("/health")
async def health() -> Dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "component": "tutor", "events": event_store.get_stats()}


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_tutor_session(get_tutor_service())
    if _tts_backend is not None and _tts_backend.supported:
        await _tts_backend.load_voices()
    logger.info("Tutor API started", auto_speak=get_config().auto_speak)
    yield
    # Close pooled HTTP sessions
    if _service is not None:
        await _service.client.aclose()
    if _tts_backend is not None:
        await _tts_backend.aclose()


app = FastAPI(title="VictorAI Tutor", lifespan=lifespan)
app.include_router(router)
