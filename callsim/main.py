from __future__ import annotations

import contextlib
import sys
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from . import characters
from .call_memory import ConversationSession, SessionStore
from .claude_llm import ClaudeGateway, split_end_call
from .config import Settings, settings as default_settings
from .errors import CallSimError, ValidationError
from .kurdish_tts import KurdishTTSGateway

SESSION_TOKEN_KEY = "sid"


class SelectCharacterRequest(BaseModel):
    character: str = ""


class SendMessageRequest(BaseModel):
    message: str = ""


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


def _session(request: Request) -> ConversationSession:
    store: SessionStore = request.app.state.store
    token, session = store.resolve(request.session.get(SESSION_TOKEN_KEY))
    request.session[SESSION_TOKEN_KEY] = token
    return session


def _existing_session(request: Request) -> Optional[ConversationSession]:
    store: SessionStore = request.app.state.store
    return store.get(request.session.get(SESSION_TOKEN_KEY))


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    store: Optional[SessionStore] = None,
) -> FastAPI:
    settings = settings or default_settings
    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_sec))
    client = http_client

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Credentials loaded: {}", settings.credential_summary())
        logger.info("Characters: {}", ", ".join(c.id for c in characters.all_characters()))
        logger.info("API listening on http://localhost:{}", settings.port)
        try:
            yield
        finally:
            if owns_client:
                await client.aclose()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store if store is not None else SessionStore(max_idle_sec=settings.session_max_age)
    app.state.llm = ClaudeGateway(settings, client)
    app.state.tts = KurdishTTSGateway(settings, client)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie,
        max_age=settings.session_max_age,
        same_site="lax",
        https_only=False,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=settings.cors_origin_regex(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > settings.max_body_bytes:
            return _failure(413, "Request body too large")
        return await call_next(request)

    @app.middleware("http")
    async def reject_foreign_origins(request: Request, call_next):
        origin = request.headers.get("origin")
        if not settings.origin_allowed(origin):
            logger.warning("CORS rejected origin {}", origin)
            return _failure(403, "Not allowed by CORS")
        return await call_next(request)

    @app.exception_handler(CallSimError)
    async def _callsim_error(request: Request, exc: CallSimError):
        if exc.status_code >= 500:
            logger.error("{} failed: {}", request.url.path, exc.message)
        return _failure(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(_request: Request, _exc: RequestValidationError):
        return _failure(400, "Invalid request")

    @app.exception_handler(Exception)
    async def _unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: {}", exc)
        return _failure(500, "Server error")

    @app.get("/api/health")
    async def health():
        return {"ok": True}

    @app.post("/api/select_character")
    async def select_character(request: Request, body: Optional[SelectCharacterRequest] = None):
        character_id = body.character if body else ""
        character = characters.lookup(character_id)
        if character is None:
            raise ValidationError("Invalid character")

        session = _session(request)
        SessionStore.set_selected_character(session, character.id)
        logger.info("Character selected: {}", character.id)

        initial_message = await app.state.llm.generate_greeting(character)
        initial_audio = None
        if initial_message:
            SessionStore.append_message(session, "assistant", initial_message)
            initial_audio = await app.state.tts.synthesize(initial_message, character.speaker_id)

        return {
            "success": True,
            "character": character.profile(),
            "initial_message": initial_message,
            "initial_audio": initial_audio,
        }

    @app.post("/api/send_message")
    async def send_message(request: Request, body: Optional[SendMessageRequest] = None):
        user_message = (body.message if body else "").strip()
        session = _existing_session(request)
        character = None
        if session is not None:
            character = characters.lookup(SessionStore.get_selected_character(session) or "")
        if character is None or not user_message:
            raise ValidationError("Invalid request")

        SessionStore.append_message(session, "user", user_message)
        # A failed reply leaves the user turn in history; there is no rollback.
        reply = await app.state.llm.generate_reply(
            character, user_message, SessionStore.get_history(session)
        )

        reply, end_call = split_end_call(reply)
        if end_call:
            logger.info("End-call marker received from {}", character.id)
        SessionStore.append_message(session, "assistant", reply)

        audio = await app.state.tts.synthesize(reply, character.speaker_id)
        return {"success": True, "response": reply, "audio": audio, "end_call": end_call}

    @app.post("/api/reset_conversation")
    async def reset_conversation(request: Request):
        session = _existing_session(request)
        if session is not None:
            SessionStore.reset_history(session)
        logger.debug("Conversation reset")
        return {"success": True}

    return app


app = create_app()


def serve() -> None:
    configure_logging(default_settings.log_level)
    uvicorn.run(app, host=default_settings.host, port=default_settings.port)


if __name__ == "__main__":
    serve()
