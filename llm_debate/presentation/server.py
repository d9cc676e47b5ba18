"""
FastAPI server for the debate page: REST controls, per-turn adapter
endpoints and a WebSocket that pushes session events to the browser.
"""

import logging
from pathlib import Path
from typing import List, Mapping, Optional, Set

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from pydantic import BaseModel

from ..config import ServerConfig
from ..debate.controller import SessionError, TurnController
from ..debate.export import TranscriptError, export_filename, from_dict, to_json, to_text
from ..debate.schema import Message, Speaker
from ..providers.base import TurnError, TurnProvider
from ..shared.event_bus import Event, EventBus, EventType
from ..shared.protocol import ServerMessage

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).parent / "static"


# --- Request bodies ---
class MessageModel(BaseModel):
    speaker: Speaker
    content: str

    def to_message(self) -> Message:
        return Message(speaker=self.speaker, content=self.content)


class TurnRequest(BaseModel):
    history: List[MessageModel] = []
    topic: Optional[str] = None


class StartRequest(BaseModel):
    topic: str


class ImportRequest(BaseModel):
    topic: str
    history: List[MessageModel] = []


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


class DebateServer:
    """
    FastAPI-based server that drives the shared debate session and
    broadcasts its events to connected web clients.
    """

    def __init__(
        self,
        config: ServerConfig,
        event_bus: EventBus,
        controller: TurnController,
        providers: Mapping[Speaker, TurnProvider],
    ):
        self.config = config
        self.bus = event_bus
        self.controller = controller
        self.providers = providers
        self.app = FastAPI(title="LLM Debate", docs_url=None)
        self._active_connections: Set[WebSocket] = set()

        self._setup_error_handlers()
        self._setup_routes()

        self.bus.subscribe(EventType.MESSAGE_APPENDED, self._handle_message)
        self.bus.subscribe(EventType.SESSION_STATUS, self._handle_status)
        self.bus.subscribe(EventType.TURN_FAILED, self._handle_failure)

    def _setup_error_handlers(self):
        """Every failure reaches the browser as {"error": "..."}."""

        @self.app.exception_handler(RequestValidationError)
        async def validation_error(request: Request, exc: RequestValidationError):
            return _error(f"Invalid request: {exc.errors()}", 400)

        @self.app.exception_handler(TranscriptError)
        async def transcript_error(request: Request, exc: TranscriptError):
            return _error(str(exc), 400)

        @self.app.exception_handler(SessionError)
        async def session_error(request: Request, exc: SessionError):
            return _error(str(exc), 409)

        @self.app.exception_handler(TurnError)
        async def turn_error(request: Request, exc: TurnError):
            return _error(exc.message, 500)

        @self.app.exception_handler(Exception)
        async def unexpected_error(request: Request, exc: Exception):
            logger.error("Unhandled error on %s: %s", request.url.path, exc)
            return _error(f"{type(exc).__name__}: {exc}", 500)

    def _setup_routes(self):
        """Configure FastAPI routes."""

        @self.app.get("/")
        async def index():
            html_path = STATIC_DIR / "index.html"
            if html_path.exists():
                return FileResponse(html_path, media_type="text/html")
            return HTMLResponse("<h1>LLM Debate</h1><p>Static files not found.</p>")

        @self.app.get("/health")
        async def health():
            return {"status": "ok", "connections": len(self._active_connections)}

        # -- Stateless single turns --------------------------------------

        @self.app.post("/api/openai-turn")
        async def openai_turn(body: TurnRequest):
            return await self._single_turn(Speaker.OPENAI, body)

        @self.app.post("/api/llama-turn")
        async def llama_turn(body: TurnRequest):
            return await self._single_turn(Speaker.LLAMA, body)

        # -- Session controls ---------------------------------------------

        @self.app.get("/api/debate")
        async def debate_state():
            return self.controller.snapshot()

        @self.app.post("/api/debate/start")
        async def start(body: StartRequest):
            try:
                await self.controller.start(body.topic)
            except ValueError as e:
                return _error(str(e), 400)
            return self.controller.snapshot()

        @self.app.post("/api/debate/stop")
        async def stop():
            await self.controller.stop()
            return self.controller.snapshot()

        @self.app.post("/api/debate/resume")
        async def resume():
            await self.controller.resume()
            return self.controller.snapshot()

        @self.app.post("/api/debate/reset")
        async def reset():
            await self.controller.reset()
            return self.controller.snapshot()

        @self.app.get("/api/debate/export")
        async def export(format: str = "txt"):
            state = self.controller.state
            if format == "txt":
                body, media_type = to_text(state.topic, state.history), "text/plain"
            elif format == "json":
                body, media_type = to_json(state.topic, state.history), "application/json"
            else:
                return _error(f"Unsupported export format: {format}", 400)
            return Response(
                content=body,
                media_type=media_type,
                headers={"Content-Disposition": f'attachment; filename="{export_filename(format)}"'},
            )

        @self.app.post("/api/debate/import")
        async def import_transcript(body: ImportRequest):
            topic, history = from_dict(body.model_dump(mode="json"))
            await self.controller.restore(topic, history)
            return self.controller.snapshot()

        @self.app.websocket("/ws")
        async def websocket_endpoint(websocket: WebSocket):
            await websocket.accept()

            # Sync the current session to the new client
            await websocket.send_text(ServerMessage.sync(self.controller.snapshot()).to_json())

            self._active_connections.add(websocket)
            logger.info("Client connected. Total: %d", len(self._active_connections))
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                self._active_connections.discard(websocket)
                logger.info("Client disconnected. Total: %d", len(self._active_connections))

    async def _single_turn(self, speaker: Speaker, body: TurnRequest):
        """One stateless turn from ``speaker``; never touches the session."""
        history = [m.to_message() for m in body.history]
        message = await self.providers[speaker].take_turn(history, body.topic)
        return message.to_dict()

    async def _broadcast(self, message: ServerMessage):
        """Send a message to all connected clients."""
        if not self._active_connections:
            return
        text = message.to_json()
        disconnected = set()
        for ws in self._active_connections:
            try:
                await ws.send_text(text)
            except Exception:
                disconnected.add(ws)
        self._active_connections -= disconnected

    async def _handle_message(self, event: Event):
        data = event.data
        await self._broadcast(ServerMessage.message(data["speaker"], data["content"], data["round"]))

    async def _handle_status(self, event: Event):
        await self._broadcast(ServerMessage.status(event.data))

    async def _handle_failure(self, event: Event):
        await self._broadcast(ServerMessage.error(event.data["speaker"], event.data["error"]))

    async def start(self):
        """Start the uvicorn server."""
        import uvicorn
        config = uvicorn.Config(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level="warning",
            access_log=False,
        )
        server = uvicorn.Server(config)
        logger.info(
            "Debate server starting on %s:%d",
            self.config.host, self.config.port
        )
        await server.serve()

    async def stop(self):
        """Close all connections."""
        for ws in self._active_connections.copy():
            try:
                await ws.close()
            except Exception:
                logger.debug("Error closing websocket", exc_info=True)
        self._active_connections.clear()
        logger.info("Debate server stopped")
