"""WebSocket server exposing a simulator session per connection."""

import asyncio
import json
import secrets
import uuid
from typing import Any, Optional

from websockets.asyncio.server import serve, ServerConnection

from .classifier import ResponseClassifier
from .config.settings import Settings
from .dialogue_editor import DialogueEditor
from .models import ConversationSession, Workflow, WorkflowVersion
from .scheduler import AsyncioScheduler
from .scheduling import SchedulingError
from .state_machine import ConversationOrchestrator


def snapshot_event(session: ConversationSession) -> dict[str, Any]:
    return {"type": "snapshot", **session.to_dict()}


def error_event(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


def http_response(status: str, body: bytes = b"") -> bytes:
    headers = [f"HTTP/1.1 {status}", f"Content-Length: {len(body)}"]
    if body:
        headers.append("Content-Type: application/json")
    return ("\r\n".join(headers) + "\r\n\r\n").encode() + body


class SmsDemoServer:
    """WebSocket server driving one conversation per UI connection."""

    def __init__(self, settings: Settings, classifier: ResponseClassifier):
        self.settings = settings
        self.classifier = classifier
        self.active_sessions: dict[str, ConversationOrchestrator] = {}

    def create_orchestrator(self, session_id: str) -> ConversationOrchestrator:
        return ConversationOrchestrator(
            classifier=self.classifier,
            scheduler=AsyncioScheduler(),
            timing=self.settings.timing,
            lead=self.settings.lead,
            session_id=session_id,
        )

    async def handle_connection(self, websocket: ServerConnection) -> None:
        """Handle a single WebSocket connection."""
        session_id = str(uuid.uuid4())
        tag = f"[SESSION {session_id[:8]}]"
        outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        background: set[asyncio.Task] = set()
        sender = asyncio.create_task(self._drain(websocket, outbox))
        orchestrator: Optional[ConversationOrchestrator] = None

        print(f"{tag} Client connected")

        try:
            if not await self._authenticate(websocket, outbox):
                await outbox.join()
                await websocket.close(1008, "Authentication failed")
                return

            orchestrator = self.create_orchestrator(session_id)
            orchestrator.subscribe(lambda session: outbox.put_nowait(snapshot_event(session)))
            editor = DialogueEditor(
                lambda: orchestrator.session,
                on_change=lambda: outbox.put_nowait(snapshot_event(orchestrator.session)),
            )
            self.active_sessions[session_id] = orchestrator
            orchestrator.start()

            async for raw in websocket:
                # Log message receipt without exposing content
                print(f"{tag} Received event ({len(raw)} chars)")
                try:
                    payload = json.loads(raw)
                except ValueError:
                    outbox.put_nowait(error_event("Malformed JSON"))
                    continue
                if not isinstance(payload, dict):
                    outbox.put_nowait(error_event("Expected a JSON object"))
                    continue

                reply = self.handle_event(orchestrator, editor, payload, background)
                if reply:
                    outbox.put_nowait(reply)

        except Exception as e:
            print(f"{tag} Error: {e}")
        finally:
            for task in background:
                task.cancel()
            if orchestrator is not None:
                orchestrator.close()
            self.active_sessions.pop(session_id, None)
            sender.cancel()
            print(f"{tag} Disconnected")

    def handle_event(
        self,
        orchestrator: ConversationOrchestrator,
        editor: DialogueEditor,
        payload: dict[str, Any],
        background: set[asyncio.Task],
    ) -> Optional[dict[str, Any]]:
        """Apply one UI event. Returns a direct reply, if any."""
        try:
            match payload.get("type"):
                case "select_option":
                    orchestrator.submit_option(str(payload["label"]))
                case "submit_text":
                    # Runs concurrently so the UI stays interactive during classification.
                    task = asyncio.create_task(orchestrator.submit_free_text(str(payload["text"])))
                    background.add(task)
                    task.add_done_callback(background.discard)
                case "select_workflow":
                    orchestrator.select_workflow(Workflow(payload["workflow"]))
                case "select_version":
                    orchestrator.select_version(WorkflowVersion(payload["version"]))
                case "toggle_ai":
                    orchestrator.toggle_ai()
                case "reset":
                    orchestrator.reset()
                case "accept_call":
                    orchestrator.accept_call()
                case "decline_call":
                    orchestrator.decline_call()
                case "end_call":
                    orchestrator.end_call()
                case "confirm_datetime":
                    orchestrator.confirm_date_time(
                        payload.get("date", ""),
                        payload.get("hour", ""),
                        payload.get("minute", ""),
                        payload.get("ampm", ""),
                    )
                case "cancel_datetime":
                    orchestrator.cancel_date_time()
                case "edit_message":
                    options = payload.get("options")
                    if options is not None and not isinstance(options, list):
                        raise TypeError("options must be a list of strings")
                    editor.save(
                        str(payload["id"]),
                        str(payload["text"]),
                        None if options is None else [str(option) for option in options],
                    )
                case "remove_option":
                    editor.remove_option(str(payload["id"]), int(payload["index"]))
                case "snapshot":
                    return snapshot_event(orchestrator.session)
                case other:
                    return error_event(f"Unknown event type: {other!r}")
        except SchedulingError as e:
            return {"type": "rejected", "message": e.message}
        except KeyError as e:
            return error_event(f"Missing or unknown field: {e}")
        except (TypeError, ValueError) as e:
            return error_event(str(e))
        return None

    async def _authenticate(
        self, websocket: ServerConnection, outbox: asyncio.Queue[dict[str, Any]]
    ) -> bool:
        """Shared passphrase gate. Disabled when no passphrase is set."""
        passphrase = self.settings.gate.passphrase
        if not passphrase:
            return True

        outbox.put_nowait({"type": "auth_required"})
        for attempt in range(1, self.settings.gate.max_attempts + 1):
            raw = await websocket.recv()
            try:
                payload = json.loads(raw)
            except ValueError:
                payload = {}
            supplied = str(payload.get("passphrase", "")).strip() if isinstance(payload, dict) else ""
            if secrets.compare_digest(supplied.encode(), passphrase.encode()):
                outbox.put_nowait({"type": "authenticated"})
                return True
            remaining = self.settings.gate.max_attempts - attempt
            outbox.put_nowait(error_event(
                f"Incorrect password. {remaining} attempt(s) remaining."
            ))
        return False

    async def _drain(self, websocket: ServerConnection, outbox: asyncio.Queue[dict[str, Any]]) -> None:
        """Send queued events in order."""
        while True:
            event = await outbox.get()
            try:
                await websocket.send(json.dumps(event))
            finally:
                outbox.task_done()

    async def _handle_health_check(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Answer `GET /health` with the number of live conversations."""
        try:
            request = await reader.read(1024)
            if request.startswith((b"GET /health", b"GET / ")):
                body = json.dumps({
                    "status": "ok",
                    "active_sessions": len(self.active_sessions),
                }).encode()
                writer.write(http_response("200 OK", body))
            else:
                writer.write(http_response("404 Not Found"))
            await writer.drain()
        finally:
            writer.close()
            await writer.wait_closed()

    async def _start_health_server(self) -> asyncio.Server:
        """Start the HTTP health check server."""
        host = self.settings.server.host
        health_port = self.settings.server.health_port
        server = await asyncio.start_server(
            self._handle_health_check, host, health_port
        )
        print(f"Health check running on http://{host}:{health_port}/health")
        return server

    async def start(self) -> None:
        """Start the WebSocket server and health check endpoint."""
        host = self.settings.server.host
        port = self.settings.server.port

        print("=" * 50)
        print("TWO-WAY SMS SIMULATOR")
        print("=" * 50)
        print(f"WebSocket server on ws://{host}:{port}")
        print(f"AI classifier: {'configured' if self.settings.classifier.is_configured else 'pattern matching only'}")
        print("=" * 50)

        health_server = await self._start_health_server()

        try:
            async with health_server, serve(self.handle_connection, host, port) as ws_server:
                await ws_server.serve_forever()
        finally:
            await self.classifier.aclose()
