from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from routers.rooms import rooms_router
from backend import build_registry
from broadcast import BroadcastRouter
from sessions import ConnectionTable
from session_manager import INVALID_PAYLOAD, SessionManager
from schemas.rooms import ClientEvent
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
import uuid
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(registry=None) -> FastAPI:
    """Build the relay application around an explicitly owned room registry."""
    app = FastAPI()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    connections = ConnectionTable()
    app.state.registry = registry if registry is not None else build_registry()
    app.state.connections = connections
    app.state.session_manager = SessionManager(app.state.registry, connections, BroadcastRouter(connections))

    app.include_router(rooms_router)

    @app.get("/")
    async def status():
        return {"Connected": True}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """One relay connection. Frames are JSON objects `{"event": ..., "data": ...}`."""
        manager: SessionManager = websocket.app.state.session_manager
        await websocket.accept()
        connection_id = str(uuid.uuid4())
        session = manager.connect(connection_id, websocket)

        try:
            while True:
                try:
                    raw = await websocket.receive_text()
                except WebSocketDisconnect:
                    logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                    break

                try:
                    frame = ClientEvent.model_validate_json(raw)
                except ValidationError:
                    logger.debug(f"Malformed frame from connection {connection_id}")
                    await manager.reject(session, INVALID_PAYLOAD, "Frames must be JSON objects with an 'event' field")
                    continue

                logger.debug(f"Received {frame.event} from connection {connection_id}")
                await manager.dispatch(session, frame.event, frame.data)
        except Exception as e:
            logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
        finally:
            await manager.disconnect(session)
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Error closing WebSocket: {e}")

    logger.info("FastAPI application initialized")
    return app


app = create_app()
