from contextlib import asynccontextmanager
from functools import partial
from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from routers.chats import chats_router
from routers.users import users_router
from backend import RedisBackend, get_backend
from relay import RedisRelay
from realtime.hub import ChatHub, get_hub
from schemas.chats import HealthResponse
from constants import CORS_ORIGINS, FANOUT_BACKEND, LOG_FILE, LOG_LEVEL, WS_PATH
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(backend=None, fanout_backend: str = FANOUT_BACKEND) -> FastAPI:
    """Build the application.

    ``backend`` is the persistence store; a RedisBackend is connected on startup
    when none is given. The ChatHub holding rooms and connections lives exactly as
    long as the application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store = backend if backend is not None else RedisBackend()
        relay_factory = None
        if fanout_backend == "redis":
            relay_factory = partial(RedisRelay, store)
        hub = ChatHub(relay_factory=relay_factory)
        app.state.backend = store
        app.state.hub = hub
        hub.start()
        try:
            yield
        finally:
            await hub.stop()

    app = FastAPI(title="chat-fanout", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chats_router)
    app.include_router(users_router)

    @app.get("/health", response_model=HealthResponse)
    async def health(hub: ChatHub = Depends(get_hub), store=Depends(get_backend)):
        try:
            store_ok = bool(store.ping())
        except Exception as e:
            logger.warning(f"Store health check failed: {e}")
            store_ok = False
        return HealthResponse(
            status="ok" if store_ok else "degraded",
            store="ok" if store_ok else "unreachable",
            **hub.stats(),
        )

    @app.websocket(WS_PATH)
    async def websocket_endpoint(websocket: WebSocket):
        """Live channel for one client session.

        Clients send join_chat / leave_chat / typing frames and receive
        new_message / user_typing frames for every conversation they joined.
        """
        hub: ChatHub = websocket.app.state.hub
        await websocket.accept()
        connection = hub.protocol.open(websocket)
        logger.info(f"WebSocket connection accepted: {connection.connection_id}")

        message_count = 0
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
                data = message.get("text")
                if data is None:
                    logger.warning(f"Ignoring non-text frame from connection {connection.connection_id}")
                    continue
                message_count += 1
                logger.debug(f"Received frame #{message_count} from connection {connection.connection_id}")
                hub.protocol.handle_frame(connection, data)
        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected normally for connection {connection.connection_id}")
        except Exception as e:
            logger.error(f"Error receiving frame from connection {connection.connection_id}: {e}", exc_info=True)
        finally:
            await hub.protocol.close(connection)
            try:
                await websocket.close()
            except Exception as e:
                # Already closed by the client
                logger.debug(f"Error closing WebSocket: {e}")

    logger.info("FastAPI application initialized")
    return app


app = create_app()
