"""
FastAPI server for the real-time voice agent relay.

This module initializes and configures the FastAPI application that relays audio
between voice clients and the upstream Gemini Live API. It serves the relay
WebSocket endpoint, a health check, a read-only view of stored users and,
optionally, a built web frontend.

The server handles incoming WebSocket connections, routes messages to appropriate
handlers, and keeps each user's session log in the configured user store.
"""

import contextlib
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from voice_agent.bot.gemini_live import GeminiLiveConnector
from voice_agent.config.logging_config import configure_logging
from voice_agent.config.settings import RelayConfig, load_env_file
from voice_agent.services.phone_validator import normalize_phone_number
from voice_agent.services.user_store import UserStore, create_user_store
from voice_agent.websocket_manager import RelaySessionManager

# Load environment variables from .env file if it exists
load_env_file()

# Configure logging
logger = configure_logging()


def create_app(
    config: RelayConfig,
    user_store: Optional[UserStore] = None,
    connector=None,
) -> FastAPI:
    """
    Build the relay application.

    Args:
        config: Relay configuration
        user_store: Store backend; built from the configuration when omitted
        connector: Upstream connector; a GeminiLiveConnector when omitted

    Returns:
        FastAPI: The configured application
    """
    user_store = user_store or create_user_store(config)
    connector = connector or GeminiLiveConnector(config.api_key, config.model)
    relay_manager = RelaySessionManager(config, user_store, connector)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await user_store.close()
        logger.info("User store closed")

    app = FastAPI(
        title="Real-Time Voice Agent",
        description="Relay between voice clients and the Gemini Live API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.relay_manager = relay_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket endpoint for real-time voice conversations.

        The client sends one init message and then streams audio frames; the relay
        answers with status, agent_response and error messages.
        """
        await relay_manager.handle_websocket(websocket)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring system status.

        Returns:
            dict: Status information indicating the server is operational.
        """
        return {
            "status": "healthy",
            "upstream_api_key_configured": bool(config.api_key),
            "active_connections": len(relay_manager.conversation_manager.get_all_conversations()),
        }

    @app.get("/api/users/{phone}")
    async def get_user(phone: str):
        """Return a user's stored name and session log."""
        user = await user_store.get_user_by_phone(normalize_phone_number(phone))
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return user.model_dump(by_alias=True, mode="json")

    @app.get("/")
    async def root():
        """Root endpoint to display basic information about the API.

        Returns:
            dict: Basic information about the API and its purpose.
        """
        return {
            "name": "Real-Time Voice Agent",
            "description": "Relay between voice clients and the Gemini Live API",
            "version": "1.0.0",
            "endpoints": {
                "/ws": "WebSocket endpoint for voice conversations",
                "/health": "Health check endpoint",
                "/api/users/{phone}": "Stored sessions for a phone number",
            },
        }

    if config.frontend_dist_dir and Path(config.frontend_dist_dir).is_dir():
        app.mount("/app", StaticFiles(directory=config.frontend_dist_dir, html=True), name="frontend")
        logger.info(f"Serving frontend from {config.frontend_dist_dir}")

    return app


settings = RelayConfig.from_env()
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{settings.host}:{settings.port}")
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        websocket_ping_interval=5,  # More frequent pings to keep connections alive
        websocket_max_size=16777216,  # 16MB - large enough for audio chunks
        websocket_ping_timeout=20,  # Timeout for pings to detect dead connections
        http="h11",
    )
