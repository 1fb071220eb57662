"""API routers."""

from lingua.routers.audio import router as audio_router
from lingua.routers.streaming import router as streaming_router

__all__ = ["audio_router", "streaming_router"]
