"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from claude_chat import __version__
from claude_chat.api.endpoints import router
from claude_chat.services.conversation import close_conversation_service
from claude_chat.utils.logging import setup_logging

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await close_conversation_service()


app = FastAPI(
    lifespan=lifespan,
    title="Claude Chat",
    description="Streaming chat over the Anthropic Messages API with local tools (date/time, web search, weather).",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Conversation",
            "description": "Run user turns, either as a single JSON reply or as a server-sent event stream.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("claude_chat.main:app", host="127.0.0.1", port=8000, reload=True, log_level="info")
