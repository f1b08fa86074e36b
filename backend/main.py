from contextlib import asynccontextmanager
from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from typing import Optional
import json
import logging

import config
from agent import handle_turn, stream_turn
from models import ChatRequest, Item, TurnResult
from database import (
    init_db,
    list_items,
    get_conversation,
    save_conversation,
    new_conversation
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def require_user(x_user_id: Optional[str]) -> str:
    """Every request is scoped to the caller named in X-User-Id."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()


def _conversation_id(user_id: str, requested: Optional[int]) -> int:
    if requested is not None:
        conversation = get_conversation(user_id, requested)
        if conversation["id"] is None:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return requested
    return new_conversation(user_id)


def _persist_turn(user_id: str, conversation_id: int, chat_request: ChatRequest, response: str):
    messages = [{"role": m.role, "content": m.content} for m in chat_request.history]
    messages.append({"role": "user", "content": chat_request.message})
    messages.append({"role": "assistant", "content": response})
    save_conversation(user_id, messages, conversation_id)


@app.get("/items")
def get_items(
    type: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    x_user_id: Optional[str] = Header(default=None),
) -> list[Item]:
    user_id = require_user(x_user_id)
    return list_items(user_id, type=type, status=status, priority=priority)


@app.get("/conversation")
def get_conversation_endpoint(
    conversation_id: Optional[int] = None,
    x_user_id: Optional[str] = Header(default=None),
) -> dict:
    """Get a saved conversation, or the caller's most recent one."""
    user_id = require_user(x_user_id)
    return get_conversation(user_id, conversation_id)


@app.post("/chat")
async def chat(chat_request: ChatRequest, x_user_id: Optional[str] = Header(default=None)) -> dict:
    """Run one agent turn and save it to the conversation."""
    user_id = require_user(x_user_id)
    conversation_id = _conversation_id(user_id, chat_request.conversation_id)

    result: TurnResult = await handle_turn(chat_request.message, chat_request.history, user_id)
    _persist_turn(user_id, conversation_id, chat_request, result.response)

    return {"conversation_id": conversation_id, **result.model_dump(mode="json")}


@app.post("/chat/stream")
async def chat_stream(chat_request: ChatRequest, x_user_id: Optional[str] = Header(default=None)):
    """Same turn as /chat, delivered as server-sent events."""
    user_id = require_user(x_user_id)
    conversation_id = _conversation_id(user_id, chat_request.conversation_id)

    async def event_generator():
        async for event in stream_turn(chat_request.message, chat_request.history, user_id):
            if event["type"] == "start":
                event["conversation_id"] = conversation_id
            elif event["type"] == "done":
                _persist_turn(user_id, conversation_id, chat_request, event["response"])
            yield f"data: {json.dumps(event, default=str)}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
