"""
Todo API Server
Parses free-form text into todos with an AI model and manages a user's todo list
"""
import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from completion_client import create_provider
from config import get_settings
from errors import TodoServiceError, ValidationError
from extraction import extract_todos, validate_request
from models import MAX_TODO_LENGTH, CreateTodoRequest, ParseTodosRequest, UpdateTodoRequest
from supabase_api import create_store

logger = logging.getLogger(__name__)

app = FastAPI(title="Todo API")


@lru_cache(maxsize=1)
def get_provider():
    """Completion provider built from settings on first use"""
    return create_provider(get_settings())


@lru_cache(maxsize=1)
def get_store():
    """Todo store built from settings on first use"""
    return create_store(get_settings())


def provider_factory():
    """Routes get the builder and call it after checking the request"""
    return get_provider


def store_factory():
    return get_store


@app.exception_handler(TodoServiceError)
async def todo_service_error_handler(request: Request, exc: TodoServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"ℹ️  Rejected request body: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"❌ Unexpected error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Todo API",
        "version": "1.0.0"
    }


@app.get("/health")
async def health():
    """Detailed health check"""
    settings = get_settings()
    provider_key = (
        settings.anthropic_api_key if settings.completion_provider == "anthropic"
        else settings.openai_api_key
    )
    return {
        "status": "healthy",
        "completion_provider": settings.completion_provider,
        "completion_provider_configured": bool(provider_key),
        "supabase_configured": bool(settings.supabase_url),
        "service_role_configured": bool(settings.supabase_service_role_key),
    }


@app.post("/api/parse-todos")
def parse_todos(body: ParseTodosRequest, make_provider=Depends(provider_factory),
                make_store=Depends(store_factory)):
    """
    Split free-form text into todos and save them for the user
    """
    validate_request(body.text, body.user_id)
    result = extract_todos(
        body.text,
        body.user_id,
        provider=make_provider(),
        store=make_store(),
        timezone=get_settings().timezone,
    )
    return {
        "success": True,
        "todos": [todo.model_dump(mode="json") for todo in result.todos],
        "count": result.count,
    }


@app.get("/api/todos")
def list_todos(user_id: str = Query(alias="userId", min_length=1),
               make_store=Depends(store_factory)):
    todos = make_store().list_todos(user_id, privileged=True)
    return {"todos": [todo.model_dump(mode="json") for todo in todos]}


@app.post("/api/todos", status_code=201)
def create_todo(body: CreateTodoRequest, make_store=Depends(store_factory)):
    text = body.text.strip()
    if not text:
        raise ValidationError("Todo text must not be empty")
    if len(text) > MAX_TODO_LENGTH:
        raise ValidationError(f"Todo text is too long, at most {MAX_TODO_LENGTH} characters")

    row = {
        "user_id": body.user_id,
        "text": text,
        "completed": False,
        "image_url": body.image_url,
    }
    todo = make_store().insert_todos([row], privileged=True)[0]
    logger.info(f"✅ Added todo {todo.id} for user {body.user_id}")
    return {"todo": todo.model_dump(mode="json")}


@app.patch("/api/todos/{todo_id}")
def update_todo(todo_id: str, body: UpdateTodoRequest, make_store=Depends(store_factory)):
    changes = {}
    if body.completed is not None:
        changes["completed"] = body.completed
    if "image_url" in body.model_fields_set:
        changes["image_url"] = body.image_url
    if not changes:
        raise ValidationError("Nothing to update")

    todo = make_store().update_todo(todo_id, body.user_id, changes, privileged=True)
    return {"todo": todo.model_dump(mode="json")}


@app.delete("/api/todos/{todo_id}")
def delete_todo(todo_id: str, user_id: str = Query(alias="userId", min_length=1),
                make_store=Depends(store_factory)):
    make_store().delete_todo(todo_id, user_id, privileged=True)
    logger.info(f"🗑️  Deleted todo {todo_id} for user {user_id}")
    return {"success": True}


if __name__ == "__main__":
    import uvicorn
    from logging_setup import setup_logging

    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(f"🚀 Starting todo API on port {settings.port}")
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
