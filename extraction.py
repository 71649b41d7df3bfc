"""
Turns free-form text into todo rows via the completion provider
"""
import json
import logging

from pydantic import ValidationError as SchemaValidationError

from completion_client import JSON_OBJECT_FORMAT, build_messages
from errors import MalformedResponse, NoTasksExtracted, ValidationError
from models import MAX_INPUT_LENGTH, ExtractionResult, TodoListOutput
from utils import get_formatted_date, truncate_todo_text

logger = logging.getLogger(__name__)


def validate_request(text, user_id):
    if not isinstance(text, str) or not text.strip() or not user_id:
        raise ValidationError("Missing required fields: text and userId")
    if len(text) > MAX_INPUT_LENGTH:
        raise ValidationError(f"Text is too long, at most {MAX_INPUT_LENGTH} characters")


def parse_todo_list(reply: str) -> list:
    """Parse the provider reply into the ordered list of task strings"""
    try:
        data = json.loads(reply)
    except json.JSONDecodeError as e:
        logger.error(f"❌ AI reply is not JSON: {e}")
        raise MalformedResponse("AI returned a response that is not valid JSON") from e

    if not isinstance(data, dict):
        raise MalformedResponse()
    try:
        output = TodoListOutput.model_validate(data)
    except SchemaValidationError as e:
        logger.error(f"❌ AI reply has the wrong shape ({e.error_count()} error(s))")
        raise MalformedResponse() from e
    return output.todos


def extract_todos(text, user_id, *, provider, store, timezone: str = "Asia/Shanghai") -> ExtractionResult:
    """
    Split `text` into todos with the completion provider and store them for `user_id`.

    Makes one provider call and one batch insert. Nothing is written unless
    the reply validates, and the insert either stores every row or none.
    """
    validate_request(text, user_id)

    logger.info(f"📝 Parsing todos for user {user_id} ({len(text)} chars)")
    messages = build_messages(text, current_date=get_formatted_date(timezone))
    reply = provider.complete(messages, response_format=JSON_OBJECT_FORMAT)
    logger.debug(f"🤖 AI responded with {len(reply)} chars")

    todo_texts = parse_todo_list(reply)
    if not todo_texts:
        raise NoTasksExtracted()
    logger.info(f"✓ Extracted {len(todo_texts)} todo(s)")

    rows = [
        {"user_id": user_id, "text": truncate_todo_text(todo_text), "completed": False}
        for todo_text in todo_texts
    ]
    # The caller vouches for user_id, so the insert bypasses row-level security
    todos = store.insert_todos(rows, privileged=True)

    logger.info(f"✅ Inserted {len(todos)} todo(s)")
    return ExtractionResult(todos=todos, count=len(todos))
