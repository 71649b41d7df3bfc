from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

MAX_INPUT_LENGTH = 2000
MAX_TODO_LENGTH = 500


class Todo(BaseModel):
    id: str
    user_id: str
    text: str = Field(max_length=MAX_TODO_LENGTH)
    completed: bool = False
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TodoListOutput(BaseModel):
    """Shape the completion provider is asked to reply with"""
    todos: List[str] = Field(
        validation_alias=AliasChoices("todos", "tasks"),
        description="Ordered list of short imperative task phrases"
    )


class ExtractionResult(BaseModel):
    todos: List[Todo]
    count: int


class ParseTodosRequest(BaseModel):
    # Presence is checked by the extraction service so that a missing field
    # answers with the same error body as an empty one.
    text: Optional[str] = None
    user_id: Optional[str] = Field(default=None, alias="userId")


class CreateTodoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    text: str
    image_url: Optional[str] = Field(default=None, alias="imageUrl")


class UpdateTodoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    completed: Optional[bool] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
