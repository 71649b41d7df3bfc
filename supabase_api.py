import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from supabase import Client, ClientOptions, PostgrestAPIError, StorageException, create_client

from config import Settings
from errors import PersistenceError, TodoNotFound
from models import Todo
from utils import storage_path_from_url

logger = logging.getLogger(__name__)

TODOS_TABLE = "todos"

# Errors the Supabase client raises for rejected queries or transport failures
STORE_ERRORS = (PostgrestAPIError, StorageException, httpx.HTTPError)


class SupabaseTodoStore:
    """
    Todo rows in a Supabase `todos` table, image objects in a storage bucket.

    `client` is the anon-key client subject to row-level security. `admin_client`
    holds the service-role key; only calls made with `privileged=True` use it,
    and they are trusted to act for whichever `user_id` they name.
    """

    def __init__(self, client: Optional[Client], admin_client: Optional[Client] = None,
                 bucket: str = "my-todo"):
        self.client = client
        self.admin_client = admin_client
        self.bucket = bucket

    def _client(self, privileged: bool) -> Client:
        client = self.admin_client if privileged else self.client
        if client is None:
            kind = "service-role" if privileged else "anon"
            raise PersistenceError(f"Todo store has no {kind} client configured")
        return client

    def insert_todos(self, rows: List[Dict[str, Any]], *, privileged: bool = False) -> List[Todo]:
        """Insert all rows in a single call and return the stored copies"""
        try:
            response = self._client(privileged).table(TODOS_TABLE).insert(rows).execute()
        except STORE_ERRORS as e:
            logger.error(f"❌ Database insert failed: {e}")
            raise PersistenceError() from e
        return [Todo(**row) for row in response.data or []]

    def list_todos(self, user_id: str, *, privileged: bool = False) -> List[Todo]:
        """All todos of a user, newest first"""
        try:
            response = (
                self._client(privileged).table(TODOS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
        except STORE_ERRORS as e:
            logger.error(f"❌ Failed to fetch todos: {e}")
            raise PersistenceError("Failed to fetch todos") from e
        return [Todo(**row) for row in response.data or []]

    def get_todo(self, todo_id: str, user_id: str, *, privileged: bool = False) -> Todo:
        try:
            response = (
                self._client(privileged).table(TODOS_TABLE)
                .select("*")
                .eq("id", todo_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except STORE_ERRORS as e:
            logger.error(f"❌ Failed to fetch todo {todo_id}: {e}")
            raise PersistenceError("Failed to fetch todo") from e
        if not response.data:
            raise TodoNotFound()
        return Todo(**response.data[0])

    def update_todo(self, todo_id: str, user_id: str, changes: Dict[str, Any], *,
                    privileged: bool = False) -> Todo:
        """
        Apply `completed` / `image_url` changes to one of the user's todos.

        Replacing or clearing the image releases the previous object once the
        row is updated. The row change stands if that release fails.
        """
        previous = None
        if "image_url" in changes:
            previous = self.get_todo(todo_id, user_id, privileged=privileged)

        values = dict(changes)
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            response = (
                self._client(privileged).table(TODOS_TABLE)
                .update(values)
                .eq("id", todo_id)
                .eq("user_id", user_id)
                .execute()
            )
        except STORE_ERRORS as e:
            logger.error(f"❌ Failed to update todo {todo_id}: {e}")
            raise PersistenceError("Failed to update todo") from e
        if not response.data:
            raise TodoNotFound()

        if previous is not None and previous.image_url and previous.image_url != changes["image_url"]:
            try:
                self.release_image(previous.image_url, user_id, privileged=privileged)
            except PersistenceError:
                logger.warning(f"⚠️  Todo {todo_id} updated but its old image was not deleted: "
                               f"{previous.image_url}")
        return Todo(**response.data[0])

    def delete_todo(self, todo_id: str, user_id: str, *, privileged: bool = False) -> None:
        """Delete one of the user's todos, releasing its image first"""
        todo = self.get_todo(todo_id, user_id, privileged=privileged)
        if todo.image_url:
            self.release_image(todo.image_url, user_id, privileged=privileged)

        try:
            (
                self._client(privileged).table(TODOS_TABLE)
                .delete()
                .eq("id", todo_id)
                .eq("user_id", user_id)
                .execute()
            )
        except STORE_ERRORS as e:
            logger.error(f"❌ Failed to delete todo {todo_id}: {e}")
            raise PersistenceError("Failed to delete todo") from e

    def release_image(self, image_url: str, user_id: str, *, privileged: bool = False) -> bool:
        """
        Remove the storage object behind a public image URL.

        Returns False without touching storage when the URL is not in this
        bucket or the object is outside the user's folder.
        """
        path = storage_path_from_url(image_url, self.bucket)
        if path is None:
            logger.warning(f"⚠️  Image URL is not in bucket '{self.bucket}', leaving it: {image_url}")
            return False
        if not path.startswith(f"{user_id}/"):
            logger.warning(f"⚠️  Image {path} does not belong to user {user_id}, leaving it")
            return False

        try:
            self._client(privileged).storage.from_(self.bucket).remove([path])
        except STORE_ERRORS as e:
            logger.error(f"❌ Failed to delete image {path}: {e}")
            raise PersistenceError("Failed to delete image") from e
        logger.info(f"🗑️  Deleted image {path}")
        return True


def _client_options() -> ClientOptions:
    # One instance per client; the client writes its auth headers into it
    return ClientOptions(auto_refresh_token=False, persist_session=False)


def create_store(settings: Settings) -> SupabaseTodoStore:
    """Build the todo store from settings"""
    if not settings.supabase_url:
        raise PersistenceError("Todo store is not configured")

    client = None
    admin_client = None
    if settings.supabase_anon_key:
        client = create_client(settings.supabase_url, settings.supabase_anon_key,
                               options=_client_options())
    if settings.supabase_service_role_key:
        admin_client = create_client(settings.supabase_url, settings.supabase_service_role_key,
                                     options=_client_options())
    return SupabaseTodoStore(client, admin_client, bucket=settings.supabase_bucket)
