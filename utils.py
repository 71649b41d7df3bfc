from datetime import datetime
from typing import Optional
from urllib.parse import unquote, urlparse

import pytz

from models import MAX_TODO_LENGTH

PUBLIC_OBJECT_PREFIX = "/storage/v1/object/public/"


def get_formatted_date(timezone: str = "Asia/Shanghai"):
    """Returns the current date for the prompt, e.g. 'Sunday, October 27, 2025'"""
    tz = pytz.timezone(timezone)
    now = datetime.now(tz)
    return now.strftime("%A, %B %d, %Y")


def truncate_todo_text(text: str, limit: int = MAX_TODO_LENGTH) -> str:
    return text[:limit]


def storage_path_from_url(image_url: str, bucket: str) -> Optional[str]:
    """Extract the object path from a public storage URL of the given bucket"""
    path = urlparse(image_url).path
    marker = f"{PUBLIC_OBJECT_PREFIX}{bucket}/"
    if marker not in path:
        return None
    object_path = unquote(path.split(marker, 1)[1])
    return object_path or None
