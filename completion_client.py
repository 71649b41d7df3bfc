import logging
from typing import Dict, List, Optional

import anthropic
import openai
from anthropic import Anthropic
from openai import OpenAI

from config import Settings
from errors import ProviderAuthError, ProviderError, ProviderUnavailable

logger = logging.getLogger(__name__)

JSON_OBJECT_FORMAT = {"type": "json_object"}

SYSTEM_PROMPT = """You are a professional todo-list assistant. The user gives you a piece of text and you extract every todo item from it.

Rules:
1. Identify every task, errand or plan in the text that needs to be done
2. Each todo is a short imperative phrase, one sentence at most
3. If the text contains several tasks, extract all of them, in the order they appear
4. If the text contains a single task, return a list with that one task
5. If no todo is stated explicitly, infer the user's intent and create a reasonable todo
6. Reply with a JSON object of this exact shape: {"todos": ["task 1", "task 2", ...]}
7. Reply with the JSON only, no other text

Examples:
Input: "明天要开会，然后写报告，还要给客户打电话"
Output: {"todos": ["开会", "写报告", "给客户打电话"]}

Input: "买菜"
Output: {"todos": ["买菜"]}

Write the todos in the same language as the input."""


def build_messages(text: str, current_date: Optional[str] = None) -> List[Dict[str, str]]:
    """Role-tagged message list for a todo extraction request"""
    system = SYSTEM_PROMPT
    if current_date:
        system = f"{SYSTEM_PROMPT}\n\nCurrent date: {current_date}"
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": text},
    ]


class AnthropicProvider:
    """Completion provider backed by the Anthropic Messages API"""

    def __init__(self, client: Anthropic, model: str = "claude-sonnet-4-20250514",
                 temperature: float = 0.3, max_tokens: int = 1024):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def complete(self, messages: List[Dict[str, str]], response_format: Optional[dict] = None) -> str:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [m for m in messages if m["role"] != "system"]

        # The Messages API has no JSON mode; start the assistant turn with
        # "{" so the reply is the rest of a JSON object.
        prefill = ""
        if response_format and response_format.get("type") == "json_object":
            prefill = "{"
            chat = chat + [{"role": "assistant", "content": prefill}]

        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=chat,
            )
        except anthropic.APIConnectionError as e:
            # APITimeoutError is a subclass
            logger.error(f"❌ Anthropic connection failed: {e}")
            raise ProviderUnavailable() from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            logger.error(f"❌ Anthropic rejected the API key: {e}")
            raise ProviderAuthError() from e
        except anthropic.APIError as e:
            logger.error(f"❌ Anthropic API error: {e}")
            raise ProviderError(f"AI service error: {e.message}") from e

        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not texts:
            raise ProviderError("AI returned no response")
        return prefill + "".join(texts)


class OpenAICompatibleProvider:
    """Completion provider for any OpenAI-compatible chat completions endpoint"""

    def __init__(self, client: OpenAI, model: str = "deepseek-chat", temperature: float = 0.3):
        self.client = client
        self.model = model
        self.temperature = temperature

    def complete(self, messages: List[Dict[str, str]], response_format: Optional[dict] = None) -> str:
        kwargs = {}
        if response_format:
            kwargs["response_format"] = response_format

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                **kwargs
            )
        except openai.APIConnectionError as e:
            logger.error(f"❌ AI service connection failed: {e}")
            raise ProviderUnavailable() from e
        except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
            logger.error(f"❌ AI service rejected the API key: {e}")
            raise ProviderAuthError() from e
        except openai.APIError as e:
            logger.error(f"❌ AI service error: {e}")
            raise ProviderError(f"AI service error: {e.message}") from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ProviderError("AI returned no response")
        return content


def create_provider(settings: Settings):
    """Build the configured completion provider"""
    if settings.completion_provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ProviderAuthError("AI API key is not configured")
        client = Anthropic(
            api_key=settings.anthropic_api_key,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        return AnthropicProvider(client, model=settings.anthropic_model,
                                 temperature=settings.llm_temperature)

    if settings.completion_provider == "openai":
        if not settings.openai_api_key:
            raise ProviderAuthError("AI API key is not configured")
        client = OpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
        return OpenAICompatibleProvider(client, model=settings.openai_model,
                                        temperature=settings.llm_temperature)

    raise ValueError(f"Unknown COMPLETION_PROVIDER: {settings.completion_provider!r}")
