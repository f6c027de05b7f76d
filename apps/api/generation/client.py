import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from openai import AsyncOpenAI

from .models import ImagePart
from .retry import is_rate_limit_error, retry_with_backoff

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when the completion API cannot produce a response."""


def get_openai_client(api_key: str) -> Optional[AsyncOpenAI]:
    """Get OpenAI client, handling placeholders.

    SDK-level retries are disabled; LLMClient applies its own backoff schedule.
    """
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return AsyncOpenAI(api_key=api_key, max_retries=0)


class LLMClient:
    """Thin wrapper over chat completions with rate-limit backoff.

    Exposes the two request modes used by the pipeline: free text and
    JSON-biased completion, each with an optional system instruction and an
    optional inline image.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        max_tokens: int = 2000,
        retry_base_seconds: float = 5.0,
        retry_multiplier: float = 2.0,
        max_retries: int = 3,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client if client is not None else get_openai_client(api_key)
        retry_kwargs: Dict[str, Any] = {
            "base_delay": retry_base_seconds,
            "multiplier": retry_multiplier,
            "max_retries": max_retries,
        }
        if sleep is not None:
            retry_kwargs["sleep"] = sleep
        self._complete = retry_with_backoff(is_rate_limit_error, **retry_kwargs)(self._create_completion)

    @staticmethod
    def _build_messages(
        prompt: str,
        system_instruction: Optional[str],
        image: Optional[ImagePart],
    ) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        if image is None:
            messages.append({"role": "user", "content": prompt})
        else:
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                ],
            })
        return messages

    async def _create_completion(self, messages: List[Dict[str, Any]], json_mode: bool) -> str:
        if self._client is None:
            raise LLMError("OPENAI_API_KEY is not configured")
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self._client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        image: Optional[ImagePart] = None,
    ) -> str:
        messages = self._build_messages(prompt, system_instruction, image)
        try:
            return await self._complete(messages, False)
        except Exception as e:
            logger.error(f"Error in LLM text generation: {e}")
            raise

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        image: Optional[ImagePart] = None,
    ) -> str:
        """JSON-mode completion; the raw text still needs parse_json_response."""
        messages = self._build_messages(prompt, system_instruction, image)
        try:
            return await self._complete(messages, True)
        except Exception as e:
            logger.error(f"Error in LLM JSON generation: {e}")
            raise


def build_llm_client(settings: Any) -> LLMClient:
    return LLMClient(
        api_key=settings.OPENAI_API_KEY,
        model=settings.OPENAI_MODEL,
        max_tokens=settings.OPENAI_MAX_TOKENS,
        retry_base_seconds=settings.LLM_RETRY_BASE_SECONDS,
        retry_multiplier=settings.LLM_RETRY_MULTIPLIER,
        max_retries=settings.LLM_MAX_RETRIES,
    )
