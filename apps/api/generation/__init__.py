"""LLM access, prompts and response parsing."""

from .client import LLMClient, LLMError, build_llm_client
from .models import ImagePart, ProductAttributes, TranscriptTurn
from .parsing import JSONParseResult, parse_json_response, strip_code_fence
from .retry import is_rate_limit_error, retry_with_backoff
