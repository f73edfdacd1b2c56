"""
Keyword extraction clients.

A client turns normalized note content into an ordered keyword list. Only
that contract matters to the indexing pipeline; the HTTP details below are
one way to meet it.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import httpx
from loguru import logger

from .config import ExtractionConfig
from .errors import ExtractionTimeout, ProtocolError, UnparseableResponse
from .models import clean_keywords


SYSTEM_PROMPT = """You are a text analysis expert. Extract keywords from the given text and return them as JSON.
Requirements:
1. Use exactly this format: {"keywords": ["keyword1", "keyword2", ...]}
2. Extract at least 10 keywords.
3. Cover topics, people, terms, theories and events.
4. The keywords should summarize the main content of the text.
5. Keep keywords in the language of the text.
6. Return only the JSON, with no explanation."""


class KeywordExtractionClient(ABC):
    """Anything that can turn note content into keywords."""

    @abstractmethod
    async def extract(self, content: str, label: Optional[str] = None) -> List[str]:
        """
        Return the keywords for ``content``.

        Raises ExtractionTimeout, ProtocolError or UnparseableResponse.
        """

    async def aclose(self) -> None:
        pass


_FENCE = re.compile(r"```(?:json)?")
_JSON_TAG = re.compile(r"^json\s*(?=[\[{])", re.IGNORECASE)
_BRACKETED = re.compile(r"\[(.*?)\]", re.DOTALL)


def _split_keywords(text: str) -> List[str]:
    return clean_keywords(part.strip().strip("'\"") for part in text.split(","))


def parse_keyword_response(text: str) -> List[str]:
    """
    Recover a keyword list from a model answer.

    Tries, in order: a JSON object with a ``keywords`` list, a bare JSON
    list, the first bracketed list, then a plain comma split.
    """
    cleaned = _FENCE.sub("", text or "").replace("\n", " ").strip()
    cleaned = _JSON_TAG.sub("", cleaned)

    if not cleaned:
        raise UnparseableResponse("empty response from extraction backend")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = None

    if isinstance(data, dict) and isinstance(data.get("keywords"), list):
        return clean_keywords(data["keywords"])
    if isinstance(data, list):
        return clean_keywords(data)

    match = _BRACKETED.search(cleaned)
    if match:
        keywords = _split_keywords(match.group(1))
        if keywords:
            return keywords

    # A JSON object without a keyword list is not a comma-separated answer
    if isinstance(data, dict):
        raise UnparseableResponse("JSON response has no keyword list")

    keywords = _split_keywords(cleaned)
    if keywords:
        return keywords
    raise UnparseableResponse(f"could not extract keywords from: {cleaned[:100]}")


class HTTPKeywordClient(KeywordExtractionClient):
    """Shared transport handling for chat-style HTTP backends."""

    def __init__(
        self,
        config: ExtractionConfig,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=config.timeout_s)
        self._owns_client = client is None

    def _truncate(self, content: str) -> str:
        limit = self.config.max_content_chars
        return content[:limit] if len(content) > limit else content

    def _headers(self) -> dict:
        return {}

    @abstractmethod
    def _request(self, content: str) -> tuple:
        """Return (path, json body) for one extraction call."""

    @abstractmethod
    def _answer_text(self, payload: Any) -> str:
        """Pull the model's text answer out of the response envelope."""

    async def extract(self, content: str, label: Optional[str] = None) -> List[str]:
        path, body = self._request(self._truncate(content))
        logger.debug(f"Requesting keywords for {label or 'untitled note'} from {self.base_url}")

        try:
            response = await self._client.post(
                f"{self.base_url}{path}",
                json=body,
                headers=self._headers(),
                timeout=self.config.timeout_s,
            )
        except httpx.TimeoutException as e:
            raise ExtractionTimeout(
                f"keyword extraction timed out after {self.config.timeout_s}s"
            ) from e
        except httpx.HTTPError as e:
            raise ProtocolError(f"transport error: {e}") from e

        if response.status_code >= 400:
            detail = response.text[:200] if response.text else ""
            raise ProtocolError(
                f"HTTP {response.status_code} from {self.base_url}. {detail}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProtocolError("response body is not JSON") from e

        try:
            answer = self._answer_text(payload)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ProtocolError(f"unexpected response envelope: {e}") from e

        keywords = parse_keyword_response(answer)
        logger.debug(f"Got {len(keywords)} keywords for {label or 'untitled note'}")
        return keywords

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class OllamaKeywordClient(HTTPKeywordClient):
    """
    Extraction via Ollama's local chat API.

    Respects OLLAMA_HOST env var (default: http://localhost:11434).
    """

    def __init__(self, config: ExtractionConfig, client: Optional[httpx.AsyncClient] = None):
        base_url = config.base_url or os.environ.get("OLLAMA_HOST", "http://localhost:11434")
        if not base_url.startswith("http"):
            base_url = f"http://{base_url}"
        super().__init__(config, base_url, client)

    def _request(self, content: str) -> tuple:
        return "/api/chat", {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "format": "json",
            "stream": False,
            "options": {"temperature": 0.5},
        }

    def _answer_text(self, payload: Any) -> str:
        if payload.get("error"):
            raise ProtocolError(str(payload["error"]))
        return payload["message"]["content"]


class OpenAIKeywordClient(HTTPKeywordClient):
    """Extraction via any OpenAI-compatible chat completions endpoint."""

    def __init__(self, config: ExtractionConfig, client: Optional[httpx.AsyncClient] = None):
        base_url = config.base_url or "https://api.openai.com/v1"
        super().__init__(config, base_url, client)
        self.api_key = config.api_key or os.environ.get("OPENAI_API_KEY")

    def _headers(self) -> dict:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def _request(self, content: str) -> tuple:
        return "/chat/completions", {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            "temperature": 0.5,
            "response_format": {"type": "json_object"},
        }

    def _answer_text(self, payload: Any) -> str:
        if payload.get("error"):
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise ProtocolError(message or "unknown error")
        return payload["choices"][0]["message"]["content"]


def create_extraction_client(
    config: ExtractionConfig,
    client: Optional[httpx.AsyncClient] = None
) -> KeywordExtractionClient:
    if config.provider == "openai":
        return OpenAIKeywordClient(config, client)
    return OllamaKeywordClient(config, client)
