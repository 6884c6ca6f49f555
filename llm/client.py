"""
Gemini client using direct REST API calls.
Sends page images with a fixed prompt and response schema in a single request.
"""
import asyncio
from typing import Any, Dict, List, Optional

import requests

from core.config import Settings, get_settings
from core.exceptions import ConfigurationError, EmptyResponseError, ServiceError
from core.logger import setup_logger
from core.schema import PayloadBatch
from llm.prompts import build_extraction_prompt, create_response_schema

logger = setup_logger(__name__)


class GeminiClientWrapper:
    """Wrapper for the Gemini generateContent REST API."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize REST API client."""
        settings = settings or get_settings()
        if not settings.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY environment variable not set",
                details={"required_key": "GEMINI_API_KEY"}
            )

        self.base_url = settings.gemini_base_url.rstrip("/")
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.timeout = settings.gemini_timeout

        logger.info(f"Initialized Gemini REST client with model: {self.model}")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def call_with_structured_output(
        self,
        parts: List[Dict[str, Any]],
        prompt: str,
        response_schema: Dict[str, Any],
    ) -> str:
        """
        Call Gemini generateContent with structured output.

        Args:
            parts: Inline data parts, one per page image
            prompt: Instruction text appended after the images
            response_schema: Schema the response must follow

        Returns:
            Raw response text

        Raises:
            ServiceError: If the request fails at transport or service level
            EmptyResponseError: If the service returns no text
        """
        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [*parts, {"text": prompt}]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema
            }
        }

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key
        }

        try:
            response = requests.post(
                self.endpoint,
                headers=headers,
                json=payload,
                timeout=self.timeout
            )
            response.raise_for_status()
            completion_data = response.json()

        except requests.exceptions.Timeout as e:
            logger.error(f"Gemini request timeout after {self.timeout}s: {e}")
            raise ServiceError(
                f"Gemini request timeout after {self.timeout}s",
                details={"model": self.model, "timeout": self.timeout, "error": str(e)}
            ) from e

        except requests.exceptions.HTTPError as e:
            logger.error(f"Gemini HTTP error: {e}")
            raise ServiceError(
                f"Gemini returned HTTP error: {e}",
                details={
                    "model": self.model,
                    "status_code": getattr(e.response, "status_code", None),
                    "response_text": getattr(e.response, "text", None),
                }
            ) from e

        except requests.exceptions.JSONDecodeError as e:
            logger.error(f"Failed to parse Gemini response envelope as JSON: {e}")
            raise ServiceError(
                f"Gemini returned invalid JSON: {e}",
                details={"model": self.model, "error": str(e)}
            ) from e

        except requests.exceptions.RequestException as e:
            logger.error(f"Gemini request failed: {e}")
            raise ServiceError(
                f"Failed to connect to Gemini: {str(e)}",
                details={"model": self.model, "error": str(e)}
            ) from e

        text = extract_response_text(completion_data)
        if not text:
            feedback = completion_data.get("promptFeedback")
            block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            logger.error(f"Gemini returned no text (block reason: {block_reason})")
            raise EmptyResponseError(
                "Received an empty response from the AI. The document might be unreadable or empty.",
                details={"model": self.model, "block_reason": block_reason}
            )

        usage = completion_data.get("usageMetadata")
        if isinstance(usage, dict):
            logger.debug(
                f"Token usage - Input: {usage.get('promptTokenCount', 'N/A')}, "
                f"Output: {usage.get('candidatesTokenCount', 'N/A')}"
            )

        return text

    async def extract(self, batch: PayloadBatch) -> str:
        """
        Send a payload batch for extraction and return the raw response text.

        The blocking HTTP call runs in the default executor.
        """
        parts = [page.to_part() for page in batch.pages]
        logger.info(f"Sending {len(parts)} page(s) to {self.model}")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self.call_with_structured_output,
            parts,
            build_extraction_prompt(),
            create_response_schema(),
        )


def extract_response_text(completion_data: Any) -> str:
    """
    Concatenate the text parts of the first candidate.

    Args:
        completion_data: Decoded generateContent response

    Returns:
        Response text, or an empty string if there is none

    Raises:
        ServiceError: If the envelope does not have the generateContent shape
    """
    if not isinstance(completion_data, dict):
        raise _unexpected_envelope("response body is not an object", completion_data)

    candidates = completion_data.get("candidates") or []
    if not isinstance(candidates, list):
        raise _unexpected_envelope("candidates is not a list", candidates)
    if not candidates:
        return ""

    candidate = candidates[0]
    if not isinstance(candidate, dict):
        raise _unexpected_envelope("candidate is not an object", candidate)

    content = candidate.get("content") or {}
    if not isinstance(content, dict):
        raise _unexpected_envelope("candidate content is not an object", content)

    parts = content.get("parts") or []
    if not isinstance(parts, list):
        raise _unexpected_envelope("content parts is not a list", parts)

    texts = [part.get("text") or "" for part in parts if isinstance(part, dict)]
    return "".join(text for text in texts if isinstance(text, str))


def _unexpected_envelope(reason: str, value: Any) -> ServiceError:
    logger.error(f"Unexpected Gemini response envelope: {reason}")
    return ServiceError(
        "Gemini returned an unexpected response envelope",
        details={"reason": reason, "got": type(value).__name__}
    )


# Singleton client instance
_client: Optional[GeminiClientWrapper] = None


def get_client() -> GeminiClientWrapper:
    """
    Get or create Gemini client singleton.

    Returns:
        Gemini client wrapper instance
    """
    global _client
    if _client is None:
        _client = GeminiClientWrapper()
    return _client


def reset_client() -> None:
    """Drop the client singleton (useful for testing)."""
    global _client
    _client = None
