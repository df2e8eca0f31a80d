"""
Gemini API Client for WasteWatch AI

Thin wrapper over the Gemini ``generateContent`` REST endpoint. The client
sends inline images plus an instruction text and returns the model's raw
text answer; interpreting that answer is the photo analyzer's job.

API Documentation: https://ai.google.dev/api/generate-content
"""

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from wastewatch.core.constants import ORACLE_TIMEOUT_SECONDS, RETRYABLE_STATUS_CODES
from wastewatch.core.errors import OracleResponseError, OracleUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class ImagePart:
    """An image sent inline to the model."""
    data: bytes
    mime_type: str = "image/jpeg"

    def to_part(self) -> Dict[str, Any]:
        return {
            "inline_data": {
                "mime_type": self.mime_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            }
        }


class GeminiClient:
    """
    Client for the Gemini generative language API.

    Usage:
        client = GeminiClient(api_key="your_key")
        text = client.judge([ImagePart(data, "image/jpeg")], "Describe this")

    Requests are bounded by a fixed timeout and retried with exponential
    backoff on timeouts, transport errors, 429 and 5xx responses.
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash",
        base_url: Optional[str] = None,
        timeout: float = ORACLE_TIMEOUT_SECONDS,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        client: Optional[httpx.Client] = None
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Gemini API key
            model: Model name
            base_url: API root override
            timeout: HTTP request timeout in seconds
            max_retries: Maximum number of attempts
            backoff_seconds: First retry delay; doubles per attempt
            client: Preconfigured httpx client (tests inject a mock transport)
        """
        if not api_key:
            raise ValueError("Gemini API key is required")

        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds
        self._client = client or httpx.Client(timeout=timeout)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(
        self,
        images: Sequence[ImagePart],
        instructions: str,
        temperature: float = 0.1
    ) -> Dict[str, Any]:
        """Images first, in the given order, then the instruction text."""
        parts: List[Dict[str, Any]] = [image.to_part() for image in images]
        parts.append({"text": instructions})
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": temperature,
                "responseMimeType": "application/json",
            },
        }

    def judge(
        self,
        images: Sequence[ImagePart],
        instructions: str,
        temperature: float = 0.1
    ) -> str:
        """
        Ask the model to judge one or more images.

        Args:
            images: Images in the order the instructions refer to them
            instructions: Task prompt
            temperature: Sampling temperature

        Returns:
            Raw response text

        Raises:
            OracleUnavailableError: Timeout or HTTP failure after all retries
            OracleResponseError: Response carried no text
        """
        payload = self.build_payload(images, instructions, temperature)
        headers = {"x-goog-api-key": self.api_key}
        last_error = "no attempt made"

        for attempt in range(self.max_retries):
            logger.debug(f"Invoking {self.model} (attempt {attempt + 1}/{self.max_retries})")
            try:
                response = self._client.post(
                    self.endpoint, json=payload, headers=headers, timeout=self.timeout
                )
            except httpx.TimeoutException as e:
                last_error = f"timeout after {self.timeout}s: {e}"
            except httpx.TransportError as e:
                last_error = f"transport error: {e}"
            else:
                if response.status_code < 400:
                    try:
                        body = response.json()
                    except ValueError:
                        raise OracleResponseError("Gemini returned a non-JSON body", raw_text=response.text)
                    return self._extract_text(body)

                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error(f"Gemini request rejected: {last_error}")
                    raise OracleUnavailableError(
                        f"Gemini request rejected: {last_error}",
                        details={"status_code": response.status_code, "model": self.model},
                    )

            logger.warning(f"Gemini call failed (attempt {attempt + 1}/{self.max_retries}): {last_error}")
            if attempt < self.max_retries - 1:
                # Exponential backoff: 1s, 2s, 4s, ...
                wait_time = self.backoff_seconds * (2 ** attempt)
                logger.info(f"Retrying in {wait_time} seconds...")
                time.sleep(wait_time)

        raise OracleUnavailableError(
            f"Gemini call failed after {self.max_retries} attempts: {last_error}",
            details={"model": self.model},
        )

    @staticmethod
    def _extract_text(body: Dict[str, Any]) -> str:
        """Concatenate the text parts of the first candidate."""
        candidates = body.get("candidates") or []
        if not candidates:
            reason = (body.get("promptFeedback") or {}).get("blockReason", "no candidates")
            raise OracleResponseError(f"Gemini returned no candidates ({reason})", raw_text=str(body))

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)
        if not text.strip():
            raise OracleResponseError("Gemini returned an empty answer", raw_text=str(body))
        return text
