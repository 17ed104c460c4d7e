from __future__ import annotations

import base64
import logging
from typing import Any, Optional, Protocol

import httpx

log = logging.getLogger("frame_grabber")

COMPARISON_PROMPT = "Expert film editor check: significant scene change? YES/NO only."

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


class ComparisonError(RuntimeError):
    """Raised when the visual-comparison service fails or answers garbage."""


class VisualComparator(Protocol):
    async def compare(self, baseline: bytes, current: bytes, instruction: str) -> str:
        """Return a short text verdict comparing two JPEG snapshots."""
        ...


def is_change_verdict(text: str) -> bool:
    return "yes" in text.lower()


class GeminiComparator:
    """Ask a Gemini model whether two snapshots show different scenes."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-3-flash-preview",
        base_url: str = DEFAULT_BASE_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float | httpx.Timeout = DEFAULT_TIMEOUT,
    ) -> None:
        if not api_key:
            raise ValueError("an API key is required for AI scene detection")
        self.model = model
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/models/{model}:generateContent"
        self._client = client
        self._timeout = timeout

    async def compare(self, baseline: bytes, current: bytes, instruction: str = COMPARISON_PROMPT) -> str:
        payload = {
            "contents": [
                {
                    "parts": [
                        _image_part(baseline),
                        _image_part(current),
                        {"text": instruction},
                    ]
                }
            ]
        }
        headers = {"x-goog-api-key": self._api_key}

        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            raise ComparisonError(f"comparison request failed: {exc}") from exc
        except ValueError as exc:
            raise ComparisonError(f"comparison response was not JSON: {exc}") from exc

        verdict = _verdict_text(body)
        log.debug("Model %s verdict: %r", self.model, verdict)
        return verdict


def _image_part(jpeg: bytes) -> dict[str, Any]:
    return {
        "inline_data": {
            "mime_type": "image/jpeg",
            "data": base64.b64encode(jpeg).decode("ascii"),
        }
    }


def _verdict_text(body: Any) -> str:
    """Concatenate the text parts of the first candidate."""
    try:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(p.get("text", "") for p in parts)
    except (KeyError, IndexError, TypeError, AttributeError) as exc:
        raise ComparisonError(f"unexpected comparison response shape: {exc!r}") from exc
