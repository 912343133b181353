# book_ingest/ocr/engine.py
# ============================================================
# OCR Engine — Vision Model Server Client
# ============================================================
# Talks to an OpenAI-compatible vision OCR server (PaddleOCR-VL
# served by vLLM, or any chat-completions endpoint that accepts
# image_url content). Page images are passed by their render URL,
# so the server fetches the image itself and nothing is encoded
# locally.
#
# A single attempt is made per call. Transport errors, timeouts,
# non-2xx responses, malformed payloads and blank transcriptions
# all surface as OcrError.
# ============================================================

import time
from typing import Optional

import httpx

from book_ingest.errors import OcrError
from book_ingest.ocr.prompts import get_ocr_prompt
from book_ingest.providers.base import OcrProvider
from book_ingest.utils.logger import get_logger

logger = get_logger(__name__)


def _message_text(content) -> str:
    """
    Flatten a chat message's content to stripped text.

    Servers answer with a plain string or with a list of content parts
    (``{"type": "text", "text": ...}``); anything else is malformed.
    """
    if content is None:
        return ""
    if isinstance(content, list):
        content = "".join(
            part.get("text") or "" for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    if not isinstance(content, str):
        raise TypeError(f"unexpected message content: {type(content).__name__}")
    return content.strip()


class OCREngine(OcrProvider):
    """
    OCR provider backed by a remote vision-language model server.

    Args:
        server_url: Base URL of the server (``/v1/chat/completions`` is appended).
        model_name: Model name placed in each request payload.
        max_tokens: Upper bound on generated tokens per page.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        server_url: str,
        model_name: str,
        max_tokens: int = 2048,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.model_name = model_name
        self.max_tokens = max_tokens
        self._aclient = httpx.AsyncClient(
            base_url=self.server_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        logger.info(
            f"OCREngine initialized — model: [bold]{self.model_name}[/bold], "
            f"server: [cyan]{self.server_url}[/cyan]"
        )

    def _payload(self, image_url: str, language: str) -> dict:
        return {
            "model": self.model_name,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": get_ocr_prompt(language)},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                }
            ],
            "temperature": 0.0,
            "max_tokens": self.max_tokens,
        }

    async def recognize(self, image_url: str, language: str = "eng") -> str:
        """
        Recognize the text on one page image.

        Args:
            image_url: Publicly reachable URL of the page image.
            language: Language hint (``eng``, ``fra``, ...).

        Returns:
            The transcription with surrounding whitespace removed.

        Raises:
            OcrError: If the request fails or the transcription is blank.
        """
        start_time = time.perf_counter()

        try:
            response = await self._aclient.post(
                "/v1/chat/completions", json=self._payload(image_url, language)
            )
            response.raise_for_status()
            text = _message_text(response.json()["choices"][0]["message"]["content"])
        except httpx.TimeoutException as e:
            raise OcrError(f"OCR request timed out: {e!r}") from e
        except httpx.HTTPError as e:
            raise OcrError(f"OCR request failed: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise OcrError(f"Malformed OCR response: {e!r}") from e

        latency_ms = (time.perf_counter() - start_time) * 1000

        if not text:
            raise OcrError(f"OCR returned no text for {image_url}")

        logger.info(f"OCR completed — {len(text)} characters in {latency_ms:.0f}ms")
        return text

    async def health_check(self) -> dict:
        """Diagnostic health check against the server's model listing."""
        status = {
            "status": "unhealthy",
            "model_name": self.model_name,
            "server_url": self.server_url,
            "model_available": False,
            "error": None,
        }

        try:
            response = await self._aclient.get("/v1/models")
            response.raise_for_status()
            served = [m.get("id") for m in response.json().get("data", [])]
            status["model_available"] = self.model_name in served
            status["status"] = "healthy"
        except (httpx.HTTPError, ValueError) as e:
            status["error"] = str(e) or repr(e)

        return status

    async def aclose(self) -> None:
        await self._aclient.aclose()
