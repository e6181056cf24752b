"""
HTTP client for the document-grounded Q&A backend.

The backend is a webhook that receives the customer's message plus the
recent transcript and answers with free text, optionally prefixed by an
intent tag (see ``src.conversation.intent``). It also serves the dynamic
service and slot catalogs when ``CATALOG_SOURCE=dynamic``.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from src.config import settings

logger = logging.getLogger(__name__)

REPLY_FIELDS = ("respuesta", "answer", "reply", "text")


class QABackendError(Exception):
    """Raised when the Q&A backend fails or returns no usable reply."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def extract_reply(response: httpx.Response) -> str:
    """Pull the reply text from a plain-text or JSON response body."""
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip()
        if isinstance(data, list) and data:
            data = data[0]
        if isinstance(data, dict):
            for name in REPLY_FIELDS:
                value = data.get(name)
                if isinstance(value, str):
                    return value.strip()
            return ""
        if isinstance(data, str):
            return data.strip()
        return ""
    return response.text.strip()


class QAClient:
    """Async wrapper around the Q&A webhook."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url or settings.webhooks.qa_url
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.webhooks.request_timeout_sec,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def answer(self, prompt: str, transcript: Optional[list[dict[str, str]]] = None) -> str:
        """Ask the backend and return its raw reply text.

        Raises:
            QABackendError: On transport errors, non-2xx status or an empty reply.
        """
        body = {"mensaje": prompt, "historial": transcript or []}
        try:
            response = await self._client.post(self.url, json=body)
        except httpx.HTTPError as exc:
            logger.error("Q&A backend request failed: %s", exc)
            raise QABackendError(f"Q&A backend unreachable: {exc}") from exc

        if not response.is_success:
            logger.error("Q&A backend returned status %d", response.status_code)
            raise QABackendError(
                f"Q&A backend error {response.status_code}",
                status_code=response.status_code,
            )

        reply = extract_reply(response)
        if not reply:
            raise QABackendError("Q&A backend returned an empty reply",
                                 status_code=response.status_code)
        return reply
