"""
TrafficPoint pixel transport.
Posts one form-encoded ``data=<json>`` body per event and normalizes the reply.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

import aiohttp

from pixel_sender.config import DISPATCH_SETTINGS, TRAFFICPOINT_COOKIE_HEADER
from pixel_sender.integrations.base import PixelTransport
from pixel_sender.services.errors import DispatchError
from pixel_sender.utils import get_logger

logger = get_logger(__name__)


def parse_pixel_response(body: Any) -> Dict[str, Any]:
    """Normalize the pixel's reply into ``{"status": ..., "error": ...}``.

    The endpoint answers with JSON, but some deployments send it as text/html.
    """
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body) if body.strip() else {}
        except json.JSONDecodeError as e:
            raise DispatchError(f"Unparseable pixel response: {body[:200]}") from e
    if not isinstance(body, dict):
        raise DispatchError(f"Unexpected pixel response type: {type(body).__name__}")
    return body


class TrafficPointTransport(PixelTransport):
    """aiohttp transport; one ClientSession per run, closed via ``aclose``."""

    def __init__(
        self,
        pixel_url: str,
        *,
        cookie_header: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.pixel_url = pixel_url
        self.cookie_header = TRAFFICPOINT_COOKIE_HEADER if cookie_header is None else cookie_header
        self.timeout = aiohttp.ClientTimeout(
            total=float(timeout_seconds or DISPATCH_SETTINGS["request_timeout_seconds"])
        )
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def send(self, payload: str) -> Dict[str, Any]:
        headers = {
            "Cookie": self.cookie_header,
            "Content-Type": "application/x-www-form-urlencoded",
        }
        session = self._get_session()
        # aiohttp url-encodes dict form data
        async with session.post(self.pixel_url, data={"data": payload}, headers=headers) as resp:
            text = await resp.text()
            if resp.status >= 400:
                raise DispatchError(f"Pixel endpoint returned HTTP {resp.status}", details=text[:500])
            return parse_pixel_response(text)

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["TrafficPointTransport", "parse_pixel_response"]
