"""
Canvas API Client for Canvas Panel
==================================

HTTP client for the remote shared-canvas REST API.
All calls are scoped to one canvas: {server}/api/v1/canvases/{canvas_id}.
"""

import asyncio
import logging
import os
import ssl
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import certifi
import httpx
from pydantic import BaseModel, Field

from ..models.widget_models import Widget, WidgetType, collection_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

CANVUS_SERVER = os.getenv("CANVUS_SERVER", "")
CANVAS_ID = os.getenv("CANVAS_ID", "")
CANVUS_API_KEY = os.getenv("CANVUS_API_KEY", "")
ALLOW_SELF_SIGNED_CERTS = os.getenv("ALLOW_SELF_SIGNED_CERTS", "false").lower() == "true"
CANVUS_TIMEOUT = float(os.getenv("CANVUS_TIMEOUT", "30"))


class CanvasConfig(BaseModel):
    """Connection settings for the remote canvas."""
    server: str = CANVUS_SERVER
    canvas_id: str = CANVAS_ID
    api_key: str = CANVUS_API_KEY
    allow_self_signed: bool = ALLOW_SELF_SIGNED_CERTS
    timeout: float = CANVUS_TIMEOUT
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = 0.5

    @property
    def is_configured(self) -> bool:
        return bool(self.server and self.canvas_id and self.api_key)

    @property
    def base_url(self) -> str:
        return f"{self.server.rstrip('/')}/api/v1/canvases/{self.canvas_id}"


class CanvasAPIError(Exception):
    """A remote call failed after all retries."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        """Network failures and 5xx responses are worth retrying."""
        return self.status_code is None or self.status_code >= 500


async def retry_with_backoff(
    call: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 0.5,
    label: str = "request"
) -> T:
    """
    Run an async call, retrying transient CanvasAPIErrors with a fixed delay.

    Non-transient errors (4xx) are raised immediately.
    """
    last_error: Optional[CanvasAPIError] = None
    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except CanvasAPIError as e:
            last_error = e
            if not e.is_transient or attempt == attempts:
                break
            logger.warning(
                f"[CANVAS-CLIENT-RETRY] {label} failed (try {attempt}/{attempts}): {e.message}"
            )
            await asyncio.sleep(delay)
    raise last_error


class CanvasClient:
    """
    Client for widget CRUD against one remote canvas.

    Every call goes through a single retrying request primitive; callers
    receive parsed JSON or a CanvasAPIError.
    """

    def __init__(
        self,
        config: Optional[CanvasConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config or CanvasConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        if self.config.allow_self_signed:
            logger.warning("[CANVAS-CLIENT] SSL certificate verification is disabled")
        logger.info(f"[CANVAS-CLIENT] Initialized for {self.config.base_url}")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            if self.config.allow_self_signed:
                verify = False
            else:
                verify = ssl.create_default_context(cafile=certifi.where())
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                verify=verify,
                transport=self._transport,
                headers={
                    "Private-Token": self.config.api_key,
                    "Content-Type": "application/json"
                }
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise CanvasAPIError(f"{method} {path} timed out")
        except httpx.HTTPStatusError as e:
            raise CanvasAPIError(
                f"{method} {path} failed: HTTP {e.response.status_code}: {e.response.text[:200]}",
                status_code=e.response.status_code
            )
        except httpx.RequestError as e:
            raise CanvasAPIError(f"{method} {path} failed: {type(e).__name__}: {e}")

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """Issue one call with bounded retries."""
        return await retry_with_backoff(
            lambda: self._send(method, path, payload),
            attempts=self.config.retry_attempts,
            delay=self.config.retry_delay,
            label=f"{method} {path}"
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_canvas(self) -> Dict[str, Any]:
        return await self.request("GET", "")

    async def list_widgets(self) -> List[Widget]:
        """All widgets on the canvas, every type combined."""
        data = await self.request("GET", "/widgets") or []
        logger.info(f"[CANVAS-CLIENT-OK] Listed {len(data)} widgets")
        return [Widget(**item) for item in data]

    async def list_collection(self, widget_type: WidgetType) -> List[Widget]:
        data = await self.request("GET", f"/{collection_for(widget_type)}") or []
        return [Widget(**item) for item in data]

    async def list_anchors(self) -> List[Widget]:
        return await self.list_collection(WidgetType.ANCHOR)

    async def get_anchor(self, anchor_id: str) -> Widget:
        data = await self.request("GET", f"/anchors/{anchor_id}")
        return Widget(**(data or {}))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_widget(self, widget_type: WidgetType, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a widget; the response may or may not carry the new id."""
        data = await self.request("POST", f"/{collection_for(widget_type)}", payload)
        return data if isinstance(data, dict) else {}

    async def update_widget(self, widget_type: WidgetType, widget_id: str, fields: Dict[str, Any]) -> None:
        await self.request("PATCH", f"/{collection_for(widget_type)}/{widget_id}", fields)

    async def delete_widget(self, widget_type: WidgetType, widget_id: str) -> None:
        await self.request("DELETE", f"/{collection_for(widget_type)}/{widget_id}")

    async def health_check(self) -> bool:
        """Check that the configured canvas is reachable."""
        try:
            await self.get_canvas()
            return True
        except CanvasAPIError as e:
            logger.error(f"[CANVAS-CLIENT-HEALTH] Failed: {e.message}")
            return False
