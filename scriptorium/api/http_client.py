"""
HTTP persistence client for Scriptorium.

Talks to the wiki server's block routes with an httpx.AsyncClient:

    POST   /api/pages/{pageId}/blocks   create
    PATCH  /api/blocks/{id}             patch (fields overwrite)
    DELETE /api/blocks/{id}             delete
    POST   /api/blocks/reorder          {pageId, moves}
    GET    /api/pages/{pageId}          page with its blocks
"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import httpx

from ..config import config
from ..errors import BlockNotFoundError, PersistenceError, PersistenceHTTPError, PersistenceNetworkError
from ..models import Block, BlockPatch, Move
from .base import PersistenceAPI


class HttpPersistenceAPI(PersistenceAPI):
    """
    Persistence backend backed by the wiki's JSON REST API.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the client.

        Args:
            base_url: Server root URL (defaults to config value)
            timeout: Request timeout in seconds (defaults to config value)
            client: Optional pre-built AsyncClient (e.g. with a mock transport)
        """
        self.base_url = (base_url or config.api_base_url).rstrip("/")
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else config.api_timeout,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        """
        Send a request and decode the JSON answer.

        Raises:
            PersistenceNetworkError: If the server cannot be reached
            BlockNotFoundError: On 404
            PersistenceHTTPError: On any other non-2xx status
        """
        try:
            response = await self.client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text
            if status == 404:
                raise BlockNotFoundError(status, e.response.reason_phrase, body) from e
            raise PersistenceHTTPError(status, e.response.reason_phrase, body) from e
        except httpx.RequestError as e:
            raise PersistenceNetworkError(f"Failed to reach persistence server: {e}") from e

        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    @staticmethod
    def _decode_block(payload: Any) -> Block:
        if not isinstance(payload, dict):
            raise PersistenceError(f"Expected a block record, got {type(payload).__name__}")
        return Block.from_record(payload)

    async def create_block(
        self,
        page_id: str,
        type: str,
        parent_id: Optional[str] = None,
        sort: int = 0,
        props: Optional[Dict[str, Any]] = None,
        content: Optional[Dict[str, Any]] = None,
    ) -> Block:
        body = {
            "type": type,
            "parentId": parent_id,
            "sort": sort,
            "props": props or {},
            "content": content or {},
        }
        payload = await self._request("POST", f"/api/pages/{quote(str(page_id), safe='')}/blocks", json=body)
        block = self._decode_block(payload)
        logging.debug(f"Created {type} block {block.id} on page {page_id}")
        return block

    async def patch_block(self, block_id: str, patch: BlockPatch) -> Block:
        payload = await self._request(
            "PATCH", f"/api/blocks/{quote(str(block_id), safe='')}", json=patch.to_wire()
        )
        return self._decode_block(payload)

    async def delete_block(self, block_id: str) -> None:
        await self._request("DELETE", f"/api/blocks/{quote(str(block_id), safe='')}")

    async def reorder_blocks(self, page_id: str, moves: Sequence[Move]) -> None:
        if not moves:
            return
        await self._request(
            "POST", "/api/blocks/reorder",
            json={"pageId": page_id, "moves": [m.to_wire() for m in moves]},
        )

    async def list_blocks(self, page_id: str) -> List[Block]:
        payload = await self._request("GET", f"/api/pages/{quote(str(page_id), safe='')}")
        records = payload.get("blocks") if isinstance(payload, dict) else None
        return [Block.from_record(r) for r in (records or [])]
