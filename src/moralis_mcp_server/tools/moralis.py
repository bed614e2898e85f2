"""Moralis Web3 Data API tools.

Each tool is a single GET against the EVM data API: path parameters are
interpolated into the URL and every other known argument is forwarded as
a query parameter. The API key is sent as ``X-API-Key`` untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from ..config import DEFAULT_API_BASE_URL
from .registry import ToolDefinition, ToolRegistry, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_CHAIN = "eth"

_CHAIN = ("string", "Chain to query (e.g. eth, polygon, bsc, base, arbitrum, or a hex chain id)")
_TO_BLOCK = ("integer", "Query state as of this block number")
_LIMIT = ("integer", "Maximum number of results per page")
_CURSOR = ("string", "Cursor returned by a previous page")


class MoralisApiClient:
    """Thin async client for the Moralis data API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure client is initialized."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers["X-API-Key"] = self._api_key
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a path relative to the base URL and return decoded JSON.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            httpx.RequestError: On connection failures and timeouts
        """
        client = self._ensure_client()
        response = await client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


@dataclass(frozen=True)
class EndpointTool:
    """Declarative description of one GET-backed tool."""

    name: str
    description: str
    path: str
    path_params: dict[str, str]
    query_params: dict[str, tuple[str, str]] = field(default_factory=dict)

    def input_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {
            name: {"type": "string", "description": description}
            for name, description in self.path_params.items()
        }
        for name, (kind, description) in self.query_params.items():
            properties[name] = {"type": kind, "description": description}
        return {
            "type": "object",
            "properties": properties,
            "required": list(self.path_params),
        }

    def build_request(self, arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        path = self.path.format(
            **{name: quote(str(arguments[name]), safe="") for name in self.path_params}
        )
        query = {
            name: value
            for name, value in arguments.items()
            if name in self.query_params and value is not None
        }
        if "chain" in self.query_params:
            query.setdefault("chain", DEFAULT_CHAIN)
        return path, query


MORALIS_TOOLS: tuple[EndpointTool, ...] = (
    EndpointTool(
        name="getNativeBalance",
        description="Get the native token balance (e.g. ETH) of a wallet address",
        path="/{address}/balance",
        path_params={"address": "Wallet address"},
        query_params={"chain": _CHAIN, "to_block": _TO_BLOCK},
    ),
    EndpointTool(
        name="getWalletTokenBalances",
        description="Get ERC20 token balances held by a wallet address",
        path="/{address}/erc20",
        path_params={"address": "Wallet address"},
        query_params={"chain": _CHAIN, "to_block": _TO_BLOCK},
    ),
    EndpointTool(
        name="getTokenPrice",
        description="Get the current price of an ERC20 token in native currency and USD",
        path="/erc20/{address}/price",
        path_params={"address": "Token contract address"},
        query_params={
            "chain": _CHAIN,
            "exchange": ("string", "Exchange to price against (e.g. uniswapv3)"),
            "to_block": _TO_BLOCK,
        },
    ),
    EndpointTool(
        name="getWalletNFTs",
        description="Get NFTs owned by a wallet address",
        path="/{address}/nft",
        path_params={"address": "Wallet address"},
        query_params={
            "chain": _CHAIN,
            "format": ("string", "Token id format: decimal or hex"),
            "limit": _LIMIT,
            "cursor": _CURSOR,
        },
    ),
    EndpointTool(
        name="getWalletTransactions",
        description="Get native transactions sent or received by a wallet address",
        path="/{address}",
        path_params={"address": "Wallet address"},
        query_params={
            "chain": _CHAIN,
            "from_block": ("integer", "Earliest block number"),
            "to_block": _TO_BLOCK,
            "limit": _LIMIT,
            "cursor": _CURSOR,
        },
    ),
    EndpointTool(
        name="getBlock",
        description="Get the contents of a block by number or hash",
        path="/block/{block_number_or_hash}",
        path_params={"block_number_or_hash": "Block number or block hash"},
        query_params={"chain": _CHAIN},
    ),
    EndpointTool(
        name="getTransaction",
        description="Get the contents of a transaction by hash",
        path="/transaction/{transaction_hash}",
        path_params={"transaction_hash": "Transaction hash"},
        query_params={"chain": _CHAIN},
    ),
)


def _make_handler(endpoint: EndpointTool, client: MoralisApiClient) -> Any:
    async def handler(arguments: dict[str, Any]) -> ToolResult:
        path, query = endpoint.build_request(arguments)
        try:
            data = await client.get(path, query)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"{endpoint.name}: Moralis API returned {status}")
            return ToolResult(
                success=False,
                error=f"Moralis API returned {status}: {e.response.text}",
            )
        except httpx.RequestError as e:
            logger.warning(f"{endpoint.name}: Moralis API request failed: {e}")
            return ToolResult(success=False, error=f"Moralis API request failed: {e}")
        return ToolResult(output=data)

    return handler


def register_moralis_tools(registry: ToolRegistry, client: MoralisApiClient) -> list[str]:
    """Register every Moralis data tool on a registry.

    Returns:
        Names of the registered tools
    """
    for endpoint in MORALIS_TOOLS:
        registry.register(
            ToolDefinition(
                name=endpoint.name,
                description=endpoint.description,
                input_schema=endpoint.input_schema(),
                handler=_make_handler(endpoint, client),
            )
        )
    return [endpoint.name for endpoint in MORALIS_TOOLS]
