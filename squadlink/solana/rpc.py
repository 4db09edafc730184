"""
Raw JSON-RPC access for the calls the async client does not expose
(prioritization fee history, simulation with blockhash replacement).
"""

import asyncio
from typing import Any, List

import requests

from squadlink.errors import RpcError


def rpc_request(endpoint: str, method: str, params: List[Any], timeout: int = 30) -> Any:
    """Make a JSON-RPC request to Solana."""
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": method,
        "params": params,
    }
    response = requests.post(endpoint, json=payload, timeout=timeout)
    response.raise_for_status()
    result = response.json()
    if "error" in result:
        raise RpcError(f"RPC error: {result['error']}")
    return result.get("result")


async def async_rpc_request(endpoint: str, method: str, params: List[Any], timeout: int = 30) -> Any:
    """Run rpc_request in a worker thread so it can be awaited alongside other calls."""
    return await asyncio.to_thread(rpc_request, endpoint, method, params, timeout)
