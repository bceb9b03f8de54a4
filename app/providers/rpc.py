"""
JSON-RPC chain reader.

Contract reads are sent as one JSON-RPC batch of ``eth_call`` requests, so a
set of reads costs a single round-trip. Any failed entry fails the batch.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from ..errors import UpstreamError
from ..services.evm import decode_result, encode_call, find_function, normalize_address
from .base import ChainReader

logger = logging.getLogger(__name__)

_Call = Tuple[Dict[str, Any], List[Any]]


class JsonRpcChainReader(ChainReader):
    """Chain reader backed by a plain JSON-RPC endpoint"""

    name = "rpc"

    def __init__(
        self,
        rpc_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10,
        max_batch_size: int = 100,
        block: str = "latest",
    ):
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s
        self.max_batch_size = max(1, max_batch_size)
        self.block = block
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def read_scalar_fields(
        self, contract_address: str, abi: Sequence[Dict[str, Any]], field_names: Sequence[str]
    ) -> List[Any]:
        calls = [(find_function(abi, name), []) for name in field_names]
        return await self._batch_call(contract_address, calls)

    async def batch_balance_of(
        self, contract_address: str, abi: Sequence[Dict[str, Any]], addresses: Sequence[str]
    ) -> List[int]:
        fn_abi = find_function(abi, "balanceOf")
        try:
            calls = [(fn_abi, [normalize_address(address)]) for address in addresses]
        except ValueError as exc:
            raise UpstreamError(f"Invalid holder address: {exc}", source=self.name) from exc
        return [int(value) for value in await self._batch_call(contract_address, calls)]

    async def _batch_call(self, contract_address: str, calls: Sequence[_Call]) -> List[Any]:
        if not calls:
            return []

        to_address = normalize_address(contract_address)
        results: List[Any] = []
        for start in range(0, len(calls), self.max_batch_size):
            chunk = calls[start:start + self.max_batch_size]
            payload = [
                {
                    "jsonrpc": "2.0",
                    "id": index,
                    "method": "eth_call",
                    "params": [{"to": to_address, "data": encode_call(fn_abi, args)}, self.block],
                }
                for index, (fn_abi, args) in enumerate(chunk)
            ]
            responses = await self._post(payload)
            results.extend(self._decode_batch(chunk, responses))
        return results

    async def _post(self, payload: List[Dict[str, Any]]) -> Any:
        try:
            response = await self._client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_s,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"RPC endpoint returned HTTP {exc.response.status_code}", source=self.name
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"RPC request failed: {exc!r}", source=self.name) from exc
        except ValueError as exc:
            raise UpstreamError("RPC endpoint returned invalid JSON", source=self.name) from exc

    def _decode_batch(self, calls: Sequence[_Call], responses: Any) -> List[Any]:
        if isinstance(responses, dict):
            # Some nodes answer a whole batch with one error object
            error = responses.get("error") or responses
            raise UpstreamError(f"RPC batch rejected: {error}", source=self.name)
        if not isinstance(responses, list):
            raise UpstreamError("RPC batch response is not a list", source=self.name)

        by_id = {item.get("id"): item for item in responses if isinstance(item, dict)}
        decoded: List[Any] = []
        for index, (fn_abi, _args) in enumerate(calls):
            item = by_id.get(index)
            if item is None:
                raise UpstreamError(f"RPC batch missing response for {fn_abi['name']}", source=self.name)
            if item.get("error"):
                raise UpstreamError(f"{fn_abi['name']} failed: {item['error']}", source=self.name)
            try:
                decoded.append(decode_result(fn_abi, item.get("result") or ""))
            except ValueError as exc:
                raise UpstreamError(f"Could not decode {fn_abi['name']}: {exc}", source=self.name) from exc
        logger.debug("RPC batch decoded %d result(s)", len(decoded))
        return decoded
