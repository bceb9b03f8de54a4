"""
Tests for the JSON-RPC chain reader against an in-memory transport.
"""

import json

import httpx
import pytest
from eth_abi import encode

from app.errors import UpstreamError
from app.providers.rpc import JsonRpcChainReader
from app.services.evm import ERC20_ABI, encode_call, find_function, function_selector

RPC_URL = "https://rpc.test"
TOKEN = "0xaadd98Ad4660008C917C6FE7286Bc54b2eEF894d"
HOLDERS = [
    "0x000000000000000000000000000000000000dEaD",
    "0xb5d78dd3276325f5faf3106cc4acc56e28e0fe3b",
]


def _word(value: int, abi_type: str = "uint256") -> str:
    return "0x" + encode([abi_type], [value]).hex()


class RpcStub:
    """Answers eth_call batches from a selector -> result function."""

    def __init__(self, answer):
        self.answer = answer
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        batch = json.loads(request.content)
        self.requests.append(batch)
        return httpx.Response(200, json=[self.answer(item) for item in batch])


def make_reader(handler, **kwargs) -> JsonRpcChainReader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JsonRpcChainReader(RPC_URL, client=client, **kwargs)


def _scalar_answer(item):
    data = item["params"][0]["data"]
    if data == function_selector(find_function(ERC20_ABI, "totalSupply")):
        return {"jsonrpc": "2.0", "id": item["id"], "result": _word(10 ** 24)}
    if data == function_selector(find_function(ERC20_ABI, "decimals")):
        return {"jsonrpc": "2.0", "id": item["id"], "result": _word(18, "uint8")}
    return {"jsonrpc": "2.0", "id": item["id"], "error": {"code": -32000, "message": "execution reverted"}}


def test_selectors_match_erc20():
    assert function_selector(find_function(ERC20_ABI, "totalSupply")) == "0x18160ddd"
    assert function_selector(find_function(ERC20_ABI, "decimals")) == "0x313ce567"
    assert function_selector(find_function(ERC20_ABI, "balanceOf")) == "0x70a08231"


def test_encode_balance_of_pads_address():
    data = encode_call(find_function(ERC20_ABI, "balanceOf"), [HOLDERS[0]])
    assert data == "0x70a08231" + "000000000000000000000000000000000000000000000000000000000000dead"


@pytest.mark.asyncio
async def test_read_scalar_fields_single_batch():
    stub = RpcStub(_scalar_answer)
    reader = make_reader(stub)

    values = await reader.read_scalar_fields(TOKEN, ERC20_ABI, ["totalSupply", "decimals"])

    assert values == [10 ** 24, 18]
    assert len(stub.requests) == 1
    batch = stub.requests[0]
    assert [item["method"] for item in batch] == ["eth_call", "eth_call"]
    assert batch[0]["params"][0]["to"] == TOKEN
    assert batch[0]["params"][1] == "latest"


@pytest.mark.asyncio
async def test_batch_balance_of_keeps_input_order():
    balances = {HOLDERS[0].lower(): 7, HOLDERS[1].lower(): 11}

    def answer(item):
        holder = "0x" + item["params"][0]["data"][-40:]
        return {"jsonrpc": "2.0", "id": item["id"], "result": _word(balances[holder])}

    stub = RpcStub(answer)
    reader = make_reader(stub)

    assert await reader.batch_balance_of(TOKEN, ERC20_ABI, HOLDERS) == [7, 11]


@pytest.mark.asyncio
async def test_responses_matched_by_id_not_position():
    def handler(request):
        batch = json.loads(request.content)
        answers = [
            {"jsonrpc": "2.0", "id": item["id"], "result": _word(100 + item["id"])}
            for item in batch
        ]
        return httpx.Response(200, json=list(reversed(answers)))

    reader = make_reader(handler)
    assert await reader.batch_balance_of(TOKEN, ERC20_ABI, HOLDERS) == [100, 101]


@pytest.mark.asyncio
async def test_one_failed_call_fails_the_batch():
    def answer(item):
        if item["id"] == 1:
            return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "execution reverted"}}
        return {"jsonrpc": "2.0", "id": item["id"], "result": _word(5)}

    reader = make_reader(RpcStub(answer))
    with pytest.raises(UpstreamError, match="balanceOf failed"):
        await reader.batch_balance_of(TOKEN, ERC20_ABI, HOLDERS)


@pytest.mark.asyncio
async def test_empty_return_data_fails():
    reader = make_reader(RpcStub(lambda item: {"jsonrpc": "2.0", "id": item["id"], "result": "0x"}))
    with pytest.raises(UpstreamError, match="decode"):
        await reader.read_scalar_fields(TOKEN, ERC20_ABI, ["totalSupply"])


@pytest.mark.asyncio
async def test_missing_response_fails():
    reader = make_reader(lambda request: httpx.Response(200, json=[]))
    with pytest.raises(UpstreamError, match="missing response"):
        await reader.read_scalar_fields(TOKEN, ERC20_ABI, ["decimals"])


@pytest.mark.asyncio
async def test_batch_level_error_object_fails():
    reader = make_reader(
        lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": None, "error": {"code": -32600}})
    )
    with pytest.raises(UpstreamError, match="rejected"):
        await reader.read_scalar_fields(TOKEN, ERC20_ABI, ["decimals"])


@pytest.mark.asyncio
async def test_http_error_status_fails():
    reader = make_reader(lambda request: httpx.Response(503, text="unavailable"))
    with pytest.raises(UpstreamError, match="HTTP 503"):
        await reader.read_scalar_fields(TOKEN, ERC20_ABI, ["decimals"])


@pytest.mark.asyncio
async def test_transport_error_fails():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    reader = make_reader(handler)
    with pytest.raises(UpstreamError, match="RPC request failed"):
        await reader.read_scalar_fields(TOKEN, ERC20_ABI, ["decimals"])


@pytest.mark.asyncio
async def test_large_batches_are_split():
    stub = RpcStub(lambda item: {"jsonrpc": "2.0", "id": item["id"], "result": _word(1)})
    reader = make_reader(stub, max_batch_size=2)
    holders = HOLDERS + ["0x0000000000000000000000000000000000000000"]

    assert await reader.batch_balance_of(TOKEN, ERC20_ABI, holders) == [1, 1, 1]
    assert [len(batch) for batch in stub.requests] == [2, 1]


@pytest.mark.asyncio
async def test_empty_address_list_makes_no_request():
    stub = RpcStub(_scalar_answer)
    reader = make_reader(stub)

    assert await reader.batch_balance_of(TOKEN, ERC20_ABI, []) == []
    assert stub.requests == []
