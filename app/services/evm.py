"""Utilities for working with EVM contract ABIs and calldata."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from eth_abi import decode as abi_decode, encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address

BASE_CHAIN_ID = 8453

# Minimal ERC-20 ABI: totalSupply, decimals, balanceOf
ERC20_ABI: List[Dict[str, Any]] = [
    {
        "constant": True,
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "_owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "balance", "type": "uint256"}],
        "type": "function",
    },
]


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _canonical_type(param: Dict[str, Any]) -> str:
    """Return the canonical ABI type, expanding tuples into ``(a,b,...)``."""

    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(_canonical_type(component) for component in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


def find_function(abi: Sequence[Dict[str, Any]], name: str) -> Dict[str, Any]:
    """Look up a function entry by name.

    Raises ``ValueError`` when the ABI does not declare the function.
    """

    for item in abi:
        if item.get("type", "function") == "function" and item.get("name") == name:
            return item
    raise ValueError(f"Function '{name}' not found in ABI")


def input_types(fn_abi: Dict[str, Any]) -> List[str]:
    return [_canonical_type(param) for param in fn_abi.get("inputs", [])]


def output_types(fn_abi: Dict[str, Any]) -> List[str]:
    return [_canonical_type(param) for param in fn_abi.get("outputs", [])]


def function_signature(fn_abi: Dict[str, Any]) -> str:
    return f"{fn_abi['name']}({','.join(input_types(fn_abi))})"


def function_selector(fn_abi: Dict[str, Any]) -> str:
    return "0x" + keccak(text=function_signature(fn_abi))[:4].hex()


def encode_call(fn_abi: Dict[str, Any], args: Optional[Sequence[Any]] = None) -> str:
    """Build hex calldata for ``fn_abi`` called with ``args``."""

    args = list(args or [])
    types = input_types(fn_abi)
    if len(args) != len(types):
        raise ValueError(
            f"{fn_abi['name']} expects {len(types)} argument(s), got {len(args)}"
        )
    encoded = abi_encode(types, args).hex() if types else ""
    return function_selector(fn_abi) + encoded


def decode_result(fn_abi: Dict[str, Any], data: str) -> Any:
    """Decode ``eth_call`` return data.

    Single-output functions return the bare value; others return a tuple.
    Empty return data (no contract at the address, or a reverted call on some
    nodes) raises ``ValueError``.
    """

    types = output_types(fn_abi)
    raw = bytes.fromhex(_strip_0x(data or ""))
    if types and not raw:
        raise ValueError(f"Empty return data for {fn_abi['name']}")
    try:
        values = abi_decode(types, raw)
    except DecodingError as exc:
        raise ValueError(f"Malformed return data for {fn_abi['name']}: {exc}") from exc
    if len(values) == 1:
        return values[0]
    return tuple(values)


def normalize_address(address: str) -> str:
    """Return the EIP-55 checksummed form, raising ``ValueError`` when malformed."""

    return to_checksum_address(address)


__all__ = [
    'BASE_CHAIN_ID',
    'ERC20_ABI',
    'find_function',
    'input_types',
    'output_types',
    'function_signature',
    'function_selector',
    'encode_call',
    'decode_result',
    'normalize_address',
]
