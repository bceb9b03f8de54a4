from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Sequence


class Provider(ABC):
    """Base upstream reader interface"""

    name: str
    timeout_s: float = 10

    async def aclose(self) -> None:
        """Release any connections owned by the provider"""
        pass


class ChainReader(Provider):
    """Read-only access to EVM contracts.

    Both operations are all-or-nothing: if any call in the batch fails the
    whole operation raises ``UpstreamError``.
    """

    @abstractmethod
    async def read_scalar_fields(
        self, contract_address: str, abi: Sequence[Dict[str, Any]], field_names: Sequence[str]
    ) -> List[Any]:
        """Call each zero-argument view function, returning values in order"""
        pass

    @abstractmethod
    async def batch_balance_of(
        self, contract_address: str, abi: Sequence[Dict[str, Any]], addresses: Sequence[str]
    ) -> List[int]:
        """Raw ``balanceOf`` for every address, aligned with the input order"""
        pass


class PriceReader(Provider):
    """Provider for token price quotes"""

    @abstractmethod
    async def fetch_prices(self, symbols: Sequence[str]) -> Dict[str, Decimal]:
        """USD price per symbol; symbols without a quote are omitted"""
        pass
