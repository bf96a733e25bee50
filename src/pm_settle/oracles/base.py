from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pm_settle.errors import OracleNotFound
from pm_settle.ids import normalize_address
from pm_settle.schemas import OracleOutcome

NO = 0
YES = 1


class OracleAdapter(ABC):
    """Resolves questions for markets. Markets reference adapters by address."""

    address: str

    @abstractmethod
    def request_resolution(self, question_id: int) -> None:
        """Trigger computation of an answer. Repeated calls must be harmless."""
        raise NotImplementedError

    @abstractmethod
    def get_outcome(self, question_id: int) -> OracleOutcome:
        """Pure read. ``winning_index`` is meaningless while ``resolved`` is False."""
        raise NotImplementedError

    def participants(self) -> list[Any]:
        """State the adapter mutates, for callers that wrap it in ``atomic``."""
        return []


class OracleDirectory:
    def __init__(self, *adapters: OracleAdapter):
        self._adapters: dict[str, OracleAdapter] = {}
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: OracleAdapter) -> None:
        self._adapters[normalize_address(adapter.address)] = adapter

    def get(self, address: str) -> OracleAdapter:
        adapter = self._adapters.get(normalize_address(address))
        if adapter is None:
            raise OracleNotFound(oracle=address)
        return adapter

    def __iter__(self):
        return iter(self._adapters.values())
