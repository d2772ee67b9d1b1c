from __future__ import annotations
import copy
from typing import Any, Iterable, Mapping


class StaticReadingSource:
    """In-memory sensor documents for development and tests."""

    def __init__(self, documents: Iterable[Mapping[str, Any]] = ()) -> None:
        self._documents = [dict(d) for d in documents]
        self.fail_next = False

    def set_documents(self, documents: Iterable[Mapping[str, Any]]) -> None:
        self._documents = [dict(d) for d in documents]

    def push(self, document: Mapping[str, Any]) -> None:
        self._documents.append(dict(document))

    async def fetch_latest(self) -> list[dict[str, Any]]:
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("Simulated reading source failure")
        return copy.deepcopy(self._documents)
