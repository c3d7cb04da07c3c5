# ingestion/rpc.py
from __future__ import annotations

import itertools
import logging
from typing import Any, List, Optional, Sequence, Tuple

import requests

from ingestion.errors import RpcError

logger = logging.getLogger(__name__)

Call = Tuple[str, List[Any]]


class RpcClient:
    """
    Minimal JSON-RPC 2.0 client over one shared requests.Session.
    Every failure is raised as RpcError; retry policy belongs to the caller.
    """

    def __init__(self, url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def close(self) -> None:
        self.session.close()

    def _post(self, payload: Any, label: str) -> Any:
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise RpcError(f"RPC transport failed for {label} url={self.url}") from e
        except ValueError as e:
            raise RpcError(f"RPC returned non JSON body for {label}") from e

    @staticmethod
    def _result(method: str, data: Any) -> Any:
        if not isinstance(data, dict):
            raise RpcError(f"malformed RPC response for {method}: {data!r}")
        if "error" in data and data["error"] is not None:
            raise RpcError(f"RPC error for {method}: {data['error']}")
        if "result" not in data:
            raise RpcError(f"RPC response for {method} has no result")
        return data["result"]

    def call(self, method: str, params: List[Any]) -> Any:
        """Return the JSON-RPC result field directly."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        return self._result(method, self._post(payload, method))

    def batch(self, calls: Sequence[Call]) -> List[Any]:
        """
        Send several calls in one HTTP request and return their results in call order.
        Fails as a whole if any member call fails.
        """
        ids = []
        payload = []
        for method, params in calls:
            i = next(self._ids)
            ids.append(i)
            payload.append({"jsonrpc": "2.0", "id": i, "method": method, "params": params})

        label = "batch(" + ",".join(m for m, _ in calls) + ")"
        data = self._post(payload, label)
        if not isinstance(data, list):
            # some providers answer a batch with a single error object
            if isinstance(data, dict) and data.get("error") is not None:
                raise RpcError(f"RPC error for {label}: {data['error']}")
            raise RpcError(f"malformed RPC response for {label}")

        by_id = {item.get("id"): item for item in data if isinstance(item, dict)}
        results = []
        for (method, _), i in zip(calls, ids):
            if i not in by_id:
                raise RpcError(f"RPC batch response missing id {i} for {method}")
            results.append(self._result(method, by_id[i]))
        logger.debug("rpc %s ok", label)
        return results
