"""
JSON-RPC transport shared by the paymaster and bundler clients
"""

import asyncio
import functools
import itertools
import logging
from typing import Any, Callable, List, Type, TypeVar

import requests

from exceptions import NetworkError, RemoteRejection, RemoteTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_blocking(fn: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking call in the default executor so the event loop keeps going"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


class JsonRpcClient:
    """Minimal JSON-RPC 2.0 client over HTTP"""

    def __init__(
        self,
        url: str,
        timeout: float = 30,
        rejection: Type[RemoteRejection] = RemoteRejection,
        session: requests.Session = None,
    ):
        self.url = url
        self.timeout = timeout
        self.rejection = rejection
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    async def request(self, method: str, params: List) -> Any:
        """Send a JSON-RPC request and return its result"""
        return await run_blocking(self._post, method, params)

    def _post(self, method: str, params: List) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        logger.debug(f"{method} -> {self.url}")

        try:
            response = self._session.post(
                self.url,
                json=payload,
                headers={'Content-Type': 'application/json'},
                timeout=self.timeout
            )
        except requests.Timeout as e:
            raise RemoteTimeoutError(f"{method} to {self.url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise NetworkError(f"{method} to {self.url} failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        # Some services answer JSON-RPC errors with a 4xx status
        if isinstance(body, dict) and body.get("error") is not None:
            error = body["error"]
            if not isinstance(error, dict):
                error = {"message": str(error)}
            message = error.get("message", "Unknown error")
            logger.error(f"{method} rejected by {self.url}: {message}")
            raise self.rejection(message, code=error.get("code"), data=error.get("data"))

        if response.status_code != 200:
            raise NetworkError(f"{method} to {self.url} returned HTTP {response.status_code}")
        if not isinstance(body, dict) or "result" not in body:
            raise NetworkError(f"{method} to {self.url} returned a malformed response")

        return body["result"]

    def close(self) -> None:
        self._session.close()
