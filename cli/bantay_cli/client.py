import asyncio
import itertools
import json
import os
from typing import Any, Dict, Optional

from monitor.bantay.config.defaults import DEFAULT_SOCKET_PATH

DEFAULT_TIMEOUT = 5.0

class AdminError(RuntimeError):
    """Error reply from the monitor's admin socket."""

    def __init__(self, code: int, message: str):
        self.code = code
        super().__init__(message)

class IPCClient:
    """One-shot JSON-RPC client for the monitor's admin socket."""

    _ids = itertools.count(1)

    def __init__(self, socket_path: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        self.socket_path = socket_path or os.environ.get("BANTAY_SOCKET") or str(DEFAULT_SOCKET_PATH)
        self.timeout = timeout

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if not os.path.exists(self.socket_path):
            raise ConnectionError(f"Admin socket not found at {self.socket_path}. Is the monitor running?")

        msg_id = next(self._ids)
        payload = json.dumps({"jsonrpc": "2.0", "method": method, "params": params or {}, "id": msg_id})

        reader, writer = await asyncio.open_unix_connection(self.socket_path)
        try:
            writer.write(payload.encode() + b"\n")
            await writer.drain()
            line = await asyncio.wait_for(reader.readuntil(b"\n"), self.timeout)
        finally:
            writer.close()
            await writer.wait_closed()

        response = json.loads(line.decode())
        if "error" in response:
            error = response["error"]
            raise AdminError(error.get("code", 0), error.get("message", "unknown error"))
        return response.get("result")

def run_command(method: str, params: Optional[Dict[str, Any]] = None, socket_path: Optional[str] = None) -> Any:
    """Run one admin call synchronously from the CLI."""
    return asyncio.run(IPCClient(socket_path).call(method, params))
