import asyncio
import json
import os
from typing import Any, Awaitable, Callable, Dict

from .utils.logging import get_logger

logger = get_logger("ipc_server")

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
SERVER_ERROR = -32000

MAX_LINE_BYTES = 64 * 1024

Handler = Callable[[Dict[str, Any]], Awaitable[Any]]

def _error(code: int, message: str, msg_id: Any = None) -> Dict:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": msg_id}

class IPCServer:
    """Newline-delimited JSON-RPC 2.0 over a Unix socket, for operator tooling."""

    def __init__(self, socket_path: str, handlers: Dict[str, Handler]):
        self.socket_path = socket_path
        self.handlers = handlers
        self.server = None

    async def start(self):
        if os.path.exists(self.socket_path):
            os.unlink(self.socket_path)
        os.makedirs(os.path.dirname(self.socket_path) or ".", exist_ok=True)

        self.server = await asyncio.start_unix_server(
            self.handle_client, self.socket_path, limit=MAX_LINE_BYTES
        )
        # Admin surface: owner only.
        os.chmod(self.socket_path, 0o600)
        logger.info(f"Admin socket listening on {self.socket_path}")

    async def stop(self):
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            if os.path.exists(self.socket_path):
                os.unlink(self.socket_path)
            logger.info("Admin socket closed")

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        try:
            while True:
                data = await reader.readuntil(b"\n")
                response = await self.process_line(data)
                writer.write(json.dumps(response, default=str).encode() + b"\n")
                await writer.drain()
        except asyncio.IncompleteReadError:
            pass
        except (asyncio.LimitOverrunError, ValueError) as e:
            # The stream cannot be resynchronized after an oversized line.
            logger.warning(f"Admin request rejected: {e}")
            response = _error(INVALID_REQUEST, f"Request line exceeds {MAX_LINE_BYTES} bytes")
            try:
                writer.write(json.dumps(response).encode() + b"\n")
                await writer.drain()
            except ConnectionError:
                pass
        except ConnectionError as e:
            logger.debug(f"Admin client went away: {e}")
        except Exception as e:
            logger.error(f"Admin client error: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def process_line(self, data: bytes) -> Dict:
        try:
            request = json.loads(data.decode().strip())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            return _error(PARSE_ERROR, f"Parse error: {e}")
        if not isinstance(request, dict):
            return _error(INVALID_REQUEST, "Request must be a JSON object")
        return await self.process_request(request)

    async def process_request(self, request: Dict) -> Dict:
        method = request.get("method")
        params = request.get("params") or {}
        msg_id = request.get("id")

        if method not in self.handlers:
            return _error(METHOD_NOT_FOUND, "Method not found", msg_id)
        if not isinstance(params, dict):
            return _error(INVALID_REQUEST, "params must be an object", msg_id)

        try:
            result = await self.handlers[method](params)
            return {"jsonrpc": "2.0", "result": result, "id": msg_id}
        except Exception as e:
            logger.error(f"Error processing {method}: {e}")
            return _error(SERVER_ERROR, str(e), msg_id)
