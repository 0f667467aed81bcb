# GMAT Docs MCP Server - JSON-RPC 2.0 over stdio
# Exposes a single searchDocs tool backed by the embeddings cache.

import sys, json, math, signal, asyncio, logging
from typing import Dict, Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from config.settings import Settings
from indexer.cache_store import CacheStore
from indexer.embeddings import EmbedFn, create_embedder, embed_query
from indexer.errors import CacheLoadError, GmatDocsError
from indexer.search import SearchEngine
from observability import metrics
from observability.logging import setup_logging
from pipelines.models import SearchResult

logger = logging.getLogger(__name__)

SERVER_NAME = "gmat-docs-mcp-server"
SERVER_VERSION = "1.0.0"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

SEARCH_DOCS_TOOL = {
    "name": "searchDocs",
    "description": "Semantic search over GMAT documentation. Returns relevant sections with full content and sources.",
    "inputSchema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query - can be a question, topic, or keyword related to GMAT"
            },
            "topK": {
                "type": "number",
                "description": "Maximum number of results to return (default: 10)",
                "minimum": 1,
                "maximum": 50,
                "default": 10
            },
            "minScore": {
                "type": "number",
                "description": "Minimum similarity score threshold (0-1, default: 0.1)",
                "minimum": 0,
                "maximum": 1,
                "default": 0.1
            }
        },
        "required": ["query"]
    }
}


class JSONRPCError(Exception):
    """Error reported to the client as a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code


class SearchDocsArgs(BaseModel):
    """Validated searchDocs arguments."""
    model_config = ConfigDict(populate_by_name=True)

    query: str
    top_k: int = Field(default=10, ge=1, le=50, alias="topK")
    min_score: float = Field(default=0.1, ge=0, le=1, alias="minScore")

    @field_validator("query")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("query must not be empty")
        return value

    @field_validator("top_k", mode="before")
    @classmethod
    def _truncate_top_k(cls, value: Any) -> Any:
        # topK is advertised as a JSON number; fractional counts are truncated
        if isinstance(value, float) and math.isfinite(value):
            return int(value)
        return value


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ())) or "arguments"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def format_results(query: str, results: Sequence[SearchResult]) -> str:
    """Render ranked results as the tool's text output."""
    if not results:
        return f'No relevant documentation found for query: "{query}"'

    plural = "s" if len(results) > 1 else ""
    response = f'Found {len(results)} relevant section{plural} for: "{query}"\n\n'
    for rank, result in enumerate(results, 1):
        chunk = result.chunk
        response += f"## Result {rank} (Score: {result.score:.3f})\n"
        response += f"**Page**: {chunk.page_name}\n"
        response += f"**Source**: {chunk.href}\n"
        response += f"**Content**:\n{chunk.full_content}\n\n"
        response += "---\n\n"
    return response.strip()


def _text_content(text: str) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


class MCPServer:
    def __init__(self, search_engine: SearchEngine, embed_fn: EmbedFn):
        self.search_engine = search_engine
        self.embed_fn = embed_fn
        self.capabilities = {
            "tools": {}
        }
        self.server_info = {
            "name": SERVER_NAME,
            "version": SERVER_VERSION
        }
        self.session_initialized = False

    async def handle_initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Handle MCP initialize request"""
        client_info = params.get("clientInfo", {})
        logger.info(f"Initializing MCP session with client: {client_info.get('name', 'unknown')}")

        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else SUPPORTED_PROTOCOL_VERSIONS[-1]
        return {
            "protocolVersion": version,
            "capabilities": self.capabilities,
            "serverInfo": self.server_info
        }

    async def handle_initialized(self, params: Dict[str, Any]) -> None:
        """Handle MCP initialized notification"""
        self.session_initialized = True
        logger.info("MCP session initialized successfully")

    async def handle_tools_list(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """List available MCP tools"""
        return {"tools": [SEARCH_DOCS_TOOL]}

    async def handle_tools_call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Execute MCP tool calls"""
        name = params.get("name")
        arguments = params.get("arguments") or {}

        if name != SEARCH_DOCS_TOOL["name"]:
            raise JSONRPCError(INVALID_PARAMS, f"Unknown tool: {name}")
        return await self._tool_search_docs(arguments)

    async def _tool_search_docs(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """searchDocs: any failure is returned as tool text, never as a protocol error."""
        query = arguments.get("query", "") if isinstance(arguments, dict) else ""
        try:
            args = SearchDocsArgs.model_validate(arguments)
            query = args.query
            query_vector = await embed_query(self.embed_fn, args.query)
            results = self.search_engine.search(query_vector, args.top_k, args.min_score)
        except ValidationError as e:
            metrics.search_requests.labels(status="invalid").inc()
            return _text_content(f"Error searching documentation: {_validation_message(e)}")
        except Exception as e:
            metrics.search_requests.labels(status="error").inc()
            if isinstance(e, GmatDocsError):
                logger.warning(f"Search failed for {query!r}: {e}")
            else:
                logger.exception(f"Search failed for {query!r}")
            return _text_content(f"Error searching documentation: {str(e) or e.__class__.__name__}")

        metrics.search_requests.labels(status="success" if results else "empty").inc()
        logger.info(f"searchDocs {query!r}: {len(results)} results")
        return _text_content(format_results(query, results))

    async def handle_request(self, request_data: Any) -> Optional[Dict[str, Any]]:
        """Main request handler for JSON-RPC 2.0 messages"""
        if not isinstance(request_data, dict):
            return self._error_response(None, INVALID_REQUEST, "Invalid request")

        request_id = request_data.get("id")
        is_notification = "id" not in request_data
        try:
            if request_data.get("jsonrpc") != "2.0":
                raise JSONRPCError(INVALID_REQUEST, "Invalid JSON-RPC version")

            method = request_data.get("method")
            params = request_data.get("params") or {}
            if not method:
                raise JSONRPCError(INVALID_REQUEST, "Missing method")

            if method == "initialize":
                result = await self.handle_initialize(params)
            elif method in ("notifications/initialized", "initialized"):
                await self.handle_initialized(params)
                return None
            elif method.startswith("notifications/"):
                return None
            elif method == "ping":
                result = {}
            elif method == "tools/list":
                result = await self.handle_tools_list(params)
            elif method == "tools/call":
                result = await self.handle_tools_call(params)
            else:
                raise JSONRPCError(METHOD_NOT_FOUND, f"Unknown method: {method}")

        except JSONRPCError as e:
            logger.error(f"Error handling request: {e}")
            return None if is_notification else self._error_response(request_id, e.code, str(e))
        except Exception as e:
            logger.exception("Error handling request")
            return None if is_notification else self._error_response(request_id, INTERNAL_ERROR, str(e))

        if is_notification:
            return None
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": result
        }

    async def handle_line(self, line: str) -> Optional[Dict[str, Any]]:
        """Decode one stdio line and dispatch it."""
        try:
            request_data = json.loads(line)
        except json.JSONDecodeError as e:
            return self._error_response(None, PARSE_ERROR, f"Parse error: {e}")
        return await self.handle_request(request_data)

    @staticmethod
    def _error_response(request_id, code: int, message: str) -> Dict[str, Any]:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "error": {
                "code": code,
                "message": message
            }
        }


async def serve_stdio(server: MCPServer) -> None:
    """Read newline-delimited JSON-RPC messages from stdin until EOF."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=2 ** 22)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)

    while True:
        line = await reader.readline()
        if not line:
            break
        if not line.strip():
            continue

        response = await server.handle_line(line.decode("utf-8"))
        if response:  # Don't send response for notifications
            sys.stdout.write(json.dumps(response) + "\n")
            sys.stdout.flush()


async def _run(server: MCPServer) -> None:
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            pass

    logger.info("GMAT Docs MCP Server is running")
    try:
        await serve_stdio(server)
    except asyncio.CancelledError:
        logger.info("Shutting down GMAT Docs MCP Server...")


def create_server(settings: Settings) -> MCPServer:
    """Load the cache and build a ready server.

    Raises:
        CacheLoadError: if the cache is unavailable
        ValueError: if the embedding provider is not configured
    """
    engine = SearchEngine(CacheStore(settings.cache_dir))
    logger.info("Loading GMAT documentation cache...")
    engine.load()
    logger.info(f"Cache loaded: {engine.stats()['totalChunks']} chunks available")
    return MCPServer(engine, create_embedder(settings))


def main() -> int:
    """Main entry point for MCP server"""
    settings = Settings.from_env()
    setup_logging(level=settings.log_level, service_name=SERVER_NAME, use_json=settings.log_json)

    try:
        server = create_server(settings)
    except (CacheLoadError, ValueError) as e:
        logger.error(f"Failed to start GMAT Docs MCP Server: {e}")
        return 1

    logger.info("Starting GMAT Docs MCP Server...")
    try:
        asyncio.run(_run(server))
    except KeyboardInterrupt:
        logger.info("Shutting down GMAT Docs MCP Server...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
