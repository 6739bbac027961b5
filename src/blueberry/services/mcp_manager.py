"""MCP (Model Context Protocol) provider lifecycle and tool discovery.

Each configured provider is launched as a stdio subprocess through the
``mcp`` SDK. Providers are started and shut down in isolation: one that fails
to launch or to complete the handshake is logged and skipped, and disposing
the manager closes every provider that did start, in reverse order.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.stdio import stdio_client

from blueberry.ai.client import ChatClient
from blueberry.ai.models import Message, Role
from blueberry.ai.tools.base import Tool
from blueberry.ai.tools.mcp import McpTool, flatten_content
from blueberry.ai.tools.registry import ToolRegistry
from blueberry.config import McpServerConfig, load_mcp_config
from blueberry.log import get_logger

logger = get_logger(__name__)

SamplingCallback = Callable[..., Awaitable[Any]]
Connector = Callable[[McpServerConfig, AsyncExitStack, Optional[SamplingCallback]], Awaitable[Any]]


class McpProvider:
    """One running provider: its config, live session and the resources behind it."""

    def __init__(self, config: McpServerConfig, session: Any, stack: AsyncExitStack):
        self.config = config
        self.session = session
        self._stack = stack

    @property
    def name(self) -> str:
        return self.config.name

    async def aclose(self) -> None:
        self.session = None
        await self._stack.aclose()


async def connect_stdio(
    server: McpServerConfig,
    stack: AsyncExitStack,
    sampling_callback: Optional[SamplingCallback],
) -> ClientSession:
    """Launch ``server`` as a subprocess and complete the MCP handshake."""
    params = StdioServerParameters(command=server.command, args=server.arguments, env=server.env)
    read_stream, write_stream = await stack.enter_async_context(stdio_client(params))
    session = await stack.enter_async_context(
        ClientSession(read_stream, write_stream, sampling_callback=sampling_callback)
    )
    await session.initialize()
    return session


def create_sampling_callback(client: ChatClient) -> SamplingCallback:
    """Route a provider's ``sampling/createMessage`` requests to the session's model."""

    async def _sampling(context: Any, params: types.CreateMessageRequestParams) -> Any:
        messages = [Message.system(params.systemPrompt or "")]
        for sampling_message in params.messages:
            role = Role.ASSISTANT if sampling_message.role == "assistant" else Role.USER
            text = flatten_content(_as_list(sampling_message.content))
            messages.append(Message(role=role, text=text))

        logger.info("mcp_sampling_request", messages=len(params.messages), max_tokens=params.maxTokens)
        try:
            text = await client.complete(messages, max_tokens=params.maxTokens)
        except Exception as e:
            logger.error("mcp_sampling_failed", error=str(e))
            return types.ErrorData(code=types.INTERNAL_ERROR, message=str(e))

        return types.CreateMessageResult(
            role="assistant",
            content=types.TextContent(type="text", text=text),
            model=client.model_name,
            stopReason="endTurn",
        )

    return _sampling


def _as_list(content: Any) -> list[Any]:
    if isinstance(content, list):
        return content
    return [content]


class McpManager:
    """Starts MCP providers, merges their tools into a registry and shuts them down.

    Workflow:
      1. ``initialize`` launches every configured provider, each on its own
         exit stack, with a sampling callback bound to the chat client.
      2. Once all providers are connected their tools are listed and
         registered; duplicate names keep the first provider's tool.
      3. The registry is frozen, so ``tools()`` is stable for the session.
      4. ``dispose`` closes providers in reverse start order. It is
         idempotent and never raises.
    """

    def __init__(
        self,
        servers: Sequence[McpServerConfig],
        registry: ToolRegistry,
        connector: Connector = connect_stdio,
    ):
        self._servers = list(servers)
        self._registry = registry
        self._connector = connector
        self._providers: list[McpProvider] = []

    @classmethod
    def from_config_file(cls, path: str | Path, registry: ToolRegistry) -> McpManager:
        config = load_mcp_config(path)
        servers = config.mcp_servers if config is not None else []
        return cls(servers, registry)

    @property
    def providers(self) -> list[McpProvider]:
        return list(self._providers)

    # ── lifecycle ───────────────────────────────────────────────

    async def initialize(self, sampling_client: Optional[ChatClient] = None) -> None:
        if not self._servers:
            logger.info("mcp_no_providers")
            self._registry.freeze()
            return

        callback = create_sampling_callback(sampling_client) if sampling_client is not None else None

        for server in self._servers:
            provider = await self._start_provider(server, callback)
            if provider is not None:
                self._providers.append(provider)

        for provider in self._providers:
            await self._register_tools(provider)

        self._registry.freeze()
        logger.info(
            "mcp_initialized",
            providers=len(self._providers),
            failed=len(self._servers) - len(self._providers),
            tools=len(self._registry),
        )

    async def _start_provider(
        self,
        server: McpServerConfig,
        callback: Optional[SamplingCallback],
    ) -> Optional[McpProvider]:
        stack = AsyncExitStack()
        try:
            session = await self._connector(server, stack, callback)
        except Exception as e:
            logger.error("mcp_provider_failed", provider=server.name, command=server.command, error=str(e))
            await self._close_stack(server.name, stack)
            return None
        logger.info("mcp_provider_started", provider=server.name)
        return McpProvider(server, session, stack)

    async def _register_tools(self, provider: McpProvider) -> None:
        try:
            listed = await provider.session.list_tools()
        except Exception as e:
            logger.error("mcp_list_tools_failed", provider=provider.name, error=str(e))
            return

        for tool in listed.tools:
            self._registry.register(McpTool(provider, tool.name, tool.description, tool.inputSchema))

    async def dispose(self) -> None:
        providers, self._providers = self._providers, []
        for provider in reversed(providers):
            try:
                await provider.aclose()
                logger.info("mcp_provider_stopped", provider=provider.name)
            except Exception as e:
                logger.warning("mcp_provider_stop_error", provider=provider.name, error=repr(e))

    @staticmethod
    async def _close_stack(name: str, stack: AsyncExitStack) -> None:
        try:
            await stack.aclose()
        except Exception as e:
            logger.warning("mcp_provider_cleanup_error", provider=name, error=repr(e))

    # ── catalog ─────────────────────────────────────────────────

    def tools(self) -> tuple[Tool, ...]:
        return self._registry.all_tools()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        tool = self._registry.get(name)
        if tool is None:
            raise KeyError(f"Unknown tool: {name}")
        return await tool.execute(**arguments)

    def list_servers(self) -> str:
        if not self._servers:
            return "No MCP servers configured."
        lines: list[str] = []
        for server in self._servers:
            args = " ".join(server.arguments)
            env_keys = ", ".join((server.env or {}).keys())
            env_info = f" (env: {env_keys})" if env_keys else ""
            lines.append(f"- {server.name}: {server.command} {args}".rstrip() + env_info)
        return "\n".join(lines)
