"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

from blueberry import constants
from blueberry.ai.client import ChatClient, create_chat_client
from blueberry.ai.conversation import Conversation
from blueberry.ai.handler import TurnHandler
from blueberry.ai.pricing import PricingTier
from blueberry.ai.tokens import get_max_tokens
from blueberry.ai.tool_runner import ToolInvokingClient
from blueberry.ai.tools.registry import ToolRegistry
from blueberry.ai.usage import UsageLedger
from blueberry.config import AppConfig
from blueberry.core.session import ChatSession
from blueberry.log import bind_session, get_logger
from blueberry.repl.base import InputSource
from blueberry.repl.presenter import Presenter
from blueberry.services.mcp_manager import McpManager
from blueberry.storage.conversation_repo import ConversationStore

logger = get_logger(__name__)


class BlueBerryApp:
    """Top-level application orchestrator."""

    def __init__(self, config: AppConfig, presenter: Optional[Presenter] = None):
        self.config = config
        self.system_prompt = config.resolve_system_prompt()
        self.store = ConversationStore(config.history_dir)
        self.tool_registry = ToolRegistry()
        self.mcp_manager = McpManager.from_config_file(config.mcp_config_path, self.tool_registry)
        self.ledger = UsageLedger(PricingTier(config.model.pricing_tier))
        self.presenter = presenter or Presenter()

    @property
    def max_context_tokens(self) -> int:
        return self.config.model.max_context_tokens or get_max_tokens(self.config.model.model)

    async def run(
        self,
        input_source: Optional[InputSource] = None,
        client: Optional[ChatClient] = None,
    ) -> int:
        """Start providers, run the interactive session and shut everything down."""
        client = client or create_chat_client(self.config.model)
        bind_session(client.model_name, uuid.uuid4().hex[:12])

        try:
            # 1. Tool providers (their sampling requests go to the same model)
            await self.mcp_manager.initialize(sampling_client=client)

            # 2. Turn pipeline
            tool_client = ToolInvokingClient(client, self.tool_registry, self.config.max_tool_rounds)
            handler = TurnHandler(tool_client, self.presenter, self.store, self.config.retry)

            # 3. Interactive session
            session = ChatSession(
                handler=handler,
                conversation=Conversation(self.system_prompt),
                store=self.store,
                ledger=self.ledger,
                presenter=self.presenter,
                input_source=input_source or self._create_input(),
                model_name=client.model_name,
                max_context_tokens=self.max_context_tokens,
                tools=self.mcp_manager.tools,
            )
            self._banner(client)
            logger.info("session_started", tools=len(self.tool_registry))
            return await session.run()
        finally:
            await self.mcp_manager.dispose()
            await client.close()
            logger.info("blueberry_stopped")

    def _create_input(self) -> InputSource:
        from blueberry.repl.prompt import PromptToolkitInput

        path = Path(self.config.command_history_file).expanduser()
        if not path.is_absolute():
            path = constants.HOME / path
        return PromptToolkitInput(path)

    def _banner(self, client: ChatClient) -> None:
        providers = len(self.mcp_manager.providers)
        self.presenter.success(f"Blue Berry: {client.model_name} ({self.config.model.backend})")
        self.presenter.info(
            f"{len(self.tool_registry)} tools from {providers} MCP providers. Type /help for commands."
        )
