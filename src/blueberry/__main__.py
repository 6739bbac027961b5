"""CLI entry point for Blue Berry."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

from pydantic import ValidationError

from blueberry.ai.pricing import PricingTier, get_pricing
from blueberry.ai.tokens import format_token_count, get_max_tokens
from blueberry.ai.tools.registry import ToolRegistry
from blueberry.app import BlueBerryApp
from blueberry.config import AppConfig, load_config
from blueberry.log import setup_logging
from blueberry.services.mcp_manager import McpManager


COMMANDS = ("chat", "config-check", "model-info", "mcp")


def _add_config_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config", default=None, help="Path to config file (default: ~/.bb/config.yaml)"
    )
    parser.add_argument(
        "-e", "--env", default=".env", help="Path to .env file"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bb",
        description="Interactive LLM agent with MCP tool providers",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # chat command
    chat_parser = subparsers.add_parser("chat", help="Start an interactive session (default)")
    _add_config_args(chat_parser)
    chat_parser.add_argument("--model", help="Model name override")
    chat_parser.add_argument("--endpoint", help="API base URL override")
    chat_parser.add_argument("--key", help="API key override")
    chat_parser.add_argument("--backend", choices=("openai", "anthropic"), help="Backend override")

    # config-check command
    check_parser = subparsers.add_parser("config-check", help="Validate configuration")
    _add_config_args(check_parser)

    # model-info command
    model_parser = subparsers.add_parser("model-info", help="Show model, context and pricing info")
    _add_config_args(model_parser)

    # mcp command
    mcp_parser = subparsers.add_parser("mcp", help="List configured MCP providers")
    _add_config_args(mcp_parser)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or (argv[0] not in COMMANDS and argv[0] not in ("-h", "--help")):
        # Default to chat
        argv.insert(0, "chat")
    args = parser.parse_args(argv)

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "model-info":
        _model_info(args.config, args.env)
    elif args.command == "mcp":
        _list_mcp(args.config, args.env)
    elif args.command == "chat":
        sys.exit(_run(args))


def _load_or_exit(config_path: Optional[str], env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except (ValidationError, ValueError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Return a copy of ``config`` with the chat command's model overrides applied."""
    overrides = {
        "model": args.model,
        "endpoint": args.endpoint,
        "api_key": args.key,
        "backend": args.backend,
    }
    updates = {k: v for k, v in overrides.items() if v is not None}
    if not updates:
        return config
    model = config.model.model_validate({**config.model.model_dump(), **updates})
    return config.model_copy(update={"model": model})


def _check_config(config_path: Optional[str], env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load_or_exit(config_path, env_path)
    print(f"Configuration valid: {config_path or 'defaults'}")
    print(f"  Backend        : {config.model.backend}")
    print(f"  Model          : {config.model.model}")
    print(f"  Endpoint       : {config.model.endpoint or '(backend default)'}")
    print(f"  History dir    : {config.history_dir}")
    print(f"  MCP config     : {config.mcp_config_path}")
    print(f"  Max tool rounds: {config.max_tool_rounds}")
    print(f"  Retry          : {config.retry.max_attempts} attempts, {config.retry.initial_delay}s to {config.retry.max_delay}s")


def _model_info(config_path: Optional[str], env_path: str) -> None:
    """Show the model's context window and pricing."""
    config = _load_or_exit(config_path, env_path)
    model = config.model
    tier = PricingTier(model.pricing_tier)
    price = get_pricing(model.model, tier)
    context = model.max_context_tokens or get_max_tokens(model.model)

    print("AI Model Configuration")
    print("=" * 50)
    print(f"    Backend : {model.backend}")
    print(f"    Model   : {model.model}")
    print(f"    Tokens  : {model.max_tokens}")
    print(f"    Context : {format_token_count(context)}")
    print(f"    Tier    : {tier.value}")
    print(f"    Input   : ${price.input} / 1M tokens")
    print(f"    Output  : ${price.output} / 1M tokens")
    if price.cached_input is not None:
        print(f"    Cached  : ${price.cached_input} / 1M tokens")
    print(f"    Temp    : {model.temperature if model.temperature is not None else '(default)'}")
    print()


def _list_mcp(config_path: Optional[str], env_path: str) -> None:
    config = _load_or_exit(config_path, env_path)
    manager = McpManager.from_config_file(config.mcp_config_path, ToolRegistry())
    print(manager.list_servers())


def _run(args: argparse.Namespace) -> int:
    """Load config and run the interactive session."""
    config = apply_overrides(_load_or_exit(args.config, args.env), args)
    setup_logging(config.log_level)

    app = BlueBerryApp(config)
    try:
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    main()
