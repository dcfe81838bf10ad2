"""CLI entry point for store-assistant."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Optional

from store_assistant.ai.events import ConversationIdMarker, ErrorFragment, TextChunk, frame_event
from store_assistant.app import StoreAssistantApp
from store_assistant.config import AppConfig, load_config
from store_assistant.core.types import CallerContext, Persona
from store_assistant.log import setup_logging
from store_assistant.storage.database import Database


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="store-assistant",
        description="Conversational data assistant for a point-of-sale storefront",
    )
    parser.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    parser.add_argument("-e", "--env", default=".env", help="Path to .env file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("config-check", help="Validate configuration")
    subparsers.add_parser("init-db", help="Create the database schema")

    chat_parser = subparsers.add_parser("chat", help="Chat with the assistant in the terminal")
    chat_parser.add_argument("--persona", choices=[p.value for p in Persona], default=Persona.STAFF.value)
    chat_parser.add_argument("--user-id", type=int, required=True, help="Caller id owning the conversation")
    chat_parser.add_argument("--customer-id", type=int, default=None, help="Signed-in customer id")

    args = parser.parse_args()

    if args.command == "config-check":
        _check_config(args.config, args.env)
    elif args.command == "init-db":
        config = _load(args.config, args.env)
        setup_logging(config.log_level, config.json_logs)
        asyncio.run(_init_db(config))
    elif args.command == "chat":
        config = _load(args.config, args.env)
        setup_logging(config.log_level, config.json_logs)
        caller = CallerContext(Persona(args.persona), args.user_id, args.customer_id)
        asyncio.run(_chat(config, caller))
    else:
        parser.print_help()


def _load(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    config = _load(config_path, env_path)
    print(f"Configuration valid: {config_path}")
    print(f"  Model: {config.model.name} (context {config.model.context_window}, output {config.model.max_output_tokens})")
    print(f"  Anthropic API key: {'set' if config.anthropic and config.anthropic.api_key else 'missing'}")
    print(f"  Storage: {config.storage.db_path} (retention {config.storage.conversation_retention_days} days)")
    print(f"  Rate limit: {config.rate_limit.requests_per_minute}/min")
    print(f"  Tool rounds: {config.assistant.max_tool_rounds}, tool timeout: {config.assistant.tool_timeout_seconds}s")
    for name in ("staff", "customer"):
        persona = getattr(config.personas, name)
        print(f"  Persona {name}: max message {persona.max_message_length} chars")


async def _init_db(config: AppConfig) -> None:
    db = Database(config.storage.db_path)
    await db.initialize()
    await db.close()
    print(f"Database ready: {config.storage.db_path}")


async def _chat(config: AppConfig, caller: CallerContext) -> None:
    app = StoreAssistantApp(config)
    await app.start()
    orchestrator = app.orchestrator_for(caller.persona)
    history_cap = getattr(config.personas, caller.persona.value).max_client_history
    conversation_id: Optional[int] = None
    history: list[dict[str, Any]] = []
    print("Type a message, or 'exit' to quit.")
    try:
        while True:
            try:
                message = await asyncio.to_thread(input, "> ")
            except EOFError:
                break
            if message.strip().lower() in ("exit", "quit"):
                break

            reply: list[str] = []
            failed = False
            async for event in orchestrator.stream_turn(
                caller, message, conversation_id, history[-history_cap:] if history_cap else history
            ):
                if isinstance(event, ConversationIdMarker):
                    conversation_id = event.conversation_id
                    continue
                if isinstance(event, TextChunk):
                    reply.append(event.text)
                elif isinstance(event, ErrorFragment):
                    failed = True
                print(frame_event(event), end="", flush=True)
            print()

            if conversation_id is not None and not failed:
                history.append({"role": "user", "content": message})
                if reply:
                    history.append({"role": "assistant", "content": "".join(reply)})
    finally:
        await app.stop()


if __name__ == "__main__":
    main()
