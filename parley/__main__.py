"""
Parley CLI entry point.

Provides command-line interface for running the gateway and utility commands.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from parley import __version__
from parley.components import ParleyComponents
from parley.config.logging import get_log_buffer, get_logger, setup_logging
from parley.config.settings import Settings, load_settings
from parley.llm.models import (
    CredentialExhausted,
    PersistenceError,
    SuppressedReply,
    TenantSettingsInfo,
    TurnMetadata,
    TurnRequest,
)

TENANT_SETTING_KEYS = tuple(k for k in TenantSettingsInfo.model_fields if k != "tenant_id")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="parley",
        description="Multi-tenant chat assistant engine with credential failover and tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Parley {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("run", help="Run the Discord gateway with background model discovery")
    subparsers.add_parser("config", help="Show current configuration")
    subparsers.add_parser("init-db", help="Create database tables")

    cred_parser = subparsers.add_parser("add-credential", help="Register a provider API key for a tenant")
    cred_parser.add_argument("tenant", help="Tenant id")
    cred_parser.add_argument("secret", help="Provider API key")
    cred_parser.add_argument(
        "--no-discover",
        action="store_true",
        help="Skip model discovery for the new key",
    )

    subparsers.add_parser("discover", help="Refresh discovered models for every active credential")

    chat_parser = subparsers.add_parser("chat", help="Run one playground turn")
    chat_parser.add_argument("tenant", help="Tenant id")
    chat_parser.add_argument("prompt", help='Message to send, e.g. "What\'s 2+2?"')
    chat_parser.add_argument(
        "--conversation",
        default="cli",
        help="Conversation id (default: cli)",
    )
    chat_parser.add_argument(
        "--model",
        default=None,
        help="Use this model for the turn instead of automatic selection",
    )
    chat_parser.add_argument(
        "--show-log",
        type=int,
        default=0,
        metavar="N",
        help="Print the last N log lines after the turn (candidate attempts, tool errors)",
    )

    history_parser = subparsers.add_parser("history", help="Show or search the conversation log")
    history_parser.add_argument("tenant", help="Tenant id")
    history_target = history_parser.add_mutually_exclusive_group(required=True)
    history_target.add_argument("--conversation", help="Show one conversation, newest first")
    history_target.add_argument("--search", help="Find entries whose content contains this text")
    history_parser.add_argument("--limit", type=int, default=50, help="Maximum entries (default: 50)")

    memory_parser = subparsers.add_parser("memory", help="Manage core and learned memories")
    memory_actions = memory_parser.add_subparsers(dest="action", required=True)
    memory_add = memory_actions.add_parser("add", help="Add a memory")
    memory_add.add_argument("tenant", help="Tenant id")
    memory_add.add_argument("content", help="Memory text")
    memory_add.add_argument(
        "--kind",
        choices=["core", "active_learning"],
        default="core",
        help="core memories are always injected; learned ones follow platform scoping (default: core)",
    )
    memory_add.add_argument("--platform", default=None, help="Platform a learned memory belongs to")
    memory_add.add_argument("--external-id", default=None, help="Sender a learned memory belongs to")
    memory_list = memory_actions.add_parser("list", help="List memories, newest first")
    memory_list.add_argument("tenant", help="Tenant id")
    memory_list.add_argument("--limit", type=int, default=100, help="Maximum memories (default: 100)")
    memory_delete = memory_actions.add_parser("delete", help="Delete a memory")
    memory_delete.add_argument("tenant", help="Tenant id")
    memory_delete.add_argument("memory_id", help="Memory id")

    persona_parser = subparsers.add_parser("personality", help="Manage assistant personalities")
    persona_actions = persona_parser.add_subparsers(dest="action", required=True)
    persona_list = persona_actions.add_parser("list", help="List personalities")
    persona_list.add_argument("tenant", help="Tenant id")
    persona_add = persona_actions.add_parser("add", help="Create a personality")
    persona_add.add_argument("tenant", help="Tenant id")
    persona_add.add_argument("name", help="Display name")
    persona_add.add_argument("prompt", help="System prompt")
    persona_add.add_argument("--activate", action="store_true", help="Make it the active personality")
    persona_edit = persona_actions.add_parser("edit", help="Rename or rewrite a personality")
    persona_edit.add_argument("tenant", help="Tenant id")
    persona_edit.add_argument("personality_id", help="Personality id")
    persona_edit.add_argument("--name", default=None, help="New display name")
    persona_edit.add_argument("--prompt", default=None, help="New system prompt")
    for action in ("activate", "delete"):
        persona_action = persona_actions.add_parser(action, help=f"{action.capitalize()} a personality")
        persona_action.add_argument("tenant", help="Tenant id")
        persona_action.add_argument("personality_id", help="Personality id")

    admin_parser = subparsers.add_parser("admin", help="Manage the platform admin allow-list")
    admin_actions = admin_parser.add_subparsers(dest="action", required=True)
    for action, help_text in (("grant", "Allow a platform user to use admin tools"),
                              ("check", "Show whether a platform user is an admin")):
        admin_action = admin_actions.add_parser(action, help=help_text)
        admin_action.add_argument("tenant", help="Tenant id")
        admin_action.add_argument("platform", help="Platform name, e.g. discord")
        admin_action.add_argument("external_id", help="User id on that platform")

    settings_parser = subparsers.add_parser("settings", help="Show or change per-tenant settings")
    settings_actions = settings_parser.add_subparsers(dest="action", required=True)
    settings_show = settings_actions.add_parser("show", help="Show tenant settings")
    settings_show.add_argument("tenant", help="Tenant id")
    settings_set = settings_actions.add_parser(
        "set",
        help="Change tenant settings",
        description=(
            "Keys: " + ", ".join(TENANT_SETTING_KEYS) + ". "
            "Give shared_memory_platforms as a comma-separated list; "
            "an empty value clears preferred_model, temperature or max_output_tokens."
        ),
    )
    settings_set.add_argument("tenant", help="Tenant id")
    settings_set.add_argument("updates", nargs="+", metavar="KEY=VALUE", help="e.g. enable_weather=false")

    knowledge_parser = subparsers.add_parser("knowledge", help="Show or edit the knowledge bank")
    knowledge_actions = knowledge_parser.add_subparsers(dest="action", required=True)
    knowledge_actions.add_parser("show", help="Print the knowledge bank")
    for action, help_text in (("set", "Replace the knowledge bank"),
                              ("append", "Append a section to the knowledge bank")):
        knowledge_action = knowledge_actions.add_parser(action, help=help_text)
        knowledge_source = knowledge_action.add_mutually_exclusive_group(required=True)
        knowledge_source.add_argument("text", nargs="?", help="Text to write")
        knowledge_source.add_argument("--file", type=Path, help="Read the text from this file")

    return parser


def parse_setting_updates(pairs: list[str]) -> dict[str, Any]:
    """
    Turn ``key=value`` arguments into a partial tenant settings dict.

    Values stay strings for pydantic to coerce, except the platform list.

    Raises:
        ValueError: If a pair has no ``=`` or names an unknown key
    """
    updates: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        key = key.strip().replace("-", "_")
        if not sep or key not in TENANT_SETTING_KEYS:
            raise ValueError(f"Expected KEY=VALUE with KEY one of: {', '.join(TENANT_SETTING_KEYS)}")
        value = value.strip()
        if key == "shared_memory_platforms":
            updates[key] = [p.strip() for p in value.split(",") if p.strip()]
        else:
            updates[key] = value or None
    return updates


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== Parley Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"Owner: {settings.owner_name}")
    logger.info(f"\nDatabase: {settings.database.url}")
    logger.info(f"Knowledge Bank: {settings.knowledge.path}")
    logger.info(f"\nLLM Provider: {settings.llm.provider}")
    logger.info(f"Fallback Models: {', '.join(settings.llm.fallback_models)}")
    logger.info(f"Temperature: {settings.llm.temperature}")
    logger.info(f"Max Output Tokens: {settings.llm.max_output_tokens}")
    logger.info(f"History Limit: {settings.llm.history_limit}")
    logger.info(f"Timeouts: call {settings.llm.call_timeout}s, turn {settings.llm.turn_timeout}s")
    logger.info(f"\nDownloads Dir: {settings.tools.downloads_dir}")
    logger.info(f"\nDiscord Token: {'Set' if settings.bot.token else 'Not set'}")
    logger.info(f"Discord Tenant: {settings.bot.tenant_id or 'Not set'}")

    return 0


def cmd_run(settings: Settings) -> int:
    """Start the Discord gateway."""
    logger = get_logger(__name__)

    if not settings.bot.token:
        logger.error("Discord bot token not set. Add BOT__TOKEN=<your-token> to your .env file.")
        return 1
    if not settings.bot.tenant_id:
        logger.error("Gateway tenant not set. Add BOT__TENANT_ID=<tenant> to your .env file.")
        return 1

    from parley.gateway.discord_bot import ParleyBot

    bot = ParleyBot(settings)
    logger.info("Starting Parley Discord gateway...")
    # log_handler=None: disable discord.py's default logging setup and use ours
    bot.run(settings.bot.token, log_handler=None)
    return 0


async def cmd_init_db(settings: Settings) -> int:
    logger = get_logger(__name__)
    async with ParleyComponents(settings).create_database() as db:
        await db.create_all()
    logger.info(f"Database ready at {settings.database.url}")
    return 0


async def cmd_add_credential(args, settings: Settings) -> int:
    logger = get_logger(__name__)
    factory = ParleyComponents(settings)

    async with factory.create_database() as db, factory.create_http_client() as client:
        await db.create_all()
        credential = await factory.create_repositories(db).credentials.add(args.tenant, args.secret)
        logger.info(f"Added credential {credential.id} for tenant {args.tenant}")

        if not args.no_discover:
            models = await factory.create_discovery(db, client).refresh(credential)
            if models is None:
                logger.warning("Model discovery failed; the fallback model list will be used")
            else:
                logger.info(f"Discovered {len(models)} models")
    return 0


async def cmd_discover(settings: Settings) -> int:
    factory = ParleyComponents(settings)
    async with factory.create_database() as db, factory.create_http_client() as client:
        await factory.create_discovery(db, client).refresh_all()
    return 0


async def cmd_chat(args, settings: Settings) -> int:
    """
    Run one playground turn and print the reply.

    The playground is the tenant talking to its own assistant: no [NO_REPLY]
    protocol, admin tools available, history keyed by --conversation.
    """
    factory = ParleyComponents(settings)
    request = TurnRequest(
        tenant_id=args.tenant,
        conversation_id=args.conversation,
        prompt=args.prompt,
        metadata=TurnMetadata(platform="playground", model_override=args.model),
    )

    async with factory.create_database() as db, factory.create_http_client() as client:
        await db.create_all()
        engine = factory.create_engine(db, client)
        try:
            result = await engine.run_turn(request)
        except SuppressedReply:
            print("(no reply)")
            _print_recent_log(args.show_log)
            return 0
        except CredentialExhausted as e:
            print(f"\nLLM error: {e}", file=sys.stderr)
            print("Tip: add a key with 'parley add-credential <tenant> <key>'.", file=sys.stderr)
            _print_recent_log(args.show_log, file=sys.stderr)
            return 1

    print(result.text)

    if result.tool_calls:
        print("\n--- Tool Calls ---")
        for tc in result.tool_calls:
            print(f"  {tc.name} → {tc.result[:200]}")

    print(f"\nModel: {result.model} (credential {result.credential_id})")
    print(f"Tokens: {result.usage.total_tokens} "
          f"(prompt {result.usage.prompt_tokens} "
          f"+ completion {result.usage.completion_tokens})")
    _print_recent_log(args.show_log)
    return 0


def _print_recent_log(limit: int, file=None) -> None:
    if limit <= 0:
        return
    print("\n--- Recent Log ---", file=file)
    for line in get_log_buffer().snapshot(limit):
        print(line, file=file)


async def cmd_history(args, settings: Settings) -> int:
    """Print conversation log entries for one conversation or a text search."""
    factory = ParleyComponents(settings)
    async with factory.create_database() as db:
        await db.create_all()
        logs = factory.create_repositories(db).logs
        if args.search:
            entries = await logs.search(args.tenant, args.search, args.limit)
        else:
            entries = await logs.list(args.tenant, args.conversation, args.limit)

    if not entries:
        print("No log entries found.")
        return 0

    for entry in entries:
        who = entry.sender_name or entry.role
        print(f"{entry.created_at:%Y-%m-%d %H:%M:%S}  {entry.conversation_id}  [{who}] {entry.content}")
    return 0


async def cmd_memory(args, settings: Settings) -> int:
    """Add, list or delete memories."""
    logger = get_logger(__name__)
    factory = ParleyComponents(settings)

    async with factory.create_database() as db:
        await db.create_all()
        memories = factory.create_repositories(db).memories
        try:
            if args.action == "add":
                memory = await memories.add(
                    args.tenant, args.content, args.kind,
                    platform=args.platform, external_id=args.external_id,
                )
                logger.info(f"Added {memory.kind} memory {memory.id}")
            elif args.action == "list":
                rows = await memories.list(args.tenant, args.limit)
                if not rows:
                    print("No memories.")
                for row in rows:
                    scope = ""
                    if row.kind == "active_learning":
                        scope = f" {row.platform or 'global'}"
                        if row.external_id:
                            scope += f"/{row.external_id}"
                    print(f"{row.id}  [{row.kind}{scope}]  {row.content}")
            elif args.action == "delete":
                if not await memories.delete(args.tenant, args.memory_id):
                    logger.error(f"Memory {args.memory_id} not found")
                    return 1
                logger.info(f"Deleted memory {args.memory_id}")
        except PersistenceError as e:
            logger.error(str(e))
            return 1
    return 0


async def cmd_personality(args, settings: Settings) -> int:
    """List, create, edit, activate or delete personalities."""
    logger = get_logger(__name__)
    factory = ParleyComponents(settings)

    async with factory.create_database() as db:
        await db.create_all()
        personalities = factory.create_repositories(db).personalities
        try:
            if args.action == "list":
                rows = await personalities.list(args.tenant)
                if not rows:
                    print("No personalities; the default persona is used.")
                for row in rows:
                    marker = "*" if row.is_active else " "
                    print(f"{marker} {row.id}  {row.name}")
            elif args.action == "add":
                row = await personalities.create(args.tenant, args.name, args.prompt, activate=args.activate)
                logger.info(f"Created personality {row.id}" + (" (active)" if args.activate else ""))
            elif args.action == "edit":
                row = await personalities.update(
                    args.tenant, args.personality_id, name=args.name, system_prompt=args.prompt
                )
                if row is None:
                    logger.error(f"Personality {args.personality_id} not found")
                    return 1
                logger.info(f"Updated personality {row.id}")
            elif args.action == "activate":
                if not await personalities.set_active(args.tenant, args.personality_id):
                    logger.error(f"Personality {args.personality_id} not found")
                    return 1
                logger.info(f"Activated personality {args.personality_id}")
            elif args.action == "delete":
                if not await personalities.delete(args.tenant, args.personality_id):
                    logger.error(f"Personality {args.personality_id} not found")
                    return 1
                logger.info(f"Deleted personality {args.personality_id}")
        except PersistenceError as e:
            logger.error(str(e))
            return 1
    return 0


async def cmd_admin(args, settings: Settings) -> int:
    """Grant or check admin rights for a platform user."""
    logger = get_logger(__name__)
    factory = ParleyComponents(settings)

    async with factory.create_database() as db:
        await db.create_all()
        admins = factory.create_repositories(db).admins
        if args.action == "grant":
            try:
                await admins.grant(args.tenant, args.platform, args.external_id)
            except PersistenceError as e:
                logger.error(str(e))
                return 1
            logger.info(f"{args.platform} user {args.external_id} is now an admin of {args.tenant}")
        else:
            is_admin = await admins.is_admin(args.tenant, args.platform, args.external_id)
            print("admin" if is_admin else "not an admin")
    return 0


async def cmd_settings(args, settings: Settings) -> int:
    """Show or update per-tenant tool toggles, model preference and memory sharing."""
    logger = get_logger(__name__)
    factory = ParleyComponents(settings)

    async with factory.create_database() as db:
        await db.create_all()
        store = factory.create_repositories(db).tenant_settings
        current = await store.get(args.tenant)

        if args.action == "set":
            try:
                updates = parse_setting_updates(args.updates)
                current = TenantSettingsInfo.model_validate({**current.model_dump(), **updates})
                await store.save(current)
            except (ValueError, ValidationError, PersistenceError) as e:
                logger.error(f"Settings not saved: {e}")
                return 1
            logger.info(f"Saved settings for {args.tenant}")

    for key in TENANT_SETTING_KEYS:
        value = getattr(current, key)
        if isinstance(value, list):
            value = ", ".join(value) or "(none)"
        elif value is None:
            value = "(default)"
        print(f"{key}: {value}")
    return 0


async def cmd_knowledge(args, settings: Settings) -> int:
    """Show, replace or extend the knowledge bank."""
    logger = get_logger(__name__)
    bank = ParleyComponents(settings).create_knowledge_bank()

    if args.action == "show":
        text = await bank.get()
        print(text if text.strip() else "(knowledge bank is empty)")
        return 0

    text = args.file.read_text(encoding="utf-8") if args.file else args.text
    if args.action == "set":
        await bank.set(text)
    else:
        await bank.append(text)
    logger.info(f"Knowledge bank at {bank.path} updated")
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Load settings
    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Override log level if specified
    if args.log_level:
        settings.log_level = args.log_level

    # Setup logging
    setup_logging(settings)

    # Execute command
    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "run":
        return cmd_run(settings)
    elif args.command == "init-db":
        return asyncio.run(cmd_init_db(settings))
    elif args.command == "add-credential":
        return asyncio.run(cmd_add_credential(args, settings))
    elif args.command == "discover":
        return asyncio.run(cmd_discover(settings))
    elif args.command == "chat":
        return asyncio.run(cmd_chat(args, settings))
    elif args.command == "history":
        return asyncio.run(cmd_history(args, settings))
    elif args.command == "memory":
        return asyncio.run(cmd_memory(args, settings))
    elif args.command == "personality":
        return asyncio.run(cmd_personality(args, settings))
    elif args.command == "admin":
        return asyncio.run(cmd_admin(args, settings))
    elif args.command == "settings":
        return asyncio.run(cmd_settings(args, settings))
    elif args.command == "knowledge":
        return asyncio.run(cmd_knowledge(args, settings))
    else:
        # Default: show help
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
