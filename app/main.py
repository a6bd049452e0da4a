from __future__ import annotations

import argparse
import json
from typing import Any, Callable

from app.config import load_config
from conversation.conversation_service import ConversationService
from conversation.flow_engine import FlowEngine
from core.enums import InputKind, RecordKind
from core.models import InboundEvent
from storage.repository_factory import (
    create_application_recorder,
    create_repository,
    create_session_store,
)
from storage.session_store import RepositorySessionStore
from whatsapp.send_client import ConsoleTransport
from whatsapp.sequencer import MessageSequencer

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_CHAT_IDENTITY = "cli-user"

CHAT_HELP = "Commands: /button <id>, /list <id>, /reset, /exit. Anything else is sent as text."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Innova WhatsApp admissions bot")
    subparsers = parser.add_subparsers(dest="command", required=True)

    chat_parser = subparsers.add_parser("chat", help="Talk to the bot in the terminal")
    chat_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")
    chat_parser.add_argument("--identity", default=DEFAULT_CHAT_IDENTITY)
    chat_parser.add_argument("--delay-ms", type=int, default=0, help="Pause between message parts")

    list_parser = subparsers.add_parser("list-applications", help="Print stored applications, newest first")
    list_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")
    list_parser.add_argument("--kind", default=None, choices=[kind.value for kind in RecordKind])

    sweep_parser = subparsers.add_parser("sweep-sessions", help="Delete sessions past the inactivity window")
    sweep_parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml or config.json")

    return parser


def build_console_service(config: dict[str, Any], delay_ms: int = 0, writer: Callable[[str], None] = print) -> ConversationService:
    repository = create_repository(config)
    return ConversationService(
        engine=FlowEngine.from_config(config),
        sessions=create_session_store(config, repository),
        recorder=create_application_recorder(config, repository),
        sequencer=MessageSequencer(ConsoleTransport(writer), delay_ms=delay_ms),
        append_main_menu_button=bool(config.get("whatsapp", {}).get("append_main_menu_button", True)),
    )


def parse_chat_line(identity: str, line: str, correlation_id: str | None = None) -> InboundEvent | None:
    text = line.strip()
    if text.startswith("/button "):
        return InboundEvent(identity, InputKind.BUTTON_REPLY, text[len("/button "):].strip(), correlation_id)
    if text.startswith("/list "):
        return InboundEvent(identity, InputKind.LIST_REPLY, text[len("/list "):].strip(), correlation_id)
    if not text:
        return None
    return InboundEvent(identity, InputKind.TEXT, line, correlation_id)


def run_chat(
    service: ConversationService,
    identity: str,
    read_line: Callable[[str], str] = input,
    writer: Callable[[str], None] = print,
) -> int:
    writer(CHAT_HELP)
    counter = 1
    service.handle(InboundEvent(identity, InputKind.TEXT, "menu", f"cli-{counter}"))
    while True:
        try:
            line = read_line("you> ")
        except (EOFError, KeyboardInterrupt):
            writer("")
            return 0
        command = line.strip().lower()
        if command in {"/exit", "/quit"}:
            return 0
        if command == "/reset":
            service.reset(identity)
            writer("session-reset")
            continue
        counter += 1
        event = parse_chat_line(identity, line, f"cli-{counter}")
        if event is not None:
            service.handle(event)


def cmd_chat(args: argparse.Namespace, config: dict[str, Any]) -> int:
    service = build_console_service(config, delay_ms=args.delay_ms)
    return run_chat(service, args.identity)


def cmd_list_applications(args: argparse.Namespace, config: dict[str, Any]) -> int:
    repository = create_repository(config)
    kind = RecordKind(args.kind) if args.kind else None
    for record in repository.list_applications(kind):
        print(json.dumps(record.to_dict(), ensure_ascii=False))
    return 0


def cmd_sweep_sessions(args: argparse.Namespace, config: dict[str, Any]) -> int:
    # only persisted sessions are reachable from outside the server process
    repository = create_repository(config)
    ttl = int(config.get("conversation", {}).get("session_ttl_minutes", 60))
    removed = RepositorySessionStore(repository, session_ttl_minutes=ttl).sweep()
    print(f"sessions-swept: {removed}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)

    if args.command == "chat":
        return cmd_chat(args, config)
    if args.command == "list-applications":
        return cmd_list_applications(args, config)
    if args.command == "sweep-sessions":
        return cmd_sweep_sessions(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
