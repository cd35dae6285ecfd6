"""Command-line front end for chatting about a document from a terminal."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Sequence, TextIO

from ..ai.tokens import estimate_tokens
from ..chat.errors import ChatError
from ..chat.message_model import ChatSession
from ..chat.orchestrator import ChatOrchestrator
from ..services.settings import Settings, SettingsStore
from ..utils.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Chat with an AI model about a document.")
    parser.add_argument("--settings", type=Path, help="Path to settings.json (defaults to ~/.aztec/settings.json).")
    parser.add_argument("--config-dir", help="Directory holding the chat session registry.")
    parser.add_argument("--model", help="Override the chat model for this invocation.")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    list_cmd = sub.add_parser("list", help="List chat sessions for a document.")
    list_cmd.add_argument("document")

    new_cmd = sub.add_parser("new", help="Start a new chat session.")
    new_cmd.add_argument("document")
    new_cmd.add_argument("--name")
    _add_context_args(new_cmd)

    send_cmd = sub.add_parser("send", help="Send a message and print the reply.")
    send_cmd.add_argument("document")
    send_cmd.add_argument("text")
    send_cmd.add_argument("--session", help="Session id; defaults to the most recent session.")
    _add_context_args(send_cmd)

    show_cmd = sub.add_parser("show", help="Print a session transcript.")
    show_cmd.add_argument("document")
    show_cmd.add_argument("session")

    rename_cmd = sub.add_parser("rename", help="Rename a session.")
    rename_cmd.add_argument("document")
    rename_cmd.add_argument("session")
    rename_cmd.add_argument("name")

    delete_cmd = sub.add_parser("delete", help="Delete a session (the last one is kept).")
    delete_cmd.add_argument("document")
    delete_cmd.add_argument("session")

    tokens_cmd = sub.add_parser("tokens", help="Estimate the token count of some text.")
    tokens_cmd.add_argument("--text")
    tokens_cmd.add_argument("--file", type=Path)
    return parser


def _add_context_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--context", default="", help="Seed context captured when a session starts.")
    group.add_argument("--context-file", type=Path, help="Read the seed context from a file.")


def main(
    argv: Sequence[str] | None = None,
    *,
    orchestrator: ChatOrchestrator | None = None,
    stdout: TextIO | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    out = stdout or sys.stdout

    if args.command == "tokens":
        return _print_tokens(args, out)

    if orchestrator is None:
        settings = _load_settings(args)
        configure_logging(args.debug or settings.debug_logging, console=args.debug, config_dir=settings.config_dir)
        orchestrator = ChatOrchestrator.from_settings(settings)

    try:
        return _dispatch(args, orchestrator, out)
    except ChatError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2


def _dispatch(args: argparse.Namespace, orchestrator: ChatOrchestrator, out: TextIO) -> int:
    command = args.command
    if command == "list":
        sessions = orchestrator.list_sessions(args.document)
        if not sessions:
            print("No sessions.", file=out)
        for session in sessions:
            print(_session_line(session), file=out)
        return 0
    if command == "new":
        session = orchestrator.create_session(args.document, _seed_context(args), args.name)
        print(_session_line(session), file=out)
        return 0
    if command == "send":
        if args.session:
            session_id = args.session
        else:
            session_id = orchestrator.get_or_create_session(args.document, _seed_context(args)).id
        reply = asyncio.run(orchestrator.send_message(args.document, session_id, args.text))
        print(reply, file=out)
        return 0
    if command == "show":
        session = orchestrator.store.get(args.document, args.session)
        if session is None:
            print(f"Unknown session {args.session}", file=sys.stderr)
            return 1
        for message in session.messages:
            print(f"{message.role.upper()}: {message.content}\n", file=out)
        return 0
    if command == "rename":
        return 0 if orchestrator.rename_session(args.document, args.session, args.name) else 1
    if command == "delete":
        if orchestrator.delete_session(args.document, args.session):
            return 0
        print("Session not deleted (unknown, or the document's only session).", file=sys.stderr)
        return 1
    raise ValueError(f"Unhandled command {command}")  # pragma: no cover - argparse enforces choices


def _load_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {"config_dir": args.config_dir, "chat_model": args.model}
    return SettingsStore(args.settings).load(overrides=overrides)


def _seed_context(args: argparse.Namespace) -> str:
    if getattr(args, "context_file", None):
        return args.context_file.read_text(encoding="utf-8")
    return getattr(args, "context", "") or ""


def _session_line(session: ChatSession) -> str:
    return (
        f"{session.id}\t{session.name}\t{len(session.messages)} message(s)\t"
        f"updated {session.updated_at:%Y-%m-%d %H:%M:%S}"
    )


def _print_tokens(args: argparse.Namespace, out: TextIO) -> int:
    if args.text:
        payload = args.text
    elif args.file:
        payload = args.file.read_text(encoding="utf-8")
    else:
        payload = sys.stdin.read().strip()
    if not payload:
        print("No input text provided.", file=sys.stderr)
        return 1
    print(f"characters: {len(payload)}", file=out)
    print(f"tokens (estimate): {estimate_tokens(payload)}", file=out)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
