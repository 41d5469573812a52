"""Summary: Command-line interface for ChatShare.

Importance: Provides a local entry point for user setup, chatting, and sharing.
Alternatives: Build a web UI or desktop client first.
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime

import uvicorn

from chatshare.api import create_app
from chatshare.app import AppServices, build_services
from chatshare.config import AppConfig
from chatshare.errors import ChatShareError, NotFoundError


def build_parser() -> argparse.ArgumentParser:
    """Summary: Build the CLI argument parser.

    Importance: Defines supported commands for local operation.
    Alternatives: Use a CLI framework like Typer or Click.
    """

    parser = argparse.ArgumentParser(description="ChatShare CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    create_user = subparsers.add_parser("create-user", help="Register a user")
    create_user.add_argument("email", type=str)
    create_user.add_argument("--name", type=str, default="")

    subparsers.add_parser("list-users", help="List registered users")

    create_key = subparsers.add_parser("create-api-key", help="Issue an API key for a user")
    create_key.add_argument("email", type=str)
    create_key.add_argument("--label", type=str, default=None)

    list_keys = subparsers.add_parser("list-api-keys", help="List API keys for a user")
    list_keys.add_argument("email", type=str)

    revoke_key = subparsers.add_parser("revoke-api-key", help="Revoke an API key")
    revoke_key.add_argument("email", type=str)
    revoke_key.add_argument("key_id", type=int)

    new_chat = subparsers.add_parser("new-chat", help="Start an empty conversation")
    new_chat.add_argument("--email", type=str, required=True)

    list_chats = subparsers.add_parser("list-chats", help="List conversations")
    list_chats.add_argument("--email", type=str, required=True)

    show_chat = subparsers.add_parser("show-chat", help="Print a conversation transcript")
    show_chat.add_argument("conversation_id", type=str)
    show_chat.add_argument("--email", type=str, required=True)

    send = subparsers.add_parser("send", help="Send a message and print the reply")
    send.add_argument("content", type=str)
    send.add_argument("--email", type=str, required=True)
    send.add_argument("--chat", dest="conversation_id", type=str, default=None)

    share = subparsers.add_parser("share", help="Share an assistant message")
    share.add_argument("conversation_id", type=str)
    share.add_argument("message_id", type=str)
    share.add_argument("recipient_email", type=str)
    share.add_argument("--email", type=str, required=True)

    inbox = subparsers.add_parser("inbox", help="List messages shared with you")
    inbox.add_argument("--email", type=str, required=True)

    subparsers.add_parser("serve", help="Run the HTTP API")

    return parser


def _resolve_user_id(services: AppServices, email: str) -> str:
    user = services.users.get_user_by_email(email)
    if user is None:
        raise NotFoundError("User not found")
    return user.id


def _format_time(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def run_cli() -> None:
    """Summary: Execute CLI commands based on arguments.

    Importance: Drives the chat experience without a UI.
    Alternatives: Invoke services via an HTTP API.
    """

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    parser = build_parser()
    args = parser.parse_args()
    config = AppConfig.from_env()

    if args.command == "serve":
        uvicorn.run(create_app(config), host=config.api_host, port=config.api_port)
        return

    services = build_services(config)
    try:
        _dispatch(args, services)
    except ChatShareError as exc:
        parser.exit(1, f"error: {exc}\n")


def _dispatch(args: argparse.Namespace, services: AppServices) -> None:
    if args.command == "create-user":
        user_id = services.users.create_user(args.name, args.email)
        print(f"User {user_id} ({args.email}).")
        return

    if args.command == "list-users":
        for user in services.users.list_users():
            print(f"{user.id}: {user.display_name} <{user.email}>")
        return

    if args.command == "create-api-key":
        user_id = _resolve_user_id(services, args.email)
        key_id, token = services.api_keys.create_api_key(user_id, label=args.label)
        print(f"Key {key_id}: {token}")
        return

    if args.command == "list-api-keys":
        user_id = _resolve_user_id(services, args.email)
        for key in services.api_keys.list_api_keys(user_id):
            print(f"{key.id}: {key.label or ''} ({key.created_at})")
        return

    if args.command == "revoke-api-key":
        user_id = _resolve_user_id(services, args.email)
        if services.api_keys.revoke_api_key(user_id, args.key_id):
            print(f"Revoked key {args.key_id}.")
        else:
            print(f"No key {args.key_id} for {args.email}.")
        return

    user_id = _resolve_user_id(services, args.email)

    if args.command == "new-chat":
        print(services.conversations.create(user_id))
        return

    if args.command == "list-chats":
        for conversation in services.conversations.list_by_owner(user_id):
            print(
                f"{conversation.id}: {conversation.title} "
                f"({len(conversation.messages)} messages, {_format_time(conversation.updated_at)})"
            )
        return

    if args.command == "show-chat":
        conversation = services.conversations.fetch(args.conversation_id, owner_id=user_id)
        print(conversation.title)
        for message in conversation.messages:
            print(f"[{message.id}] {message.role}: {message.content}")
        return

    if args.command == "send":
        result = services.chat.submit_turn(args.conversation_id, user_id, args.content)
        print(f"[{result.conversation_id}] {result.title}")
        print(f"[{result.assistant_message.id}] {result.assistant_message.content}")
        return

    if args.command == "share":
        record_id = services.sharing.share_message(
            user_id, args.conversation_id, args.message_id, args.recipient_email
        )
        print(f"Shared {record_id} with {args.recipient_email}.")
        return

    if args.command == "inbox":
        records = services.sharing.list_inbox(user_id)
        if not records:
            print("Inbox is empty.")
            return
        for record in records:
            print(f"{_format_time(record.timestamp)} from {record.sender_email}: {record.content}")
        return


if __name__ == "__main__":
    run_cli()
