"""
Command-line chat: streams one reply to stdout as it arrives.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from src.chat_client import (
    ChatAPIClient,
    ChatClientError,
    ChatStreamClient,
    FileCredentialStore,
    InMemoryCredentialStore,
    StreamRequest,
    StreamState,
)
from src.chat_client.credentials import CredentialProvider
from src.chat_client.logging_utils import operation_context
from src.chat_client.models import UserLogin
from src.config import Configuration


def build_credentials(config: Configuration) -> CredentialProvider:
    """CHAT_API_TOKEN stays in memory; otherwise use the configured token file."""
    if config.api_token:
        return InMemoryCredentialStore(config.api_token)
    token_file = config.get_credentials_config()["token_file"]
    if token_file:
        return FileCredentialStore(token_file)
    return InMemoryCredentialStore()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream a chat reply")
    parser.add_argument("message", help="Message to send")
    parser.add_argument(
        "--public", action="store_true",
        help="Use the public stream endpoint (no login required)",
    )
    parser.add_argument("--conversation-id", type=int, default=None)
    parser.add_argument("--rag", action="store_true", help="Answer from documents")
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument("--max-tokens", type=int, default=None)
    parser.add_argument("--username", help="Log in before streaming")
    parser.add_argument("--password", help="Password for --username")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    config = Configuration(args.config)
    logging.basicConfig(
        level=config.get_logging_config()["level"],
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    settings = config.get_client_settings()
    credentials = build_credentials(config)

    if args.username:
        async with ChatAPIClient(settings, credentials) as api:
            await api.login(UserLogin(username=args.username, password=args.password or ""))

    request = StreamRequest(
        message=args.message,
        conversation_id=args.conversation_id,
        use_rag=args.rag or None,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )

    async with ChatStreamClient(settings, credentials) as client:
        async with operation_context(
            "chat_stream", context={"public": args.public}
        ) as log:
            handle = client.start_stream(
                request,
                on_token=lambda text: print(text, end="", flush=True),
                on_complete=lambda conversation_id: print(
                    f"\n[conversation {conversation_id}]" if conversation_id else ""
                ),
                authenticated=not args.public,
            )

            loop = asyncio.get_running_loop()
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(signal.SIGINT, handle.cancel)

            result = await handle.wait()
            if result.error is not None:
                # Reported by main(); raising marks the operation as failed
                raise result.error
            if result.state == StreamState.CANCELLED:
                log.warning("Stream cancelled by user")

    if result.state == StreamState.CANCELLED:
        print("\n[cancelled]", file=sys.stderr)
        return 130
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except ChatClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
