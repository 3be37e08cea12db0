"""Entrypoint: python -m inbox_pipeline tail <conversation_id>"""
from __future__ import annotations

import argparse
import asyncio
import logging

from inbox_pipeline.app import create_pipeline
from inbox_pipeline.config import settings
from inbox_pipeline.services.conversation_store import ConversationView
from inbox_pipeline.services.renderer import classify

logger = logging.getLogger("inbox_pipeline")


async def tail(conversation_id: int) -> None:
    async with create_pipeline(settings) as pipeline:
        seen: set[str] = set()

        def on_change(view: ConversationView) -> None:
            for message in view.messages:
                if message.id in seen:
                    continue
                seen.add(message.id)
                variant = classify(message)
                who = "contact" if message.is_from_contact else "agent"
                logger.info("[%s] %s %s: %s", message.timestamp, who, variant.kind, variant.text or "")

        pipeline.store.subscribe(conversation_id, on_change)
        opened = await pipeline.open_conversation(conversation_id)
        if not opened.ok:
            logger.error("Cannot open conversation %s: %s", conversation_id, opened.error.user_message)  # type: ignore[union-attr]
            return
        await asyncio.Event().wait()


def main() -> None:
    parser = argparse.ArgumentParser(prog="inbox_pipeline")
    commands = parser.add_subparsers(dest="command", required=True)
    tail_cmd = commands.add_parser("tail", help="follow one conversation and log its messages")
    tail_cmd.add_argument("conversation_id", type=int)
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(tail(args.conversation_id))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
