#!/usr/bin/env python3
"""
Print the community chat feed, then follow it live.

Usage:
    COMMUNITY_EMAIL=you@example.com COMMUNITY_PASSWORD=... python3 scripts/tail_feed.py

Uses the stored session when one exists; otherwise logs in with the
credentials above. Ctrl+C closes the subscription and exits.
"""

import sys
import os
import asyncio
from pathlib import Path
from dotenv import load_dotenv

# Add the parent directory to the sys.path to import app modules
sys.path.append(str(Path(__file__).parent.parent))

from app.core import config
from app.core.exceptions import CommunityError
from app.services.local_storage import LocalStorage
from app.services.message_feed import MessageFeed
from app.services.session_store import SessionStore
from app.services.supabase import create_backend


def print_message(message):
    timestamp = message.created_at.strftime("%H:%M")
    print(f"[{timestamp}] {message.author_name}: {message.content}")


async def tail_feed():
    backend = await create_backend()
    store = SessionStore(backend, LocalStorage(config.SESSION_STORE_PATH), allowlist=config.SIGNUP_ALLOWLIST)

    if await store.restore() is None:
        email = os.getenv("COMMUNITY_EMAIL")
        password = os.getenv("COMMUNITY_PASSWORD")
        if not email or not password:
            print("No stored session; set COMMUNITY_EMAIL and COMMUNITY_PASSWORD")
            return 1
        await store.login(email, password)

    print(f"Logged in as {store.current.email}")

    async with MessageFeed(backend, store) as feed:
        stream = feed.events()
        print(f"\n=== {len(feed.messages)} messages ===")
        for message in feed.messages:
            print_message(message)
        print("\n=== live ===")
        async for message in stream:
            print_message(message)
    return 0


if __name__ == "__main__":
    load_dotenv()
    try:
        sys.exit(asyncio.run(tail_feed()))
    except CommunityError as e:
        print(f"❌ {e.message}")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(0)
