#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "ccd-offline[sqlite]",
# ]
#
# [tool.uv.sources]
# ccd-offline = { path = "../", editable = true }
# ///

import asyncio
import logging

import anysqlite

from ccd_offline import AsyncOfflineClient, AsyncSQLiteStorage, WorkerConfig

ORIGIN = "https://example.com"


async def fetch_and_print(client, url: str, **extensions):
    print(f"\n➡ Sending request to {url}...")
    try:
        response = await client.get(url, extensions=extensions)
    except Exception as exc:
        print(f"💥 Failed: {exc!r}")
        return
    print(f"📦 Status: {response.status_code}")
    print(f"🔄 From Cache: {response.extensions.get('from_cache')}")


async def main():
    logging.basicConfig(level=logging.INFO)
    config = WorkerConfig(cache_name="example-v1", origin=ORIGIN, precache_assets=("/",))
    storage = AsyncSQLiteStorage(connection=await anysqlite.connect(":memory:"))

    async with AsyncOfflineClient(storage=storage, config=config) as client:
        await fetch_and_print(client, f"{ORIGIN}/")
        await fetch_and_print(client, f"{ORIGIN}/favicon.ico", destination="image")
        await fetch_and_print(client, f"{ORIGIN}/favicon.ico", destination="image")
        await fetch_and_print(client, "https://demo.supabase.co/rest/v1/lessons")


if __name__ == "__main__":
    asyncio.run(main())
