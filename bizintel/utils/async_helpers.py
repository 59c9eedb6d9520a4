"""
Helpers for calling the async pipeline from synchronous code.
"""

import asyncio
import concurrent.futures


def run_sync(coro):
    """
    Run a coroutine to completion from sync code.

    `asyncio.run()` fails inside a running loop (notebooks, async web
    handlers calling sync helpers), so in that case the coroutine runs on a
    fresh loop in a worker thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()
