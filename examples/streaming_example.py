"""
Streaming example using http_pipeline.

Shows push delivery into a queue and pull delivery with stream_next().
"""

import asyncio
import logging

from http_pipeline import AsyncChunk, AsyncEnd, AsyncRedirect, Client, TransportError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TERMINAL = (AsyncEnd, AsyncRedirect, TransportError)


async def push_stream(client: Client):
    """Events arrive as fast as the network delivers them."""
    queue = asyncio.Queue()
    await client.get_or_raise("httpbin.org/stream/5", options={"stream_to": queue})

    size = 0
    while True:
        event = await queue.get()
        if isinstance(event, AsyncChunk):
            size += len(event.chunk)
        if isinstance(event, TERMINAL):
            logger.info(f"Push stream finished with {type(event).__name__}, {size} bytes")
            return


async def pull_stream(client: Client):
    """Each event after the first waits for stream_next()."""
    queue = asyncio.Queue()
    handle = await client.get_or_raise(
        "httpbin.org/bytes/1024", options={"stream_to": queue, "async": "once"}
    )

    while True:
        event = await queue.get()
        logger.info(f"Got {type(event).__name__}")
        if isinstance(event, TERMINAL):
            return
        await client.stream_next_or_raise(handle)


async def main():
    async with Client() as client:
        await push_stream(client)
        await pull_stream(client)


if __name__ == "__main__":
    asyncio.run(main())
