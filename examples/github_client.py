"""
API client example using http_pipeline hooks.

This example derives a small GitHub client from Client: the url hook
prefixes the API endpoint, the headers hook adds the Accept header, and
the body hook decodes JSON.
"""

import asyncio
import json
import logging

from http_pipeline import Client, RetryingClient

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class GitHub(RetryingClient):
    """GitHub REST API client, retrying rate-limited requests."""

    ENDPOINT = "https://api.github.com"

    def process_request_url(self, request):
        if request.url.startswith(self.ENDPOINT):
            return request.url
        return self.ENDPOINT + request.url

    def process_request_headers(self, request):
        return [("Accept", "application/vnd.github+json"), ("User-Agent", "http_pipeline")] + list(
            request.headers
        )

    def process_response_body(self, body):
        return json.loads(body) if body else None


async def show_repository():
    """Fetch one repository and print a few fields."""
    async with GitHub() as github:
        result = await github.get("/repos/python/cpython", options={"timeout": 5000})
        if not result.ok:
            logger.error(f"Request failed: {result.error}")
            return

        repo = result.value.body
        logger.info(f"{repo['full_name']}: {repo['stargazers_count']} stars")


async def plain_request():
    """A Client without overrides behaves like a plain HTTP client."""
    async with Client() as client:
        response = await client.get_or_raise("httpbin.org/get", params={"foo": "bar"})
        logger.info(f"Status {response.status_code}, {len(response.body)} bytes")


async def main():
    await show_repository()
    await plain_request()


if __name__ == "__main__":
    asyncio.run(main())
