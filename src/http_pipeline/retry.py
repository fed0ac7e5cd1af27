"""
Bounded, response-driven retry.

RetryingClient is a Client whose hooks count attempts in the request
options and re-issue the request when the response status asks for it.
"""

import logging
from typing import Any, Iterable, Optional

from .client import Client
from .dispatcher import EnvLookup
from .exceptions import RetryExhausted
from .http_primitives import Request, Response
from .transport.base import Transport

logger = logging.getLogger(__name__)


class RetryingClient(Client):
    """
    Client that retries on selected status codes.

    The attempt number travels in the ``try_count`` request option and the
    bound in ``max_tries`` (per request, falling back to the client's
    default). Once ``try_count`` reaches ``max_tries`` the result is a
    RetryExhausted error.

    A retry runs the whole pipeline again on the dispatched request, so
    ``process_request_url`` overrides must leave an already processed url
    unchanged.
    """

    DEFAULT_MAX_TRIES = 3
    DEFAULT_RETRY_STATUSES = (429,)

    def __init__(
        self,
        transport: Optional[Transport] = None,
        env_lookup: Optional[EnvLookup] = None,
        max_tries: Optional[int] = None,
        retry_statuses: Optional[Iterable[int]] = None,
    ) -> None:
        super().__init__(transport, env_lookup)
        self._max_tries = max_tries or self.DEFAULT_MAX_TRIES
        self._retry_statuses = frozenset(retry_statuses or self.DEFAULT_RETRY_STATUSES)

    def process_request_options(self, request: Request) -> Any:
        options = dict(request.options)
        options["try_count"] = options.get("try_count", 0) + 1
        return options

    def should_retry(self, response: Response) -> bool:
        return response.status_code in self._retry_statuses

    async def process_response(self, response: Response) -> Any:
        if not self.should_retry(response):
            return response

        request = response.request
        tries = request.options.get("try_count", 1)
        max_tries = request.options.get("max_tries") or self._max_tries

        if tries >= max_tries:
            raise RetryExhausted(tries, max_tries)

        logger.info(
            f"Retrying {request.method.value} {request.url} after status "
            f"{response.status_code} (attempt {tries} of {max_tries})"
        )
        # The dispatched url already carries the query string.
        return await self.request(request.with_params({}))
