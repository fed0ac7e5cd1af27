"""
Overridable request/response hooks.

``Hooks`` provides a default for every transformation point of the
pipeline. A specialised client subclasses ``Client`` (which inherits from
``Hooks``) and overrides only what it needs::

    class GitHub(Client):
        ENDPOINT = "https://api.github.com"

        def process_request_url(self, request):
            return self.ENDPOINT + request.url

        def process_response_body(self, body):
            return json.loads(body)

Request hooks receive the caller's Request and return the new value for
one field. Response hooks receive one value and return its replacement.

An exception raised by the status, headers, body or chunk hook ends the
exchange with a TransportError whose ``cause`` is that exception, on
synchronous and streamed requests alike.
"""

from typing import Any, Mapping

from .http_primitives import Request, Response, normalize_headers
from .urls import default_process_url


class Hooks:
    """Default, pass-through implementation of every pipeline hook."""

    ## Request processors

    def process_request_params(self, request: Request) -> Any:
        return request.params

    def process_request_url(self, request: Request) -> str:
        return default_process_url(request.url)

    def process_request_headers(self, request: Request) -> Any:
        if isinstance(request.headers, Mapping):
            return normalize_headers(request.headers)
        return request.headers

    def process_request_body(self, request: Request) -> Any:
        return request.body

    def process_request_options(self, request: Request) -> Any:
        return request.options

    ## Response processors

    def process_response_status_code(self, status_code: int) -> Any:
        return status_code

    def process_response_headers(self, headers: Any) -> Any:
        return headers

    def process_response_body(self, body: Any) -> Any:
        return body

    def process_response_chunk(self, chunk: Any) -> Any:
        """Called on each streamed chunk before it reaches the destination."""
        return chunk

    async def process_response(self, response: Response) -> Any:
        """
        Final transform of a synchronous Response.

        The return value is what the caller receives inside its Result. An
        override may return a Result of its own (for example from a
        re-issued ``request()``) or raise an HTTPPipelineError.
        """
        return response
