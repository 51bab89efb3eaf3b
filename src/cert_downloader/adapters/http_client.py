"""
HTTP adapter — the signed httpx.AsyncClient used to fetch certificates.

Adapter layer — wires the WechatPayAuth signer, the response chain and the
optional request/response trace hooks into one AsyncClient.

No retry or backoff: a failed request is reported once and the run ends.
The only timeout is httpx's own, configured from settings.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeAlias

import httpx
import structlog

from cert_downloader import __version__
from cert_downloader.adapters.signing import HEADER_REQUEST_ID, WechatPayAuth, load_private_key
from cert_downloader.config import DownloadOptions

log = structlog.get_logger()

ResponseHook: TypeAlias = Callable[[httpx.Response], Awaitable[object]]


async def _trace_request(request: httpx.Request) -> None:
    headers = {
        name: ("<redacted>" if name.lower() == "authorization" else value)
        for name, value in request.headers.items()
    }
    log.info("http.request", method=request.method, url=str(request.url), headers=headers)


async def _trace_response(response: httpx.Response) -> None:
    log.info(
        "http.response",
        method=response.request.method,
        url=str(response.request.url),
        status_code=response.status_code,
        request_id=response.headers.get(HEADER_REQUEST_ID),
    )


def create_client(
    options: DownloadOptions,
    chain: ResponseHook,
    timeout: float = 60,
    trace: bool = True,
) -> httpx.AsyncClient:
    """
    Build a signed AsyncClient bound to the merchant identity in `options`.

    `chain` is registered as the last response hook so that it runs after the
    trace hook has logged the status line, even when the chain raises.
    """
    auth = WechatPayAuth(
        merchant_id=options.merchant_id,
        serial_no=options.serial_no,
        private_key=load_private_key(options.private_key_pem.get_secret_value()),
    )
    request_hooks: list[Callable[[httpx.Request], Awaitable[object]]] = []
    response_hooks: list[ResponseHook] = []
    if trace:
        request_hooks.append(_trace_request)
        response_hooks.append(_trace_response)
    response_hooks.append(chain)

    return httpx.AsyncClient(
        base_url=options.base_uri,
        auth=auth,
        timeout=timeout,
        headers={
            "Accept": "application/json",
            "User-Agent": f"cert-downloader/{__version__}",
        },
        event_hooks={"request": request_hooks, "response": response_hooks},
    )
