"""
Outbound HTTP helper shared by adapters and integrations.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


async def request_json(
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    json: Any = None,
    params: Optional[Dict[str, Any]] = None,
    data: Any = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Tuple[int, Any]:
    """
    Perform a request and return (status, body).

    The body is decoded as JSON when possible, otherwise returned as text.
    Network failures raise aiohttp.ClientError / asyncio.TimeoutError.
    """
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.request(
            method,
            url,
            headers=headers,
            json=json,
            params=params,
            data=data,
        ) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = await response.text()
            if response.status >= 400:
                logger.debug(f"{method} {url} -> {response.status}")
            return response.status, body
