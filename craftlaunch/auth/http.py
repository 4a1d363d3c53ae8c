import json
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from ..errors import AuthenticationError

log = logging.getLogger(__name__)


async def request_json(session: aiohttp.ClientSession, method: str, url: str, *,
                       json_body: Optional[Dict[str, Any]] = None,
                       form: Optional[Dict[str, str]] = None,
                       headers: Optional[Dict[str, str]] = None) -> Tuple[int, Dict[str, Any]]:
    """
    Sends a request and decodes its JSON body, whatever the status.
    An empty body decodes to an empty dict.
    """
    request_headers = {'Accept': 'application/json'}
    request_headers.update(headers or {})
    try:
        async with session.request(method, url, json=json_body, data=form, headers=request_headers) as response:
            text = await response.text()
            status = response.status
    except aiohttp.ClientError as e:
        raise AuthenticationError('NetworkError', f"Request to {url} failed: {e}", e) from e

    if not text.strip():
        return status, {}
    try:
        body = json.loads(text)
    except json.JSONDecodeError as e:
        raise AuthenticationError('InvalidResponse', f"Invalid JSON received from {url} (HTTP {status})", e) from e
    if not isinstance(body, dict):
        raise AuthenticationError('InvalidResponse', f"Unexpected response from {url} (HTTP {status})")
    return status, body
