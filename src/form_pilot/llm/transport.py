"""HTTP helpers shared by the provider clients."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import ProviderError

LOGGER = logging.getLogger(__name__)


def post_json(client: httpx.Client, url: str, payload: dict[str, Any]) -> dict[str, Any]:
    """POST *payload* and decode the JSON body, mapping transport failures to ProviderError."""

    try:
        response = client.post(url, json=payload)
        response.raise_for_status()
        data = response.json()
    except httpx.TimeoutException as exc:
        raise ProviderError(f"LLM request timed out: {exc}") from exc
    except httpx.HTTPStatusError as exc:
        LOGGER.warning("LLM provider returned %s: %s", exc.response.status_code, exc.response.text)
        raise ProviderError(f"LLM provider returned HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise ProviderError(f"LLM request failed: {exc}") from exc
    except ValueError as exc:
        raise ProviderError("LLM provider returned a non-JSON body") from exc
    if not isinstance(data, dict):
        raise ProviderError(f"Unexpected response format: {data}")
    return data
