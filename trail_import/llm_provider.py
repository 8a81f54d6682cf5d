from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import httpx

from trail_import.config import ANTHROPIC_VERSION, DEFAULT_AI_ENDPOINT

PROVIDER_NAME = "Anthropic"
DNS_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "name resolution", "no address")


@dataclass(frozen=True)
class LlmJsonResult:
    status: str
    raw_response: str | None
    warnings: list[str]
    error_kind: str | None = None
    stop_reason: str | None = None
    model: str | None = None
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        return self.stop_reason == "max_tokens"


def _collect_anthropic_text(response_payload: dict[str, Any]) -> str | None:
    content = response_payload.get("content") or []
    extracted: list[str] = []
    for part in content:
        if not isinstance(part, dict) or part.get("type", "text") != "text":
            continue
        text = part.get("text")
        if isinstance(text, str) and text.strip():
            extracted.append(text)

    if extracted:
        return "".join(extracted).strip()
    return None


async def _post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout_seconds: float,
) -> dict[str, Any]:
    async with httpx.AsyncClient(timeout=None) as client:
        response = await asyncio.wait_for(client.post(url, json=payload, headers=headers), timeout=timeout_seconds)
    response.raise_for_status()
    return response.json()


def _http_error_warning(provider_name: str, exc: httpx.HTTPStatusError) -> str:
    response_excerpt = ""
    try:
        response_body = exc.response.text.strip()
    except Exception:
        response_body = ""

    if response_body:
        try:
            parsed = json.loads(response_body)
            if isinstance(parsed, dict):
                error_payload = parsed.get("error")
                if isinstance(error_payload, dict):
                    message = error_payload.get("message")
                    if isinstance(message, str) and message.strip():
                        response_excerpt = message.strip()
        except json.JSONDecodeError:
            response_excerpt = response_body[:200]

    if response_excerpt:
        return f"{provider_name} request failed with HTTP {exc.response.status_code}: {response_excerpt}"

    return f"{provider_name} request failed with HTTP {exc.response.status_code}."


def _transport_error(provider_name: str, exc: Exception, timeout_seconds: float) -> tuple[str, str]:
    """Map a transport exception to (error_kind, human readable warning)."""

    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return "timeout", f"{provider_name} did not respond within {timeout_seconds:.0f} seconds."

    message = str(exc).lower()
    if isinstance(exc, httpx.ConnectError):
        if any(marker in message for marker in DNS_MARKERS):
            return "dns", f"Could not resolve the {provider_name} API host (DNS failure)."
        if "refused" in message:
            return "connection_refused", f"Connection to the {provider_name} API was refused."
        return "network", f"Could not connect to the {provider_name} API."
    if isinstance(exc, httpx.HTTPError):
        return "network", f"{provider_name} request failed: network error."
    return "network", f"{provider_name} request failed before receiving a response."


async def generate_text_with_anthropic(
    api_key: str,
    model: str,
    system_prompt: str | None,
    user_prompt: str,
    max_output_tokens: int = 400,
    *,
    endpoint: str = DEFAULT_AI_ENDPOINT,
    timeout_seconds: float = 60.0,
) -> LlmJsonResult:
    payload: dict[str, Any] = {
        "model": model,
        "max_tokens": max_output_tokens,
        "messages": [{"role": "user", "content": user_prompt}],
    }
    if system_prompt:
        payload["system"] = system_prompt

    try:
        response_payload = await _post_json(
            endpoint,
            payload,
            {
                "Content-Type": "application/json",
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            timeout_seconds,
        )
    except httpx.HTTPStatusError as exc:
        return LlmJsonResult(
            status="error",
            raw_response=None,
            warnings=[_http_error_warning(PROVIDER_NAME, exc)],
            error_kind="http",
        )
    except Exception as exc:
        error_kind, warning = _transport_error(PROVIDER_NAME, exc, timeout_seconds)
        return LlmJsonResult(status="error", raw_response=None, warnings=[warning], error_kind=error_kind)

    if not isinstance(response_payload, dict):
        return LlmJsonResult(
            status="error",
            raw_response=json.dumps(response_payload),
            warnings=[f"{PROVIDER_NAME} response was not a JSON object."],
            error_kind="empty",
        )

    stop_reason = response_payload.get("stop_reason")
    usage = response_payload.get("usage") if isinstance(response_payload.get("usage"), dict) else {}
    extracted_text = _collect_anthropic_text(response_payload)
    if extracted_text:
        return LlmJsonResult(
            status="success",
            raw_response=extracted_text,
            warnings=[],
            stop_reason=stop_reason,
            model=response_payload.get("model") or model,
            usage=usage,
        )

    return LlmJsonResult(
        status="error",
        raw_response=json.dumps(response_payload),
        warnings=[f"{PROVIDER_NAME} response did not contain text content."],
        error_kind="empty",
        stop_reason=stop_reason,
        model=response_payload.get("model") or model,
    )
