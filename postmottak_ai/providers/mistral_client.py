"""Mistral AI Provider 适配器。

接口风格与 OpenAI 类似，使用 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

Mistral 不使用 response_format/json_schema，JSON 输出完全依赖系统指令约束。
"""

from typing import Any, Dict, Iterable, Optional

import httpx

from postmottak_ai.domain.exceptions import ConfigurationError, NetworkError
from postmottak_ai.domain.models import (
    ChatChoice,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    MistralUsage,
)
from postmottak_ai.providers import _chat_completions as cc
from postmottak_ai.providers.registry import MISTRAL_CONFIG, AiProvider


class MistralClient:
    """Mistral AI 客户端实现。"""

    name = AiProvider.MISTRAL.value

    def __init__(self, settings):
        self._settings = settings

    # ---- 非流式 ----

    def chat(self, req: ChatRequest, timeout: Optional[float] = None) -> ChatResult:
        headers = self._headers()
        payload = self._build_payload(req, stream=False)
        try:
            with httpx.Client(timeout=self._timeout(timeout), trust_env=False) as client:
                resp = client.post(f"{self._base_url()}/chat/completions", json=payload, headers=headers)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        cc.raise_for_status(resp, "Mistral")
        return self._parse_response(resp.json(), req)

    # ---- 流式 ----

    def chat_stream(self, req: ChatRequest, timeout: Optional[float] = None) -> Iterable[ChatStreamChunk]:
        headers = self._headers()
        payload = self._build_payload(req, stream=True)
        try:
            with httpx.Client(timeout=self._timeout(timeout), trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers=headers,
                ) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                    cc.raise_for_status(resp, "Mistral")
                    for data in cc.iter_sse_payloads(resp.iter_lines()):
                        yield self._parse_stream_chunk(data, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 辅助方法 ----

    def _timeout(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self._settings.http_timeout

    def _base_url(self) -> str:
        base = getattr(self._settings, "mistral_base_url", None) or MISTRAL_CONFIG.base_url
        return base.rstrip("/")

    def _headers(self) -> Dict[str, str]:
        api_key = getattr(self._settings, "mistral_api_key", None)
        if not api_key:
            raise ConfigurationError("MISTRAL_API_KEY", "Mistral")
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, req: ChatRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": req.model,
            "messages": [cc.message_to_payload(m) for m in req.messages],
            "stream": stream,
        }
        if req.max_tokens is not None:
            payload["max_tokens"] = req.max_tokens
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if req.top_p is not None:
            payload["top_p"] = req.top_p
        if req.tools:
            payload["tools"] = [cc.serialize_tool(tool) for tool in req.tools]
            payload["tool_choice"] = req.tool_choice
        return payload

    @staticmethod
    def _parse_usage(data: Dict[str, Any]) -> Optional[MistralUsage]:
        usage_raw = data.get("usage") or {}
        if not usage_raw:
            return None
        return MistralUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )

    def _parse_response(self, data: Dict[str, Any], req: ChatRequest) -> ChatResult:
        usage = self._parse_usage(data)
        choices: list[ChatChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            msg = cc.build_chat_message(ch.get("message") or {})
            msg.meta["usage"] = usage
            msg.meta["finish_reason"] = ch.get("finish_reason")
            choices.append(ChatChoice(index=ch.get("index", i), message=msg, finish_reason=ch.get("finish_reason")))
        return ChatResult(provider=self.name, model=data.get("model") or req.model, choices=choices, usage=usage, raw=data)

    def _parse_stream_chunk(self, data: Dict[str, Any], req: ChatRequest) -> ChatStreamChunk:
        choices: list[ChatStreamChoice] = []
        for i, ch in enumerate(data.get("choices", [])):
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    delta=cc.build_chat_message(ch.get("delta") or {}),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        return ChatStreamChunk(
            provider=self.name,
            model=data.get("model") or req.model,
            choices=choices,
            usage=self._parse_usage(data),
            raw=data,
        )
