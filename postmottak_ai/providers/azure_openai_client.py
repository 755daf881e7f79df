"""Azure OpenAI Provider 适配器。

- URL: {endpoint}/openai/deployments/{deployment}/chat/completions?api-version=...
- 认证: api-key: <api_key>

本模块负责：

1. 接收统一的 ChatRequest，转换为 Azure OpenAI 请求 JSON
   （max_completion_tokens、store、response_format、tools/tool_choice）。
2. 调用 HTTP 接口并把网络/API 异常包装为业务异常。
3. 将响应解析为 ChatResult，usage 解析为 AzureOpenAIUsage。
"""

from typing import Any, Dict, Iterable, Optional

import httpx

from postmottak_ai.domain.exceptions import ConfigurationError, NetworkError
from postmottak_ai.domain.models import (
    AzureOpenAIUsage,
    ChatChoice,
    ChatRequest,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
)
from postmottak_ai.providers import _chat_completions as cc
from postmottak_ai.providers.registry import AiProvider


class AzureOpenAIClient:
    """Azure OpenAI 客户端实现。"""

    name = AiProvider.AZURE_OPENAI.value

    def __init__(self, settings):
        self._settings = settings

    def chat(self, req: ChatRequest, timeout: Optional[float] = None) -> ChatResult:
        """执行一次非流式对话调用。"""

        url, headers = self._target(req)
        payload = self._build_payload(req, stream=False)
        try:
            with httpx.Client(timeout=self._timeout(timeout), trust_env=False) as client:
                resp = client.post(
                    url,
                    params={"api-version": self._settings.azure_openai_api_version},
                    json=payload,
                    headers=headers,
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        cc.raise_for_status(resp, "Azure OpenAI")
        return self._parse_response(resp.json(), req)

    def chat_stream(self, req: ChatRequest, timeout: Optional[float] = None) -> Iterable[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。"""

        url, headers = self._target(req)
        payload = self._build_payload(req, stream=True)
        try:
            with httpx.Client(timeout=self._timeout(timeout), trust_env=False) as client:
                with client.stream(
                    "POST",
                    url,
                    params={"api-version": self._settings.azure_openai_api_version},
                    json=payload,
                    headers=headers,
                ) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                    cc.raise_for_status(resp, "Azure OpenAI")
                    for data in cc.iter_sse_payloads(resp.iter_lines()):
                        yield self._parse_stream_chunk(data, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    def _timeout(self, timeout: Optional[float]) -> float:
        return timeout if timeout is not None else self._settings.http_timeout

    def _target(self, req: ChatRequest) -> tuple[str, Dict[str, str]]:
        endpoint = getattr(self._settings, "azure_openai_endpoint", None)
        api_key = getattr(self._settings, "azure_openai_api_key", None)
        if not endpoint:
            raise ConfigurationError("AZURE_OPENAI_ENDPOINT", "Azure OpenAI")
        if not api_key:
            raise ConfigurationError("AZURE_OPENAI_API_KEY", "Azure OpenAI")
        url = f"{endpoint.rstrip('/')}/openai/deployments/{req.model}/chat/completions"
        headers = {"api-key": api_key, "Content-Type": "application/json"}
        return url, headers

    def _build_payload(self, req: ChatRequest, stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "messages": [cc.message_to_payload(m) for m in req.messages],
        }
        if req.max_tokens is not None:
            payload["max_completion_tokens"] = req.max_tokens
        if req.temperature is not None:
            payload["temperature"] = req.temperature
        if req.top_p is not None:
            payload["top_p"] = req.top_p
        if req.store is not None:
            payload["store"] = req.store
        if req.response_format is not None:
            payload["response_format"] = self._response_format(req.response_format)
        # tool_choice 只有在注册了函数时才有意义
        if req.tools:
            payload["tools"] = [cc.serialize_tool(tool) for tool in req.tools]
            payload["tool_choice"] = req.tool_choice
        if stream:
            payload["stream"] = True
            payload["stream_options"] = {"include_usage": True}
        return payload

    @staticmethod
    def _response_format(result_type: Any) -> Dict[str, Any]:
        """结果类型是 pydantic 模型时使用 json_schema，否则退回 json_object。"""

        schema_fn = getattr(result_type, "model_json_schema", None)
        if schema_fn is None:
            return {"type": "json_object"}
        return {
            "type": "json_schema",
            "json_schema": {
                "name": result_type.__name__,
                "schema": schema_fn(by_alias=True),
                "strict": False,
            },
        }

    @staticmethod
    def _parse_usage(data: Dict[str, Any]) -> Optional[AzureOpenAIUsage]:
        usage_raw = data.get("usage") or {}
        if not usage_raw:
            return None
        return AzureOpenAIUsage(
            input_token_count=usage_raw.get("prompt_tokens", 0),
            output_token_count=usage_raw.get("completion_tokens", 0),
            total_token_count=usage_raw.get("total_tokens", 0),
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
