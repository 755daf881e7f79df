"""chat/completions 风格 API 的公共转换函数。

Azure OpenAI 与 Mistral 的请求/响应 JSON 在 messages、tool_calls、
SSE 流式格式上一致，差异只在地址、认证头、token 字段名和 usage 字段名，
这些差异留在各自的 Client 中处理。
"""

import json
from typing import Any, Dict, Iterable, Iterator, List

import httpx

from postmottak_ai.domain.exceptions import ApiError, RateLimitError
from postmottak_ai.domain.models import ChatMessage
from postmottak_ai.tools.definitions import ToolCall, ToolDef


def raise_for_status(resp: httpx.Response, provider_label: str) -> None:
    if resp.status_code == 429:
        # 限流错误交给上层做重试/退避
        raise RateLimitError(code="RATE_LIMIT", message=f"{provider_label} rate limit", http_status=429)
    if resp.status_code >= 400:
        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)


def iter_sse_payloads(lines: Iterable[str]) -> Iterator[Dict[str, Any]]:
    """解析 `data: {...}` 形式的 SSE 行，遇到 [DONE] 结束。"""

    for line in lines:
        if not line:
            continue
        data_str = line.strip()
        if data_str.startswith("data:"):
            data_str = data_str[5:].strip()
        if not data_str:
            continue
        if data_str == "[DONE]":
            return
        try:
            yield json.loads(data_str)
        except json.JSONDecodeError:
            continue


def message_to_payload(message: ChatMessage) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"role": message.role, "content": message.content or ""}
    if message.tool_calls:
        payload["tool_calls"] = [
            {
                "id": call.id,
                "type": "function",
                "function": {
                    "name": call.name,
                    "arguments": json.dumps(call.arguments, ensure_ascii=False),
                },
            }
            for call in message.tool_calls
        ]
    if message.tool_call_id:
        payload["tool_call_id"] = message.tool_call_id
    return payload


def serialize_tool(tool: ToolDef) -> Dict[str, Any]:
    """把 ToolDef 转成 function tool 描述。"""

    properties: Dict[str, Any] = {}
    required: List[str] = []
    for name, param in tool.params.items():
        schema = param.schema or {"type": "string"}
        if param.description:
            schema = {**schema, "description": param.description}
        properties[name] = schema
        if param.required:
            required.append(name)
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


def build_chat_message(payload: Dict[str, Any]) -> ChatMessage:
    """将单条厂商 message（或流式 delta）转换为 ChatMessage。"""

    tool_calls: List[ToolCall] = []
    for idx, call in enumerate(payload.get("tool_calls") or []):
        func = call.get("function") or {}
        tool_calls.append(
            ToolCall(
                id=call.get("id") or f"tool_call_{idx}",
                name=func.get("name") or call.get("name") or "",
                arguments=parse_arguments(func.get("arguments")),
            )
        )
    return ChatMessage(
        role=payload.get("role") or "assistant",
        content=payload.get("content") or "",
        tool_calls=tool_calls or None,
        tool_call_id=payload.get("tool_call_id"),
    )


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """arguments 通常是 JSON 字符串；解析失败时保留原文到 `_raw`。"""

    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return {"_raw": raw}
    return {}
