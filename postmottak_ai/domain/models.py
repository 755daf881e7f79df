"""统一的对话与结果数据模型。

本模块定义了在 Azure OpenAI / Mistral 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant/tool）。
- ChatRequest: 发给底层 LLM Provider 的完整请求。
- ChatResult: 从 Provider 解析后的统一响应结果。
- AzureOpenAIUsage / MistralUsage: 带 kind 标签的 token 统计，
  每个 Provider 的字段命名保持各自 API 的原样。

Provider 适配器只依赖这些模型，并负责在各自 API JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Literal, Optional, Any, Dict, List, Type, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from postmottak_ai.tools.definitions import ToolCall, ToolDef


Role = Literal["system", "user", "assistant", "tool"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - meta: 附加元数据（如 usage、finish_reason），不直接发给 Provider。
    - tool_calls: 模型触发函数调用时保存调用列表。
    - tool_call_id: role 为 "tool" 时关联某一次调用。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)
    tool_calls: Optional[List["ToolCall"]] = None
    tool_call_id: Optional[str] = None


@dataclass
class ChatRequest:
    """一次完整的聊天请求。"""

    provider: str  # "AzureOpenAI" / "Mistral"
    model: str  # 厂商模型 ID 或 Azure 部署名
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: Optional[List["ToolDef"]] = None
    tool_choice: Literal["auto", "none", "required"] = "auto"
    # 期望的结构化结果类型（pydantic 模型），仅部分 Provider 使用
    response_format: Optional[Type[Any]] = None
    store: Optional[bool] = None


@dataclass
class AzureOpenAIUsage:
    """Azure OpenAI 的 token 统计。"""

    input_token_count: int
    output_token_count: int
    total_token_count: int
    kind: Literal["azure_openai"] = "azure_openai"


@dataclass
class MistralUsage:
    """Mistral 的 token 统计。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    kind: Literal["mistral"] = "mistral"


ProviderUsage = Union[AzureOpenAIUsage, MistralUsage]


@dataclass
class ChatChoice:
    """单个候选回答（通常只有 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次对话调用的最终结果。

    - provider: Provider 名（如 "Mistral"）。
    - model: 实际使用的模型。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ProviderUsage] = None
    raw: Optional[dict] = None


@dataclass
class ChatStreamChoice:
    """流式返回中的单个候选增量。"""

    index: int
    delta: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatStreamChunk:
    """流式对话的增量结果，结构与 ChatResult 类似。"""

    provider: str
    model: str
    choices: List[ChatStreamChoice]
    usage: Optional[ProviderUsage] = None
    raw: Optional[dict] = None
