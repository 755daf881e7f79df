"""Provider 抽象接口。

Agent 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（AzureOpenAIClient、MistralClient）。
- 负责：将 ChatRequest 转成具体 API 请求，并把响应 JSON 解析为 ChatResult。

重试、退避和传输层细节不在这一层实现。
"""

from typing import Iterable, Optional, Protocol

from postmottak_ai.domain.models import ChatRequest, ChatResult, ChatStreamChunk


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    - name: Provider 名称，用于日志。
    - chat(req): 执行一次非流式调用，返回统一的 ChatResult。
    - chat_stream(req): 执行一次流式调用，逐步产出增量。

    timeout 为空时使用 Settings.http_timeout。
    """

    name: str

    def chat(self, req: ChatRequest, timeout: Optional[float] = None) -> ChatResult:
        ...

    def chat_stream(self, req: ChatRequest, timeout: Optional[float] = None) -> Iterable[ChatStreamChunk]:
        ...
