"""postmottak_ai 顶层包。

为归档流水线（postmottak）提供 AI Provider 抽象：
配置加载、Provider 选择（Azure OpenAI / Mistral）、Kernel 与 Agent 构建、
系统指令增强、调用与 token 日志、回复清理与结构化结果反序列化。
"""

from postmottak_ai.agents.answers import clean_json_content, deserialize_answer, get_latest_answer
from postmottak_ai.agents.chat_agent import ChatCompletionAgent, create_agent
from postmottak_ai.agents.kernel import create_kernel_builder
from postmottak_ai.api.service import ask_for_result, get_current_provider_info
from postmottak_ai.config.settings import Settings, load_settings
from postmottak_ai.domain.history import ChatHistory
from postmottak_ai.providers.registry import AiProvider, parse_ai_provider

__all__ = [
    "AiProvider",
    "ChatCompletionAgent",
    "ChatHistory",
    "Settings",
    "ask_for_result",
    "clean_json_content",
    "create_agent",
    "create_kernel_builder",
    "deserialize_answer",
    "get_current_provider_info",
    "get_latest_answer",
    "load_settings",
    "parse_ai_provider",
]
