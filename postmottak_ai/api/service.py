"""对外 API 服务模块。

提供简化的函数接口供归档流水线调用。所有函数都显式接收 Settings，
不依赖进程级全局配置。
"""

import logging
from typing import Callable, Mapping, Optional, Type, TypeVar

from postmottak_ai.agents.answers import get_latest_answer
from postmottak_ai.agents.chat_agent import create_agent
from postmottak_ai.agents.instructions import schema_name
from postmottak_ai.agents.kernel import create_kernel_builder
from postmottak_ai.config.settings import Settings
from postmottak_ai.domain.history import ChatHistory
from postmottak_ai.infrastructure.logging.logger import logger
from postmottak_ai.providers.base import ProviderClient
from postmottak_ai.providers.registry import AiProvider, get_ai_provider, get_provider_config

T = TypeVar("T")


def _azure_openai_info(settings: Settings) -> str:
    model = settings.azure_openai_model_name or "Not configured"
    return f"{get_provider_config(AiProvider.AZURE_OPENAI).display_name} - Model: {model}"


def _mistral_info(settings: Settings) -> str:
    cfg = get_provider_config(AiProvider.MISTRAL)
    return f"{cfg.display_name} - Model: {settings.mistral_model_name or cfg.default_model}"


PROVIDER_INFO: Mapping[AiProvider, Callable[[Settings], str]] = {
    AiProvider.AZURE_OPENAI: _azure_openai_info,
    AiProvider.MISTRAL: _mistral_info,
}


def get_current_provider_info(settings: Settings) -> str:
    """返回当前 Provider 与模型的诊断字符串，例如 "Mistral AI - Model: mistral-large-latest"。"""

    describe = PROVIDER_INFO.get(get_ai_provider(settings))
    if describe is None:
        return "Unknown provider"
    return describe(settings)


def ask_for_result(
    settings: Settings,
    agent_name: str,
    instructions: str,
    result_type: Type[T],
    prompt: str,
    history: Optional[ChatHistory] = None,
    *,
    log_level: int = logging.INFO,
    client: Optional[ProviderClient] = None,
) -> Optional[T]:
    """一次性完成：构建 Kernel -> 创建 Agent -> 发送 prompt -> 解析最新回复。

    Args:
        settings: AI Provider 配置
        agent_name: Agent 名称（用于日志）
        instructions: 基础系统指令
        result_type: 期望的结果类型
        prompt: 用户输入（通常是邮件标题和正文）
        history: 已有对话历史（可选）
        client: 替换默认的 Provider 客户端（可选）

    Returns:
        结果对象；历史不足两条或回复为空时返回 None

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    response_type = schema_name(result_type)
    try:
        builder = create_kernel_builder(settings, log_level=log_level, client=client)
        agent = create_agent(builder, agent_name, instructions, result_type)
        chat_history = agent.invoke(prompt, response_type, history)
        return get_latest_answer(chat_history, result_type)
    except Exception as e:
        logger.error(f"AI request failed: {e}", extra={"extra": {
            "agent_name": agent_name,
            "response_type": response_type,
            "error": str(e),
        }})
        raise
