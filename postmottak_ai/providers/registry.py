"""Provider 选择与配置表。

AiProvider 是一个封闭集合。选择逻辑对未设置或无法识别的值
静默回退到 AzureOpenAI，这是有意的宽松策略，不是错误路径。

每个 Provider 的静态信息（显示名、默认模型、默认地址、默认温度）
集中登记在 PROVIDER_REGISTRY 中，上层按 AiProvider 查表而不是写分支。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, TYPE_CHECKING

from postmottak_ai.domain.exceptions import UnsupportedProviderError

if TYPE_CHECKING:
    from postmottak_ai.config.settings import Settings


class AiProvider(str, Enum):
    AZURE_OPENAI = "AzureOpenAI"
    MISTRAL = "Mistral"


DEFAULT_PROVIDER = AiProvider.AZURE_OPENAI


@dataclass
class ProviderConfig:
    """某个 Provider 的静态配置。"""

    provider: AiProvider
    display_name: str
    default_model: Optional[str]
    base_url: Optional[str]
    default_temperature: Optional[float]


AZURE_OPENAI_CONFIG = ProviderConfig(
    provider=AiProvider.AZURE_OPENAI,
    display_name="Azure OpenAI",
    default_model=None,  # 部署名必须显式配置
    base_url=None,  # 每个 Azure 资源有自己的 endpoint
    default_temperature=None,
)

MISTRAL_CONFIG = ProviderConfig(
    provider=AiProvider.MISTRAL,
    display_name="Mistral AI",
    default_model="mistral-large-latest",
    base_url="https://api.mistral.ai/v1",
    default_temperature=0.7,
)


PROVIDER_REGISTRY: Mapping[AiProvider, ProviderConfig] = {
    AiProvider.AZURE_OPENAI: AZURE_OPENAI_CONFIG,
    AiProvider.MISTRAL: MISTRAL_CONFIG,
}


def parse_ai_provider(value: Optional[str]) -> AiProvider:
    """把配置值解析为 AiProvider，名称不区分大小写。"""

    key = (value or "").strip().lower()
    if not key:
        return DEFAULT_PROVIDER
    for provider in AiProvider:
        if key in (provider.value.lower(), provider.name.lower()):
            return provider
    return DEFAULT_PROVIDER


def get_ai_provider(settings: "Settings") -> AiProvider:
    return parse_ai_provider(settings.ai_provider)


def get_provider_config(provider: AiProvider) -> ProviderConfig:
    try:
        return PROVIDER_REGISTRY[provider]
    except KeyError:
        raise UnsupportedProviderError(provider) from None
