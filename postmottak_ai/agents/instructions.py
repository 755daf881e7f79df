"""系统指令增强。

在创建 Agent 时对调用方给出的指令追加：
1. Provider 对应的 "只返回原始 JSON" 规则；
2. 若结果类型名在 RESULT_INSTRUCTIONS 中（名称完全相等），追加该类型的抽取说明。

两张表都是数据：新增结果类型只需新增一个 prompts/results/*.md 文件
并登记一行映射（或在运行时调用 register_result_instructions），不用改调用方。
"""

from typing import Any, Dict, Mapping, Optional, Union

from postmottak_ai.domain.exceptions import UnsupportedProviderError
from postmottak_ai.prompts import load_prompt
from postmottak_ai.providers.registry import AiProvider


JSON_RULES: Mapping[AiProvider, str] = {
    AiProvider.AZURE_OPENAI: load_prompt("json_rules/azure_openai.md"),
    AiProvider.MISTRAL: load_prompt("json_rules/mistral.md"),
}

RESULT_INSTRUCTIONS: Dict[str, str] = {
    "PengetransportenChatResult": load_prompt("results/pengetransporten.md"),
    "Rf1350ChatResult": load_prompt("results/rf1350.md"),
    "LoyvegarantiChatResult": load_prompt("results/loyvegaranti.md"),
}


def register_result_instructions(schema_name: str, text: str) -> None:
    RESULT_INSTRUCTIONS[schema_name] = text.rstrip()


def schema_name(response_format: Union[str, type, Any]) -> str:
    if isinstance(response_format, str):
        return response_format
    return getattr(response_format, "__name__", type(response_format).__name__)


def enhance_instructions(
    instructions: str,
    response_format: Optional[Union[str, type]],
    provider: AiProvider,
) -> str:
    """返回增强后的系统指令；response_format 为 None 时原样返回。"""

    if response_format is None:
        return instructions

    rules = JSON_RULES.get(provider)
    if rules is None:
        raise UnsupportedProviderError(provider)

    enhanced = f"{instructions}\n{rules}"
    specific = RESULT_INSTRUCTIONS.get(schema_name(response_format))
    if specific:
        enhanced += f"\n\n{specific}"
    return enhanced
