"""AI 结果记录（按文档类型）。

每个结果类型都只由一次对话的最后一条模型回复构造，生命周期限于一次请求处理。
属性名匹配规则：camelCase 别名，且键名大小写不敏感
（"isInvoiceRelated"、"IsInvoiceRelated"、"is_invoice_related" 均可）。
值类型严格匹配：布尔字段不接受 "no" 或 1 这类值。编号字段例外，JSON 数字会转成文本。
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class ChatResultModel(BaseModel):
    """结果记录基类。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, strict=True)

    @model_validator(mode="before")
    @classmethod
    def _match_keys_case_insensitive(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup: Dict[str, str] = {}
        for name, info in cls.model_fields.items():
            alias = info.alias or name
            lookup[name.lower()] = alias
            lookup[alias.lower()] = alias
        return {lookup.get(str(key).lower(), key): value for key, value in data.items()}


class PengetransportenChatResult(ChatResultModel):
    """Pengetransporten：判断邮件是否与发票/账单相关。"""

    description: str = Field(
        default="",
        description="Faktura, Regning, Inkassovarsel eller Purring på faktura eller regning",
    )
    is_invoice_related: bool = Field(
        default=False,
        description="Minst 90% sikker på at det er en gyldig kategori",
    )


class Rf1350ChatResult(ChatResultModel):
    """RF13.50 资助申请邮件的元数据。"""

    type: str = ""
    reference_number: str = ""
    project_number: str = ""
    project_name: str = ""
    project_owner: str = ""
    organization_number: str = ""

    @field_validator("organization_number", "reference_number", "project_number", mode="before")
    @classmethod
    def _number_as_text(cls, v: Any) -> Any:
        # 模型有时把编号作为 JSON 数字返回
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class LoyvegarantiType(str, Enum):
    LOYVEGARANTI = "Løyvegaranti"
    ENDRING_AV_LOYVEGARANTI = "EndringAvLøyvegaranti"
    OPPHOR_AV_LOYVEGARANTI = "OpphørAvLøyvegaranti"


class LoyvegarantiChatResult(ChatResultModel):
    """Løyvegaranti（许可担保）文档的元数据。"""

    description: str = ""
    organization_name: str = ""
    organization_number: str = ""
    type: Optional[LoyvegarantiType] = None

    @field_validator("organization_number", mode="before")
    @classmethod
    def _number_as_text(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v
