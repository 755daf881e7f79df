"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载 AI Provider 配置。

与旧实现不同，这里不再提供进程级的全局配置对象：调用方通过
load_settings() 或 Settings.from_mapping() 得到一个 Settings 实例，
再显式传给 KernelBuilder / Agent / service 函数。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MAX_COMPLETION_TOKENS = 10000
DEFAULT_MISTRAL_MODEL = "mistral-large-latest"


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("POSTMOTTAK_AI_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.append(Path.cwd() / "config.yaml")

    seen: set[Path] = set()
    for path in candidates:
        if path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return {str(k).lower(): v for k, v in data.items()}
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """AI Provider 配置（使用 Pydantic）。

    字段名与环境变量一一对应（大小写不敏感），例如
    azure_openai_api_key <- AZURE_OPENAI_API_KEY。
    """

    # ---- Provider 选择 ----
    ai_provider: Optional[str] = Field(
        default=None,
        description="AzureOpenAI 或 Mistral，未设置或无法识别时使用 AzureOpenAI",
    )

    # Azure OpenAI
    azure_openai_model_name: Optional[str] = Field(default=None, description="Azure OpenAI 部署/模型名")
    azure_openai_api_key: Optional[str] = Field(default=None, description="Azure OpenAI API 密钥")
    azure_openai_endpoint: Optional[str] = Field(default=None, description="Azure OpenAI 资源地址")
    azure_openai_api_version: str = Field(default="2024-10-21", description="Azure OpenAI API 版本")
    azure_openai_max_completion_tokens: int = Field(default=DEFAULT_MAX_COMPLETION_TOKENS)

    # Mistral AI
    mistral_model_name: Optional[str] = Field(default=None, description="Mistral 模型名")
    mistral_api_key: Optional[str] = Field(default=None, description="Mistral API 密钥")
    mistral_base_url: str = Field(default="https://api.mistral.ai/v1", description="Mistral API 基础URL")
    mistral_max_completion_tokens: int = Field(default=DEFAULT_MAX_COMPLETION_TOKENS)

    http_timeout: float = Field(default=100.0, ge=1.0, description="HTTP 超时时间（秒）")
    log_dir: Optional[str] = Field(default=None, description="JSON 日志目录，为空时只输出到控制台")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("azure_openai_max_completion_tokens", "mistral_max_completion_tokens", mode="before")
    @classmethod
    def parse_max_tokens(cls, v: Any) -> int:
        # 无法解析的值回退到默认上限，而不是报错
        if v is None or isinstance(v, bool):
            return DEFAULT_MAX_COMPLETION_TOKENS
        try:
            return int(str(v).strip())
        except ValueError:
            return DEFAULT_MAX_COMPLETION_TOKENS

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "Settings":
        """从任意字符串键的配置源构造 Settings。

        键名大小写不敏感（"AZURE_OPENAI_API_KEY" 与 "azure_openai_api_key" 等价），
        未知键被忽略；不会再读取环境变量或 .env。
        """

        known = set(cls.model_fields)
        data = {}
        for key, value in values.items():
            name = str(key).lower()
            if name in known and value is not None:
                data[name] = value
        return cls.model_validate(data)


def load_settings(**overrides: Any) -> Settings:
    """按 init > 环境变量 > .env > config.yaml 的优先级加载配置。"""

    return Settings(**overrides)
