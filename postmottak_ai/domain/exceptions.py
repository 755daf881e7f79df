"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或调用方做统一捕获与提示。

分类：
- ConfigurationError / UnsupportedProviderError：配置或 Provider 表不一致，致命，不重试。
- ResponseFormatError：模型回复无法解析为目标结果类型，附带原始内容与解析错误。
- NetworkError / ApiError / RateLimitError：Provider HTTP 层错误，本层不做重试。
"""

from typing import Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_SETTING"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 key、provider 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """必需配置缺失。extra["key"] 为缺失的配置键。"""

    def __init__(self, key: str, provider: str):
        super().__init__(
            code="MISSING_SETTING",
            message=f"{key} is required for {provider} provider",
            http_status=500,
            key=key,
            provider=provider,
        )

    @property
    def key(self) -> str:
        return self.extra["key"]


class UnsupportedProviderError(BusinessError):
    """选择结果不在 AiProvider 闭集内，说明分发表与枚举不一致。"""

    def __init__(self, provider: object):
        super().__init__(
            code="UNSUPPORTED_PROVIDER",
            message=f"Unsupported AI provider: {provider!r}",
            http_status=500,
            provider=provider,
        )


class ResponseFormatError(BusinessError):
    """模型回复无法反序列化为目标结果类型。"""

    def __init__(self, result_type: str, raw_content: str, error: Optional[str] = None):
        if error:
            message = (
                f"Failed to deserialize AI response into type {result_type}. "
                f"Raw content: '{raw_content}'. Error: {error}"
            )
        else:
            message = f"Failed to deserialize AI response into type {result_type}. Raw content: '{raw_content}'"
        super().__init__(
            code="RESPONSE_FORMAT_ERROR",
            message=message,
            http_status=502,
            result_type=result_type,
            raw_content=raw_content,
            error=error,
        )

    @property
    def raw_content(self) -> str:
        return self.extra["raw_content"]


class OperationCancelledError(BusinessError):
    """调用方通过 cancel_event 取消了本次调用。"""


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """第三方 API 返回非 2xx/429 错误时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，由上层负责重试/退避策略。"""
