"""从模型回复中取出结构化结果。

- clean_json_content：去掉 markdown 代码块并截取 JSON 对象子串（启发式，不是 JSON 词法分析）。
- deserialize_answer：按目标类型反序列化，全部成功或抛出 ResponseFormatError。
- get_latest_answer：读取历史中最后一条回复并完成上面两步。

注意：截取 `{`..`}` 的步骤无条件执行，即使没有代码块。如果模型在 JSON
之外的文字里也写了花括号，可能截取到错误的范围；这里保持这个顺序不变。
"""

import re
from functools import lru_cache
from typing import Any, Optional, Type, TypeVar

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from postmottak_ai.domain.exceptions import ResponseFormatError
from postmottak_ai.domain.history import ChatHistory
from postmottak_ai.infrastructure.logging.logger import logger

T = TypeVar("T")

FENCE = "```"
_JSON_FENCE = re.compile(r"```json", re.IGNORECASE)


def clean_json_content(content: str) -> str:
    """返回尽量只包含 JSON 的子串；空白输入原样返回。"""

    if content is None or not content.strip():
        return content

    logger.info("Cleaning JSON content from AI response", extra={"extra": {"content": content}})

    if FENCE in content:
        match = _JSON_FENCE.search(content)
        if match:
            # ```json 标签之后第一个换行到下一个 ```
            block_start = content.find("\n", match.start()) + 1
            block_end = content.find(FENCE, block_start)
            if block_end > block_start:
                content = content[block_start:block_end].strip()
        elif content.startswith(FENCE):
            first_newline = content.find("\n")
            last_fence = content.rfind(FENCE)
            if first_newline >= 0 and last_fence > first_newline:
                content = content[first_newline + 1:last_fence].strip()

    logger.debug("Removed code blocks from AI response", extra={"extra": {"content": content}})

    object_start = content.find("{")
    object_end = content.rfind("}")
    if object_start >= 0 and object_end > object_start:
        content = content[object_start:object_end + 1]

    return content.strip()


@lru_cache(maxsize=None)
def _adapter(result_type: Type[Any]) -> TypeAdapter:
    return TypeAdapter(result_type)


def _type_name(result_type: Type[Any]) -> str:
    return getattr(result_type, "__name__", str(result_type))


def deserialize_answer(text: str, result_type: Type[T], raw_content: Optional[str] = None) -> T:
    """把已清理的文本反序列化为 result_type。

    raw_content 为清理前的原文，用于错误信息；默认使用 text 本身。
    """

    raw = text if raw_content is None else raw_content
    try:
        result = _adapter(result_type).validate_json(text)
    except PydanticValidationError as e:
        raise ResponseFormatError(_type_name(result_type), raw, str(e)) from e
    if result is None:
        raise ResponseFormatError(_type_name(result_type), raw)
    return result


def get_latest_answer(history: ChatHistory, result_type: Type[T]) -> Optional[T]:
    # 0 是用户输入，1 是模型回复，以此类推
    if len(history) < 2:
        return None

    content = history[-1].content
    if not content:
        return None

    return deserialize_answer(clean_json_content(content), result_type, raw_content=content)
