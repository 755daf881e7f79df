"""函数调用数据结构定义。

- ToolDef / ToolParam：注册到 Kernel、随请求暴露给模型的函数描述。
- ToolCall：模型在回复中发起的一次函数调用。
"""

from dataclasses import dataclass
from typing import Dict, Any


@dataclass
class ToolParam:
    """单个函数参数的定义。"""

    name: str
    description: str
    required: bool
    schema: Dict[str, Any]


@dataclass
class ToolDef:
    """一个可供 LLM 调用的函数定义。"""

    name: str
    description: str
    params: Dict[str, ToolParam]


@dataclass
class ToolCall:
    """模型发起的一次函数调用请求。"""

    id: str
    name: str
    arguments: Dict[str, Any]
