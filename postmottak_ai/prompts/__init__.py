"""指令文本加载工具。

指令文本是配置内容而非逻辑，以 markdown 文件形式放在本目录：

- json_rules/<provider>.md：各 Provider 的 "只返回 JSON" 规则。
- results/<schema>.md：特定结果类型的抽取说明。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(relative_path: str) -> str:
    """按相对路径读取指令文本（去掉末尾空白）。"""

    return (PROMPTS_DIR / relative_path).read_text(encoding="utf-8").rstrip()
