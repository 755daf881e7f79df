import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Union

CONSOLE_SINK = "postmottak_ai.console"
FILE_SINK = "postmottak_ai.file"

_log_context: ContextVar[Mapping[str, Any]] = ContextVar("postmottak_ai_log_context", default={})


class JsonFormatter(logging.Formatter):
    def __init__(self, redact_content: bool = False):
        super().__init__()
        self._redact_content = redact_content

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact_content:
            msg = (msg or "")[:64]
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class LogContextFilter(logging.Filter):
    """把当前 log_context 中的字段合并到 record.extra。"""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        if ctx:
            merged = dict(ctx)
            extra = getattr(record, "extra", None)
            if isinstance(extra, dict):
                merged.update(extra)
            record.extra = merged
        return True


@contextmanager
def log_context(**props: Any) -> Iterator[None]:
    """在 with 块内为所有日志附加字段；退出时（包括异常）恢复原上下文。"""

    token = _log_context.set({**_log_context.get(), **props})
    try:
        yield
    finally:
        _log_context.reset(token)


def current_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("postmottak_ai")
    logger.setLevel(logging.INFO)
    logger.addFilter(LogContextFilter())
    return logger


def _find_sink(name: str) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if handler.get_name() == name:
            return handler
    return None


def _lower_levels(handler: logging.Handler, level: int) -> None:
    # 取所有调用方要求的最低级别；各 Agent 再按自己的 Kernel.log_level 过滤
    if handler.level > level:
        handler.setLevel(level)
    if logger.level > level:
        logger.setLevel(level)


def add_console_sink(level: int = logging.INFO) -> logging.Handler:
    """注册控制台日志输出；重复调用只会降低级别，不会提高。"""

    handler = _find_sink(CONSOLE_SINK)
    if handler is None:
        handler = logging.StreamHandler()
        handler.set_name(CONSOLE_SINK)
        handler.setFormatter(JsonFormatter())
        handler.setLevel(level)
        logger.addHandler(handler)
    _lower_levels(handler, level)
    return handler


def add_file_sink(
    log_dir: Union[str, Path],
    level: int = logging.INFO,
    redact_content: bool = False,
) -> logging.Handler:
    handler = _find_sink(FILE_SINK)
    if handler is None:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path / "postmottak_ai.log", encoding="utf-8")
        handler.set_name(FILE_SINK)
        handler.setFormatter(JsonFormatter(redact_content=redact_content))
        handler.setLevel(level)
        logger.addHandler(handler)
    _lower_levels(handler, level)
    return handler


def configure_logging(settings, level: int = logging.INFO) -> None:
    """按 Settings 注册日志输出：控制台总是注册，log_dir 存在时再加 JSON 文件。"""

    add_console_sink(level)
    log_dir = getattr(settings, "log_dir", None)
    if log_dir:
        add_file_sink(log_dir, level, redact_content=getattr(settings, "log_redact_content", False))


logger = setup_logger()
