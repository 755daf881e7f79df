"""领域层模型。

包含：
- models: 统一的 ChatMessage / ChatRequest / ChatResult 模型与 usage 变体。
- history: 调用方持有的 ChatHistory。
- results: 各文档类型的 AI 结果记录。
- exceptions: 业务异常类型定义。
"""
