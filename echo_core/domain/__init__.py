"""领域层模型与协议。

包含：
- models: Message / ChatMessage / ChatRequest / ChatResult 等数据模型。
- conversation: 会话历史的序列化与 KeyValueStore 抽象。
- states: 语音采集与 AI 请求的状态机。
- exceptions: 业务异常类型定义。
"""
