"""Echo 会话核心顶层包。

该包提供对话客户端的会话编排层实现，
包括配置加载、领域模型、Provider 适配、语音采集状态机、
AI 请求单飞编排与会话历史持久化等能力。
"""

from echo_core.session import SessionController

__all__ = ["SessionController"]
