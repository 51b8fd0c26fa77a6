"""LLM Provider 集成层。

该包下的模块负责：
- 定义补全服务抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供 OpenAI 兼容的具体实现 (chat_client)。
"""

from typing import Optional

from echo_core.config.settings import settings
from echo_core.providers.base import CompletionService
from echo_core.providers.chat_client import ChatCompletionClient
from echo_core.providers.registry import get_provider_config


def create_provider(name: Optional[str] = None) -> CompletionService:
    """根据名称创建 Provider 实例，默认取配置中的 provider。"""

    provider_name = (name or getattr(settings, "default_provider", "openai")).lower()
    return ChatCompletionClient(get_provider_config(provider_name), settings)
