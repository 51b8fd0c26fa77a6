"""会话可用的补全厂商。

Echo 会话只用一个逻辑模型 "chat"（Settings.default_model），
每个厂商把它映射到自己的模型 ID。三家都走 OpenAI 兼容的
/chat/completions，所以这里只记录 base_url 与模型参数。"""

from dataclasses import dataclass, field
from typing import Dict, Mapping


@dataclass(frozen=True)
class ModelConfig:
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    base_url: str
    models: Dict[str, ModelConfig] = field(default_factory=dict)


def _chat_vendor(name: str, base_url: str, model: str, max_tokens: int, temperature: float) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        base_url=base_url,
        models={"chat": ModelConfig(provider_model=model, max_tokens=max_tokens, default_temperature=temperature)},
    )


OPENAI_CONFIG = _chat_vendor("openai", "https://api.openai.com/v1", "gpt-4o-mini", 4096, 1.0)
GLM_CONFIG = _chat_vendor("glm", "https://open.bigmodel.cn/api/paas/v4", "glm-4.6", 8192, 0.7)
KIMI_CONFIG = _chat_vendor("kimi", "https://api.moonshot.cn/v1", "kimi-k2-turbo-preview", 8192, 0.7)

PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    cfg.name: cfg for cfg in (OPENAI_CONFIG, GLM_CONFIG, KIMI_CONFIG)
}


def get_provider_config(name: str) -> ProviderConfig:
    """按厂商名（不区分大小写）查找配置，未知厂商抛 KeyError。"""

    try:
        return PROVIDER_REGISTRY[name.strip().lower()]
    except KeyError:
        raise KeyError(f"Unknown provider: {name!r}") from None
