"""OpenAI 兼容的 chat/completions Provider 适配器。

OpenAI、GLM、Kimi 都提供同一风格的接口：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本实现只依赖公共字段：model/messages/temperature/max_tokens/stream，
不做流式解析，一次请求对应一次完整回复。
"""

from dataclasses import asdict
from typing import Any, Dict, List, Sequence

import httpx

from echo_core.config.settings import settings
from echo_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from echo_core.domain.models import ChatChoice, ChatMessage, ChatRequest, ChatResult, ChatUsage
from echo_core.infrastructure.logging.logger import logger
from echo_core.providers.registry import ModelConfig, ProviderConfig


class ChatCompletionClient:
    """OpenAI 兼容 Provider 客户端实现。"""

    def __init__(self, provider: ProviderConfig, cfg=settings):
        self._provider = provider
        self._settings = cfg
        self.name = provider.name

    async def complete(self, messages: Sequence[ChatMessage]) -> str:
        model = getattr(self._settings, "default_model", "chat")
        req = ChatRequest(
            provider=self.name,
            model=model,
            messages=list(messages),
            temperature=getattr(self._settings, "temperature", None),
        )
        result = await self.chat(req)
        if not result.choices:
            raise ApiError(code="INVALID_RESPONSE", message=f"{self.name} returned no choices", http_status=502)
        choice = result.choices[0]
        logger.info(
            "Completion received",
            extra={"extra": {
                "provider": self.name,
                "model": req.model,
                "finish_reason": choice.finish_reason,
                "usage": asdict(result.usage) if result.usage else None,
            }},
        )
        return choice.message.content

    async def chat(self, req: ChatRequest) -> ChatResult:
        api_key = self._api_key()
        try:
            model_cfg = self._provider.models[req.model]
        except KeyError:
            raise ValidationError(code="UNKNOWN_MODEL", message=f"{self.name} has no model {req.model!r}")
        payload = self._build_payload(req, model_cfg)
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    f"{self._base_url()}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise NetworkError(code="TIMEOUT", message=str(e) or "request timed out", http_status=504)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), http_status=502)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429)
        if resp.status_code >= 400:
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="INVALID_RESPONSE", message=str(e), http_status=502)
        if not isinstance(data, dict):
            raise ApiError(code="INVALID_RESPONSE", message="response body is not an object", http_status=502)
        return self._parse_response(data, req)

    # ---- 辅助方法 ----

    def _api_key(self) -> str:
        key = getattr(self._settings, f"{self.name}_api_key", None)
        if not key:
            raise ValidationError(code="MISSING_API_KEY", message=f"{self.name.upper()}_API_KEY not set")
        return key

    def _base_url(self) -> str:
        base = getattr(self._settings, f"{self.name}_base_url", None) or self._provider.base_url
        return base.rstrip("/")

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> Dict[str, Any]:
        msgs: List[Dict[str, Any]] = [{"role": m.role, "content": m.content} for m in req.messages]
        temperature = req.temperature if req.temperature is not None else model_cfg.default_temperature
        return {
            "model": model_cfg.provider_model,
            "messages": msgs,
            "temperature": temperature,
            "max_tokens": req.max_tokens or model_cfg.max_tokens,
            "stream": False,
        }

    def _parse_response(self, data: Dict[str, Any], req: ChatRequest) -> ChatResult:
        choices: List[ChatChoice] = []
        raw_choices = data.get("choices") or []
        if not isinstance(raw_choices, list):
            raise ApiError(code="INVALID_RESPONSE", message="choices is not a list", http_status=502)
        for i, ch in enumerate(raw_choices):
            msg = ch.get("message") if isinstance(ch, dict) else None
            if not isinstance(msg, dict):
                raise ApiError(code="INVALID_RESPONSE", message=f"choice {i} has no message object", http_status=502)
            cm = ChatMessage(role="assistant", content=self._content_text(msg.get("content")))
            choices.append(ChatChoice(index=ch.get("index", i), message=cm, finish_reason=ch.get("finish_reason")))
        usage = None
        usage_raw = data.get("usage") or {}
        if isinstance(usage_raw, dict) and usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("prompt_tokens", 0),
                completion_tokens=usage_raw.get("completion_tokens", 0),
                total_tokens=usage_raw.get("total_tokens", 0),
            )
        return ChatResult(provider=self.name, model=req.model, choices=choices, usage=usage)

    @staticmethod
    def _content_text(content: Any) -> str:
        """把 message.content 归一成字符串；分段（content parts）形式只拼接 text 段。"""

        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: List[str] = []
            for part in content:
                if isinstance(part, str):
                    parts.append(part)
                elif isinstance(part, dict) and isinstance(part.get("text"), str):
                    parts.append(part["text"])
                else:
                    raise ApiError(code="INVALID_RESPONSE", message="unsupported content part", http_status=502)
            return "".join(parts)
        raise ApiError(
            code="INVALID_RESPONSE",
            message=f"content has unsupported type {type(content).__name__}",
            http_status=502,
        )
