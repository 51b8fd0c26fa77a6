"""Echo 会话的错误码。

语音采集、AI 请求与历史存储出错时都抛出带 code 的 BusinessError 子类；
界面按 code 提示用户。没有哪个错误会让会话不可用：失败的请求可以重试，
损坏的历史在加载时被丢弃。
"""


class BusinessError(Exception):
    """带错误码的会话错误。

    code 同时是 CompletionFailed 的失败原因（TIMEOUT、RATE_LIMIT ...）；
    http_status 与 extra（如 key、state）随失败一起保存在 RequestState 中。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """补全请求没能到达厂商：TIMEOUT 或 NETWORK_ERROR。"""


class ApiError(BusinessError):
    """厂商返回错误状态码 (API_ERROR) 或无法使用的响应体 (INVALID_RESPONSE)。"""


class RateLimitError(BusinessError):
    """厂商返回 429。"""


class ValidationError(BusinessError):
    """缺少 API key 或模型名未在厂商配置中登记。"""


class StorageError(BusinessError):
    """历史键值存储读写失败（STORE_READ_ERROR / STORE_WRITE_ERROR）。"""


class CapabilityUnavailable(BusinessError):
    """语音识别能力不可用（引擎缺失或无法获取）。"""

    def __init__(self, message: str = "Voice input is not supported in this environment", **extra):
        super().__init__(code="CAPABILITY_UNAVAILABLE", message=message, **extra)


class CaptureInProgress(BusinessError):
    """已有一次语音采集在进行中，再次 start() 被拒绝。"""

    def __init__(self, state: str, **extra):
        super().__init__(
            code="CAPTURE_IN_PROGRESS",
            message=f"Voice capture already active (state={state})",
            http_status=409,
            state=state,
            **extra,
        )


class RequestInProgress(BusinessError):
    """已有一个 AI 请求处于 Pending，新的请求被拒绝而不是排队。"""

    def __init__(self, **extra):
        super().__init__(
            code="REQUEST_IN_PROGRESS",
            message="An AI request is already in progress",
            http_status=409,
            **extra,
        )


class CompletionFailed(BusinessError):
    """一次补全请求的终态失败，code 即失败原因（TIMEOUT / NETWORK_ERROR ...）。"""

    def __init__(self, reason: str, message: str, http_status: int = 502, **extra):
        super().__init__(code=reason, message=message, http_status=http_status, **extra)

    @property
    def reason(self) -> str:
        return self.code


class MalformedPersistedState(BusinessError):
    """持久化的历史无法解析。只在存储层内部使用，从不抛给调用方。"""

    def __init__(self, message: str, **extra):
        super().__init__(code="MALFORMED_PERSISTED_STATE", message=message, **extra)
