"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层（FastAPI 异常处理器）或客户端做统一捕获与用户提示。

错误分层：
- 请求级错误（ConfigurationError / ProtocolError / NetworkError）每个请求只上报一次，且是终态。
- 帧级错误（DecodeError）只记录日志并丢弃该行，不会中断流。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息，会原样放进 HTTP 500 的 {"error": ...}。
        http_status: 映射到 HTTP 时可用的状态码，默认 500。
        extra: 其他补充字段（例如 provider、upstream_status 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 500, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """必需的凭证缺失或仍为占位值，在发起任何网络请求前抛出。

    message 中必须包含 "API key"，客户端据此展示配置错误文案。
    """


class ProtocolError(BusinessError):
    """上游返回非 2xx 状态，或者根本没有响应体。"""


class RateLimitError(ProtocolError):
    """Provider 限流（429）。本项目不做重试，按普通协议错误上报。"""


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时、流中途断开等。"""


class DecodeError(BusinessError):
    """单个 SSE 帧的 JSON 无法解析。只在解码器内部使用。"""


class UploadError(BusinessError):
    """图床上传失败。"""
