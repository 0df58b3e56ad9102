"""
异常类型定义模块。

clawrelay 中所有"需要被上层识别"的失败都继承自 ClawRelayError。
流水线内部按类别捕获这些异常：下载/上传失败就地降级，视觉代理失败回退到文本网关，
其余异常最终在 PipelineOrchestrator 的边界处被捕获并记录，不会传播回渠道层。
"""


class ClawRelayError(Exception):
    """clawrelay 所有自定义异常的基类。"""


class FeishuApiError(ClawRelayError):
    """
    飞书 Open API 调用失败。

    属性:
        code: 飞书返回的业务错误码（HTTP 层失败时为 None）
        status: HTTP 状态码（可能为 None）
    """

    def __init__(self, message: str, code: int | None = None, status: int | None = None):
        super().__init__(message)
        self.code = code
        self.status = status


class GatewayError(ClawRelayError):
    """OpenClaw 网关通信失败（认证失败、协议错误、超时、连接意外关闭等）。"""


class VisionProxyError(ClawRelayError):
    """视觉代理调用失败或返回了空结果。"""


class StorageError(ClawRelayError):
    """对象存储上传或预签名失败。"""


class DeliveryError(ClawRelayError):
    """所有投递策略均已失败。原始异常通过 __cause__ 链接。"""
