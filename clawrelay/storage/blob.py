"""
对象存储模块 - 上传附件并生成短时效的预签名下载 URL。

视觉类附件（图片 / PDF / Office 文档）不能直接内联给视觉代理，
需要先上传到对象存储，再把预签名 URL 交给模型下载。

实现基于 boto3（S3 兼容接口，可对接 AWS S3、MinIO、阿里云 OSS 等）。
boto3 是同步 SDK，所有调用都放进默认线程池执行，避免阻塞事件循环。
"""

import asyncio
from abc import ABC, abstractmethod
from functools import partial
from typing import Any

from loguru import logger

from clawrelay.config.schema import StorageConfig
from clawrelay.errors import StorageError


class BlobStorage(ABC):
    """对象存储抽象接口。"""

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        """上传对象。失败时抛出 StorageError。"""
        pass

    @abstractmethod
    async def presign(self, key: str, ttl_seconds: int) -> str:
        """为已上传的对象生成预签名下载 URL。失败时抛出 StorageError。"""
        pass


class S3BlobStorage(BlobStorage):
    """
    基于 boto3 的 S3 兼容对象存储。

    参数:
        config: 存储配置（bucket、region、endpoint、凭证）
        client: 可选的预构建 boto3 S3 客户端（测试时注入）
    """

    def __init__(self, config: StorageConfig, client: Any = None):
        self.config = config
        self.bucket = config.bucket
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            import boto3

            self._client = boto3.client(
                "s3",
                region_name=self.config.region,
                endpoint_url=self.config.endpoint_url or None,
                aws_access_key_id=self.config.access_key_id or None,
                aws_secret_access_key=self.config.secret_access_key or None,
            )
        return self._client

    async def _run(self, func, *args, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await self._run(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except Exception as e:
            raise StorageError(f"upload of {key} failed: {e}") from e
        logger.debug(f"Uploaded s3://{self.bucket}/{key} ({len(data)} bytes)")

    async def presign(self, key: str, ttl_seconds: int) -> str:
        try:
            return await self._run(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except Exception as e:
            raise StorageError(f"presign of {key} failed: {e}") from e


def make_blob_storage(config: StorageConfig) -> BlobStorage | None:
    """根据配置创建对象存储；未配置 bucket 时返回 None。"""
    if not config.bucket:
        logger.warning("Attachment storage bucket not configured, vision attachments will be skipped")
        return None
    return S3BlobStorage(config)
