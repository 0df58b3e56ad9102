"""对象存储模块 - 附件上传与预签名 URL 生成。"""

from clawrelay.storage.blob import BlobStorage, S3BlobStorage, make_blob_storage

__all__ = ["BlobStorage", "S3BlobStorage", "make_blob_storage"]
