"""
Unit tests for S3-backed blob storage (boto3 client is mocked).
"""

from unittest.mock import MagicMock

import pytest

from clawrelay.config.schema import StorageConfig
from clawrelay.errors import StorageError
from clawrelay.storage.blob import S3BlobStorage, make_blob_storage


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://bucket.s3/key?X-Amz-Signature=1"
    return client


class TestS3BlobStorage:
    @pytest.mark.asyncio
    async def test_upload_puts_object(self, s3_client):
        storage = S3BlobStorage(StorageConfig(bucket="attachments"), client=s3_client)

        await storage.upload("bot-attachments/oc/1/a.pdf", b"%PDF", "application/pdf")

        s3_client.put_object.assert_called_once_with(
            Bucket="attachments", Key="bot-attachments/oc/1/a.pdf", Body=b"%PDF", ContentType="application/pdf"
        )

    @pytest.mark.asyncio
    async def test_presign_uses_ttl(self, s3_client):
        storage = S3BlobStorage(StorageConfig(bucket="attachments"), client=s3_client)

        url = await storage.presign("k", 300)

        assert url == "https://bucket.s3/key?X-Amz-Signature=1"
        s3_client.generate_presigned_url.assert_called_once_with(
            "get_object", Params={"Bucket": "attachments", "Key": "k"}, ExpiresIn=300
        )

    @pytest.mark.asyncio
    async def test_client_errors_become_storage_error(self, s3_client):
        s3_client.put_object.side_effect = RuntimeError("AccessDenied")
        storage = S3BlobStorage(StorageConfig(bucket="attachments"), client=s3_client)

        with pytest.raises(StorageError, match="AccessDenied"):
            await storage.upload("k", b"x", "text/plain")


class TestFactory:
    def test_no_bucket_means_no_storage(self):
        assert make_blob_storage(StorageConfig()) is None

    def test_bucket_configured(self):
        assert isinstance(make_blob_storage(StorageConfig(bucket="b")), S3BlobStorage)
