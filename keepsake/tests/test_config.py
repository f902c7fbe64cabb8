import unittest

from pydantic import ValidationError

from keepsake.config import Settings
from keepsake.dependencies import build_storage_client
from keepsake.storage import CosStorageClient


class CosSettingsTests(unittest.TestCase):
    def test_bucket_requires_public_url(self):
        with self.assertRaises(ValidationError) as ctx:
            Settings(_env_file=None, cos_bucket="photos-1250000000")
        self.assertIn("COS_PUBLIC_URL is required", str(ctx.exception))

    def test_cos_urls_are_stable_public_urls(self):
        settings = Settings(
            _env_file=None,
            cos_bucket="photos-1250000000",
            cos_region="ap-guangzhou",
            cos_endpoint="https://cos.ap-guangzhou.myqcloud.com",
            cos_public_url="https://photos.example.com/",
            aws_access_key_id="key",
            aws_secret_access_key="secret",
        )
        storage = build_storage_client(settings)
        self.assertIsInstance(storage, CosStorageClient)
        self.assertEqual(
            storage.url_for("1718000000000-42.jpg"),
            "https://photos.example.com/1718000000000-42.jpg",
        )

    def test_client_refuses_empty_public_url(self):
        with self.assertRaises(ValueError):
            CosStorageClient(
                bucket="photos-1250000000",
                region="ap-guangzhou",
                endpoint="https://cos.ap-guangzhou.myqcloud.com",
                access_key_id="key",
                secret_access_key="secret",
                public_url="",
            )


if __name__ == "__main__":
    unittest.main()
