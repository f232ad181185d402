import json
import os
import unittest
from datetime import datetime, timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

import httpx

from newsdesk.config import NewsdeskConfig
from newsdesk.uploads import (
    HttpSignedUrlProvider,
    MediaUploader,
    SignedUpload,
    UploadError,
    build_object_prefix,
    env_token_provider,
    extension_for,
)


class StubSigner:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def create_signed_url(self, image_path: str, extension: str) -> SignedUpload:
        self.calls.append((image_path, extension))
        return SignedUpload(
            signed_url=f"https://storage.example.com/upload/{image_path}/abc.{extension}?sig=1",
            object_key=f"{image_path}/abc.{extension}",
        )


class HelpersTestCase(unittest.TestCase):
    def test_object_prefix_is_not_zero_padded(self) -> None:
        when = datetime(2024, 3, 7, tzinfo=timezone.utc)

        self.assertEqual(build_object_prefix("images", when), "images/2024/3/7")
        self.assertEqual(build_object_prefix("/images/", when), "images/2024/3/7")

    def test_extension_defaults(self) -> None:
        self.assertEqual(extension_for("photo.PNG", "jpg"), "png")
        self.assertEqual(extension_for("photo", "jpg"), "jpg")

    def test_env_token_provider(self) -> None:
        with patch.dict(os.environ, {"NEWSDESK_UPLOAD_TOKEN": " token-123 "}, clear=True):
            self.assertEqual(env_token_provider()(), "token-123")
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(UploadError):
                env_token_provider()()


class HttpSignedUrlProviderTestCase(unittest.TestCase):
    def test_requests_signed_url_with_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"signedUrl": "https://storage.example.com/put?sig=1", "imagePath": "images/2024/3/7/abc.png"},
            )

        tokens = iter(["first-token", "second-token"])
        client = httpx.Client(transport=httpx.MockTransport(handler))
        provider = HttpSignedUrlProvider(
            "https://api.example.com/sign", lambda: next(tokens), client=client
        )
        try:
            signed = provider.create_signed_url("images/2024/3/7", "png")
            provider.create_signed_url("images/2024/3/7", "png")
        finally:
            provider.close()
            client.close()

        self.assertEqual(signed.signed_url, "https://storage.example.com/put?sig=1")
        self.assertEqual(signed.object_key, "images/2024/3/7/abc.png")
        self.assertEqual(json.loads(seen[0].content), {"imagePath": "images/2024/3/7", "extension": "png"})
        self.assertEqual(seen[0].headers["Authorization"], "Bearer first-token")
        self.assertEqual(seen[1].headers["Authorization"], "Bearer second-token")

    def test_error_responses_raise(self) -> None:
        responses = [
            httpx.Response(403, json={"error": "forbidden"}),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"signedUrl": "https://storage.example.com/put"}),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        provider = HttpSignedUrlProvider("https://api.example.com/sign", lambda: "token", client=client)
        try:
            for _ in range(3):
                with self.assertRaises(UploadError):
                    provider.create_signed_url("images/2024/3/7", "jpg")
        finally:
            client.close()

    def test_signing_url_is_required(self) -> None:
        with self.assertRaises(ValueError):
            HttpSignedUrlProvider("", lambda: "token")


class MediaUploaderTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.config = NewsdeskConfig()
        self.config.upload.cdn_base_url = "https://cdn.example.com/"
        self.clock = lambda: datetime(2024, 3, 7, 9, 30, tzinfo=timezone.utc)

    def test_upload_puts_bytes_and_returns_content_url(self) -> None:
        puts: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            puts.append(request)
            return httpx.Response(200)

        signer = StubSigner()
        client = httpx.Client(transport=httpx.MockTransport(handler))
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "reading-room.png"
            path.write_bytes(b"\x89PNG fake")
            uploader = MediaUploader(self.config, signer, client=client, clock=self.clock)
            content_url = uploader.upload(path, file_name="image1.png")

        client.close()
        self.assertEqual(content_url, "https://cdn.example.com/images/2024/3/7/abc.png")
        self.assertEqual(signer.calls, [("images/2024/3/7", "png")])
        self.assertEqual(len(puts), 1)
        self.assertEqual(puts[0].method, "PUT")
        self.assertEqual(puts[0].content, b"\x89PNG fake")
        self.assertEqual(puts[0].headers["Content-Type"], "image/png")

    def test_failed_put_raises(self) -> None:
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "photo.jpg"
            path.write_bytes(b"data")
            uploader = MediaUploader(self.config, StubSigner(), client=client, clock=self.clock)
            with self.assertRaises(UploadError):
                uploader.upload(path)
        client.close()

    def test_missing_and_empty_files_are_rejected(self) -> None:
        signer = StubSigner()
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        uploader = MediaUploader(self.config, signer, client=client, clock=self.clock)
        with TemporaryDirectory() as tmpdir:
            empty = Path(tmpdir) / "empty.jpg"
            empty.write_bytes(b"")
            with self.assertRaises(UploadError):
                uploader.upload(empty)
            with self.assertRaises(UploadError):
                uploader.upload(Path(tmpdir) / "missing.jpg")
        client.close()
        self.assertEqual(signer.calls, [])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
