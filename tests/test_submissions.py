import unittest
from pathlib import Path
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from models import Base, Media
from newsdesk.body import ImageContent, collect_media_ids
from newsdesk.media import ImageUpload, MediaRegistry, image_upload_from_payload, image_upload_to_payload
from newsdesk.persistence import ArticlePersistence
from newsdesk.submissions import (
    SubmissionError,
    SubmissionRequest,
    check_request,
    import_submission,
    request_from_payload,
    request_to_payload,
)
from newsdesk.uploads import UploadError

DOCUMENT = (
    "<p><span>Title</span></p>"
    "<p><span>Opening paragraph.</span></p>"
    '<p><span><img src="images/image1.png" style="width: 640px; height: 480px"></span></p>'
)


class StubUploader:
    def __init__(self) -> None:
        self.uploaded: list[str] = []

    def upload(self, path: Path, *, file_name: str | None = None) -> str:
        self.uploaded.append(file_name or path.name)
        return f"https://cdn.example.com/images/2024/3/7/{len(self.uploaded)}.png"


class SubmissionTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite://")
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine)
        self.persistence = ArticlePersistence(self.session_factory)
        self.writer_id = self.persistence.create_contributor("Grace", "Hopper")
        self.uploader = StubUploader()
        self.registry = MediaRegistry(self.uploader, self.persistence)

    def tearDown(self) -> None:
        self.engine.dispose()

    def _request(self, **overrides) -> SubmissionRequest:
        values = {
            "headline": "Library Extends Hours",
            "focus": "The library will stay open until midnight.",
            "section": "news",
            "writer_ids": [self.writer_id],
            "html": DOCUMENT,
            "images": [
                ImageUpload(
                    path=Path("/tmp/upload-1234.png"),
                    alt="The reading room",
                    contributor_id=self.writer_id,
                    file_name="image1.png",
                )
            ],
        }
        values.update(overrides)
        return SubmissionRequest(**values)


class MediaRegistryTestCase(SubmissionTestBase):
    def test_register_all_registers_each_name_once(self) -> None:
        images = [
            ImageUpload(path=Path("/tmp/a.png"), alt="A", credit="Staff"),
            ImageUpload(path=Path("/tmp/other/a.png"), alt="A again", credit="Staff"),
            ImageUpload(path=Path("/tmp/b.png"), alt="B", contributor_id=self.writer_id),
        ]

        records = self.registry.register_all(images)

        self.assertEqual(list(records), ["a.png", "b.png"])
        self.assertEqual(self.uploader.uploaded, ["a.png", "b.png"])
        self.assertEqual(records["b.png"].attribution, "Grace Hopper")
        with self.session_factory() as session:
            self.assertEqual(session.query(Media).count(), 2)

    def test_payload_round_trip(self) -> None:
        image = ImageUpload(path=Path("/tmp/a.png"), alt="A", credit="Staff", file_name="image7.png")

        self.assertEqual(image_upload_from_payload(image_upload_to_payload(image)), image)


class ImportSubmissionTestCase(SubmissionTestBase):
    def test_import_stores_parsed_body(self) -> None:
        thumbnail = ImageUpload(path=Path("/tmp/thumb.jpg"), alt="Thumbnail", credit="Staff")

        submission_id = import_submission(self._request(thumbnail=thumbnail), self.registry, self.persistence)

        self.assertEqual(self.uploader.uploaded, ["image1.png", "thumb.jpg"])
        summaries = self.persistence.list_submissions()
        self.assertEqual([summary.id for summary in summaries], [submission_id])

        article_id = self.persistence.publish_submission(submission_id)
        body = self.persistence.load_body(article_id)
        self.assertEqual(len(body.paragraphs), 2)
        image = body.paragraphs[1].spans[0].content[0]
        self.assertIsInstance(image, ImageContent)
        self.assertEqual((image.width, image.height), (640.0, 480.0))

        media = self.persistence.media_for_article(article_id)
        self.assertIn(image.media_id, media)
        self.assertEqual(len(media), 2)
        self.assertEqual(collect_media_ids(body), [image.media_id])

    def test_incomplete_requests_fail_before_uploading(self) -> None:
        no_credit = ImageUpload(path=Path("/tmp/a.png"), alt="A")
        no_alt = ImageUpload(path=Path("/tmp/a.png"), alt=" ", credit="Staff")

        for overrides in (
            {"headline": ""},
            {"focus": "  "},
            {"writer_ids": []},
            {"html": ""},
            {"section": "weather"},
            {"section": "podcasts"},
            {"images": [no_credit]},
            {"images": [no_alt]},
            {"thumbnail": no_credit},
        ):
            with self.subTest(overrides=overrides):
                with self.assertRaises(SubmissionError):
                    import_submission(self._request(**overrides), self.registry, self.persistence)

        self.assertEqual(self.uploader.uploaded, [])
        self.assertEqual(self.persistence.list_submissions(), [])

    def test_upload_failure_propagates(self) -> None:
        uploader = MagicMock()
        uploader.upload.side_effect = UploadError("storage unavailable")
        registry = MediaRegistry(uploader, self.persistence)

        with self.assertRaises(UploadError):
            import_submission(self._request(), registry, self.persistence)
        self.assertEqual(self.persistence.list_submissions(), [])

    def test_request_payload_round_trip(self) -> None:
        request = self._request(base_url="https://docs.example.com/")

        restored = request_from_payload(request_to_payload(request))

        self.assertEqual(restored, request)
        check_request(restored)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
