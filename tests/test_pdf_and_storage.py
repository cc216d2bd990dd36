"""
Tests for resume HTML rendering and artifact stores.
"""
import io

import pytest
from botocore.exceptions import ClientError

from resumeai.core.errors import ArtifactNotFound, CollaboratorError
from resumeai.schemas.generation import GeneratedResumeContent
from resumeai.services.pdf_service import PdfOptions, render_resume_html
from resumeai.services.storage_service import (
    LocalArtifactStore,
    S3ArtifactStore,
    get_artifact_store,
    resume_artifact_key,
)


RECORD = {
    "name": "Jane <Doe>",
    "email": "jane@example.com",
    "mobile": "",
    "location": "Pune",
    "linkedin_url": "",
    "portfolio_url": "",
    "experience": [{"company": "Acme", "position": "Engineer", "start_date": "2021-01", "end_date": "", "description": "APIs"}],
    "education": [],
    "skills": ["Python", "SQL"],
    "projects": [],
    "achievements": [{"title": "Hackathon winner", "description": "", "date": "2023"}],
}


# ✅ HTML

def test_render_escapes_profile_values():
    html = render_resume_html(RECORD, GeneratedResumeContent())
    assert "Jane &lt;Doe&gt;" in html
    assert "<Doe>" not in html


def test_render_prefers_enhanced_sections():
    content = GeneratedResumeContent(
        professional_summary="Seasoned engineer",
        enhanced_experiences=[{"company": "Acme", "position": "Senior Engineer", "description": "Cut latency 40%"}],
        highlighted_skills=["python"],
    )
    html = render_resume_html(RECORD, content)

    assert "Seasoned engineer" in html
    assert "Cut latency 40%" in html
    assert '<span class="match">Python</span>' in html
    assert "Hackathon winner" in html
    assert "Education" not in html


def test_pdf_options_page_css():
    assert PdfOptions().page_css() == "@page { size: Letter; margin: 1in; }"
    assert "A4" in PdfOptions(page_size="A4", margin="2cm").page_css()


# ✅ LOCAL STORE

def test_local_store_put_get_overwrite(tmp_path):
    store = LocalArtifactStore(root=str(tmp_path))
    key = resume_artifact_key(7)

    store.put(key, b"first")
    store.put(key, b"second")

    assert key == "7/resume.pdf"
    assert store.get(key) == b"second"


def test_local_store_missing(tmp_path):
    with pytest.raises(ArtifactNotFound):
        LocalArtifactStore(root=str(tmp_path)).get("1/resume.pdf")


def test_local_store_rejects_path_escape(tmp_path):
    with pytest.raises(ValueError):
        LocalArtifactStore(root=str(tmp_path)).put("../outside.pdf", b"x")


# ✅ S3 STORE

class FakeS3:
    def __init__(self, fail_times=0):
        self.objects = {}
        self.fail_times = fail_times
        self.put_calls = 0

    def put_object(self, Bucket, Key, Body, ContentType):
        self.put_calls += 1
        if self.put_calls <= self.fail_times:
            raise ClientError({"Error": {"Code": "SlowDown", "Message": "slow down"}}, "PutObject")
        self.objects[(Bucket, Key)] = Body

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("resumeai.core.retry.time.sleep", lambda _: None)


def test_s3_store_roundtrip_with_retry():
    client = FakeS3(fail_times=1)
    store = S3ArtifactStore(bucket="resumes", client=client, retry_attempts=3)

    store.put("1/resume.pdf", b"%PDF")

    assert client.put_calls == 2
    assert store.get("1/resume.pdf") == b"%PDF"


def test_s3_store_missing_key():
    store = S3ArtifactStore(bucket="resumes", client=FakeS3())
    with pytest.raises(ArtifactNotFound):
        store.get("1/resume.pdf")


def test_s3_store_upload_failure():
    store = S3ArtifactStore(bucket="resumes", client=FakeS3(fail_times=5), retry_attempts=2)
    with pytest.raises(CollaboratorError):
        store.put("1/resume.pdf", b"%PDF")


def test_s3_store_requires_bucket(monkeypatch):
    monkeypatch.setattr("resumeai.core.config.S3_BUCKET_NAME", None)
    with pytest.raises(CollaboratorError):
        S3ArtifactStore(client=FakeS3())


def test_unknown_storage_backend():
    with pytest.raises(CollaboratorError):
        get_artifact_store("ftp")
