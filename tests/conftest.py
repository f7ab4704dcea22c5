import os

import pytest

from app import create_app
from config import Config
from models import db
from provider import ProviderError


class SiteTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret"
    ADMIN_USERNAME = "admin"
    ADMIN_PASSWORD = "s3cret"
    VIDGUARD_API_KEY = "test-key"
    VIDGUARD_EMBED_DOMAIN = "embed.example"
    LOG_DIR = ""


class FakeProvider:
    """内存里的 VidGuard：记录调用，按开关模拟失败。"""

    def __init__(self):
        self.remote_jobs = {}
        self.asset_info = {}
        self.submitted = []
        self.polled = []
        self.deleted = []
        self.uploaded = []
        self.fail_submit = False
        self.fail_delete = False
        self.fail_poll = False
        self.fail_info = False
        self._seq = 0

    def _next_id(self, prefix):
        self._seq += 1
        return f"{prefix}{self._seq}"

    def submit_remote_fetch(self, source_url, folder_id=None):
        if self.fail_submit:
            raise ProviderError("Failed to remote upload: HTTP 500 upstream down")
        job_id = self._next_id("job")
        self.submitted.append(source_url)
        self.remote_jobs[job_id] = {"status": "pending"}
        return {"id": job_id}

    def poll_remote_fetch(self, job_id):
        self.polled.append(job_id)
        if self.fail_poll:
            raise ProviderError("Failed to get remote upload status: HTTP 503")
        return dict(self.remote_jobs.get(job_id, {"status": "pending"}))

    def fetch_asset_info(self, asset_id):
        if self.fail_info:
            raise ProviderError("Failed to get video info: HTTP 500")
        return dict(self.asset_info.get(asset_id, {}))

    def delete_asset(self, asset_id):
        self.deleted.append(asset_id)
        if self.fail_delete:
            raise ProviderError("Failed to delete video: HTTP 500")
        return {"status": "ok"}

    def upload_local_file(self, path, folder_id=None):
        with open(path, "rb") as fh:
            content = fh.read()
        if content.startswith(b"broken"):
            raise ProviderError("Failed to upload video: HTTP 500 corrupt file")
        asset_id = self._next_id("asset")
        self.uploaded.append(os.path.basename(path))
        return {"id": asset_id}


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def app(tmp_path, provider):
    config = type("Cfg", (SiteTestConfig,), {"UPLOAD_DIR": str(tmp_path / "uploads")})
    app = create_app(config, provider=provider)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    resp = client.post("/admin/login", data={"username": "admin", "password": "s3cret"})
    assert resp.status_code == 302
    return client


@pytest.fixture
def catalog(app):
    """在应用上下文里直接拿到 store / service / actions。"""
    with app.app_context():
        yield app.extensions["catalog"]


@pytest.fixture
def make_video(app):
    """插入一条视频并返回 id；默认是已发布状态。"""

    def _make(title="Sample", *, finished=True, views=0, created_at=None, **fields):
        with app.app_context():
            store = app.extensions["catalog"].store
            video = store.insert({"title": title, "finished": finished, **fields})
            if views or created_at is not None:
                video.views = views
                if created_at is not None:
                    video.created_at = created_at
                db.session.commit()
            return video.id

    return _make
