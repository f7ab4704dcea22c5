import io
import os

from werkzeug.datastructures import FileStorage

from models import UserAction, Video, VideoView, db


def test_home_page_renders_and_logs_action(app, client, make_video):
    make_video("Welcome clip")

    resp = client.get("/", headers={"User-Agent": "pytest-agent"})
    assert resp.status_code == 200
    assert b"Welcome clip" in resp.data

    with app.app_context():
        action = UserAction.query.one()
        assert action.action_type == "home_page_view"
        assert action.user_agent == "pytest-agent"


def test_video_list_with_search_and_bad_sort(client, make_video):
    make_video("Beach day")
    make_video("Mountain hike")

    resp = client.get("/videos?search=beach&sort=nonsense&order=weird&page=abc")
    assert resp.status_code == 200
    assert b"Beach day" in resp.data
    assert b"Mountain hike" not in resp.data


def test_video_detail_counts_view(app, client, make_video):
    vid = make_video("Watch me", tags=["art"], embed_code='<div id="abc"></div>')

    resp = client.get(f"/video/{vid}")
    assert resp.status_code == 200
    assert b'<div id="abc"></div>' in resp.data

    with app.app_context():
        assert db.session.get(Video, vid).views == 1
        assert VideoView.query.count() == 1
        assert [a.action_type for a in UserAction.query.all()] == ["video_view"]


def test_unpublished_and_missing_videos_are_404(app, client, make_video):
    draft = make_video("Draft", finished=False)

    assert client.get(f"/video/{draft}").status_code == 404
    assert client.get("/video/999").status_code == 404
    with app.app_context():
        assert VideoView.query.count() == 0


def test_model_and_tag_pages(client, make_video):
    make_video("Ann clip", model_name="Ann", tags=["art"])
    make_video("Party clip", model_name="Bea", tags=["party"])

    by_model = client.get("/model/Ann")
    assert by_model.status_code == 200
    assert b"Ann clip" in by_model.data
    assert b"Party clip" not in by_model.data

    by_tag = client.get("/tag/art")
    assert b"Ann clip" in by_tag.data
    assert b"Party clip" not in by_tag.data


def test_public_json_api(client, make_video):
    make_video("Beach one", model_name="Ann", tags=["sand", "sea"])
    make_video("Hidden beach", model_name="Zed", tags=["secret"], finished=False)

    search = client.get("/api/search?q=beach").get_json()
    assert [v["title"] for v in search["videos"]] == ["Beach one"]
    assert search["videos"][0]["tags"] == ["sand", "sea"]

    assert client.get("/api/search?q=").get_json() == {"videos": []}
    assert client.get("/api/models").get_json() == {"models": ["Ann"]}
    assert client.get("/api/tags").get_json() == {"tags": ["sand", "sea"]}


def test_unknown_api_path_returns_json_error(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.get_json()["code"] == 404


def test_admin_pages_require_login(client):
    resp = client.get("/admin/dashboard")
    assert resp.status_code == 302
    assert "/admin/login" in resp.headers["Location"]

    api = client.get("/admin/api/upload-status/1")
    assert api.status_code == 401
    assert api.get_json()["code"] == 401


def test_admin_login_rejects_bad_credentials(client):
    resp = client.post("/admin/login", data={"username": "admin", "password": "wrong"})
    assert resp.status_code == 401
    assert b"Invalid credentials" in resp.data
    assert client.get("/admin/dashboard").status_code == 302


def test_admin_dashboard_and_logout(admin_client, make_video):
    make_video("Pending upload", finished=False, video_id="job7")

    resp = admin_client.get("/admin/dashboard")
    assert resp.status_code == 200
    assert b"Pending upload" in resp.data

    admin_client.get("/admin/logout")
    assert admin_client.get("/admin/dashboard").status_code == 302


def test_add_video_then_poll_status(app, admin_client, provider):
    resp = admin_client.post(
        "/admin/videos/add",
        data={"url": "https://src.example/v.mp4", "title": "Remote", "tags": "a, b"},
    )
    assert resp.status_code == 302

    with app.app_context():
        video = Video.query.one()
        vid = video.id
        assert video.finished is False
        assert video.video_id == "job1"

    pending = admin_client.get(f"/admin/api/upload-status/{vid}")
    assert pending.status_code == 200
    assert pending.get_json() == {"status": "pending"}

    provider.remote_jobs["job1"] = {"status": "finished", "video_id": "abc"}
    done = admin_client.get(f"/admin/api/upload-status/{vid}")
    assert done.get_json()["status"] == "finished"
    with app.app_context():
        video = db.session.get(Video, vid)
        assert video.video_id == "abc"
        assert video.embed_code
        assert video.finished is False

    assert admin_client.get("/admin/api/upload-status/999").status_code == 404


def test_add_video_validation_and_provider_failure(app, admin_client, provider):
    missing = admin_client.post("/admin/videos/add", data={"url": "", "title": "x"})
    assert missing.status_code == 400

    provider.fail_submit = True
    failed = admin_client.post("/admin/videos/add", data={"url": "https://src.example/v.mp4"})
    assert failed.status_code == 502
    assert b"upstream down" not in failed.data

    with app.app_context():
        assert Video.query.count() == 0


def test_mass_upload_reports_per_file_results(app, admin_client, provider):
    resp = admin_client.post(
        "/admin/videos/mass-upload",
        data={
            "videos": [
                (io.BytesIO(b"video bytes"), "Beach Day.mp4"),
                (io.BytesIO(b"broken bytes"), "bad.mkv"),
                (io.BytesIO(b"text"), "notes.txt"),
            ]
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert b"Successfully uploaded 1 videos" in resp.data
    assert b"notes.txt: Only video files are allowed" in resp.data
    assert b"bad.mkv:" in resp.data

    with app.app_context():
        assert [v.title for v in Video.query.all()] == ["Beach Day"]
    # 暂存目录里不留文件
    assert os.listdir(app.config["UPLOAD_DIR"]) == []


def test_mass_upload_without_files(admin_client):
    resp = admin_client.post("/admin/videos/mass-upload", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400


def test_edit_publishes_video(app, admin_client, make_video):
    vid = make_video("Draft", finished=False, video_id="abc", embed_code="<div></div>")

    resp = admin_client.post(
        f"/admin/videos/edit/{vid}",
        data={"title": "Final", "tags": "x, y", "model_name": "Ann", "finished": "true"},
    )
    assert resp.status_code == 302

    with app.app_context():
        video = db.session.get(Video, vid)
        assert video.title == "Final"
        assert video.finished is True
        assert video.tag_list == ["x", "y"]
        assert video.embed_code == "<div></div>"

    assert admin_client.get("/admin/videos/edit/999").status_code == 404


def test_delete_ignores_provider_failure(app, admin_client, provider, make_video):
    vid = make_video("Doomed", video_id="asset3")
    provider.fail_delete = True

    resp = admin_client.post(f"/admin/videos/delete/{vid}")
    assert resp.status_code == 302
    assert provider.deleted == ["asset3"]
    with app.app_context():
        assert db.session.get(Video, vid) is None


def test_admin_listing_and_statistics(admin_client, make_video):
    make_video("Published one")
    make_video("Draft one", finished=False)

    listing = admin_client.get("/admin/videos")
    assert listing.status_code == 200
    assert b"Published one" in listing.data
    assert b"Draft one" in listing.data

    assert admin_client.get("/admin/statistics").status_code == 200


def test_mass_upload_limits_each_file_not_the_whole_request(app, admin_client, provider):
    app.config["MAX_FILE_SIZE"] = 1000

    resp = admin_client.post(
        "/admin/videos/mass-upload",
        data={
            "videos": [
                (io.BytesIO(b"a" * 600), "first.mp4"),
                (io.BytesIO(b"b" * 600), "second.mp4"),
                (io.BytesIO(b"c" * 1500), "huge.mp4"),
            ]
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert b"Successfully uploaded 2 videos" in resp.data
    assert b"huge.mp4: File exceeds the maximum size of 1000 bytes" in resp.data
    assert len(provider.uploaded) == 2
    assert os.listdir(app.config["UPLOAD_DIR"]) == []


def test_mass_upload_survives_disk_errors_while_staging(app, admin_client, provider, monkeypatch):
    original_save = FileStorage.save

    def save(self, dst, buffer_size=16384):
        if self.filename == "nospace.mp4":
            raise OSError(28, "No space left on device")
        return original_save(self, dst, buffer_size)

    monkeypatch.setattr(FileStorage, "save", save)

    resp = admin_client.post(
        "/admin/videos/mass-upload",
        data={
            "videos": [
                (io.BytesIO(b"video bytes"), "kept.mp4"),
                (io.BytesIO(b"video bytes"), "nospace.mp4"),
                (io.BytesIO(b"video bytes"), "after.mp4"),
            ]
        },
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert b"Successfully uploaded 2 videos" in resp.data
    assert b"nospace.mp4: Could not save file" in resp.data
    with app.app_context():
        assert sorted(v.title for v in Video.query.all()) == ["after", "kept"]
    assert os.listdir(app.config["UPLOAD_DIR"]) == []


def test_login_returns_to_requested_admin_page(client):
    gated = client.get("/admin/statistics")
    assert gated.status_code == 302
    assert "next=/admin/statistics" in gated.headers["Location"].replace("%2F", "/")

    resp = client.post(
        "/admin/login?next=/admin/statistics",
        data={"username": "admin", "password": "s3cret"},
    )
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/admin/statistics")


def test_login_ignores_offsite_next(client):
    resp = client.post(
        "/admin/login?next=https://evil.example/steal",
        data={"username": "admin", "password": "s3cret"},
    )
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/admin/dashboard")


def test_upload_status_provider_failure_is_502_json(admin_client, provider, make_video):
    vid = make_video("Pending", finished=False, video_id="job5")
    provider.fail_poll = True

    resp = admin_client.get(f"/admin/api/upload-status/{vid}")
    assert resp.status_code == 502
    body = resp.get_json()
    assert body["code"] == 502
    assert "HTTP 503" not in body["msg"]
