"""路由层（Blueprint）全集。

阅读提示（可读性优先）：
1) 这个文件只做“薄路由”：取参数 -> 校验/登录态 -> 调用 `core/` 的业务 -> 返回。
2) 找不到 / 参数错误 / 上游失败都直接抛业务异常，由 `app.py` 的错误处理统一转成 4xx/5xx。
3) 从上到下按“用户访问路径”排序：
   - 前台页面（/ /videos /video/<id> /model/<name> /tag/<tag>）
   - 前台 API（/api/search /api/models /api/tags）
   - 后台（/admin/...）
"""

from __future__ import annotations

from flask import (
    Blueprint,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_required, login_user, logout_user

from core import NotFound, SortField, SortOrder, UploadSubmissionFailed, ValidationError

import app_services as svc

# 对外只暴露 3 个 Blueprint，`app.py` 会负责注册。
__all__ = ["pages_bp", "api_bp", "admin_bp"]


pages_bp = Blueprint("pages", __name__)
api_bp = Blueprint("api", __name__, url_prefix="/api")
admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


# ============================================================
# 1) 前台页面（Pages）
# ============================================================


@pages_bp.route("/")
def home():
    """首页：最新视频 + 本周热门 + 站点统计。"""
    data = svc.get_catalog().service.get_home_page()
    svc.log_action(request, svc.ACTION_HOME)
    return render_template("user/home.html", **data)


@pages_bp.route("/videos")
def videos():
    """视频列表：关键词 + 排序 + 分页（排序参数只接受白名单）。"""
    page = svc.parse_page(request.args.get("page"))
    search = (request.args.get("search") or "").strip()
    sort_field = SortField.parse(request.args.get("sort"))
    sort_order = SortOrder.parse(request.args.get("order"))

    pagination = svc.get_catalog().store.list_published(
        page, svc.PUBLIC_PAGE_SIZE, search, sort_field, sort_order
    )
    svc.log_action(request, svc.ACTION_VIDEO_LIST)
    return render_template(
        "user/videos.html",
        pagination=pagination,
        search=search,
        sort_by=sort_field.value,
        sort_order=sort_order.value,
    )


@pages_bp.route("/video/<int:video_id>")
def video_detail(video_id: int):
    """详情页：未发布视频对前台一律 404；访问记录失败不影响页面。"""
    video = svc.get_catalog().store.get_by_id(video_id)
    if video is None or not video.finished:
        raise NotFound("Video not found")

    svc.log_view(request, video_id)
    svc.log_action(request, svc.ACTION_VIDEO, video_id)
    return render_template("user/video.html", video=video)


@pages_bp.route("/model/<path:model_name>")
def videos_by_model(model_name: str):
    page = svc.parse_page(request.args.get("page"))
    pagination = svc.get_catalog().store.list_by_model(model_name, page, svc.PUBLIC_PAGE_SIZE)
    svc.log_action(request, svc.ACTION_MODEL)
    return render_template(
        "user/videos.html",
        pagination=pagination,
        filter_type="model",
        filter_value=model_name,
    )


@pages_bp.route("/tag/<path:tag>")
def videos_by_tag(tag: str):
    page = svc.parse_page(request.args.get("page"))
    pagination = svc.get_catalog().store.list_by_tag(tag, page, svc.PUBLIC_PAGE_SIZE)
    svc.log_action(request, svc.ACTION_TAG)
    return render_template(
        "user/videos.html",
        pagination=pagination,
        filter_type="tag",
        filter_value=tag,
    )


# ============================================================
# 2) 前台 API
# ============================================================


@api_bp.get("/search")
def api_search():
    """搜索联想：最多 10 条；空关键词直接返回空列表。"""
    q = (request.args.get("q") or "").strip()
    if not q:
        return jsonify({"videos": []})
    result = svc.get_catalog().store.list_published(1, svc.SEARCH_LIMIT, q)
    return jsonify({"videos": [svc.serialize_video(v) for v in result["items"]]})


@api_bp.get("/models")
def api_models():
    return jsonify({"models": svc.get_catalog().store.distinct_models()})


@api_bp.get("/tags")
def api_tags():
    return jsonify({"tags": svc.get_catalog().store.distinct_tags()})


# ============================================================
# 3) 后台：登录
# ============================================================


@admin_bp.route("/login", methods=["GET", "POST"])
def login():
    """后台登录：GET 渲染；POST 校验共享管理员账号，成功后回到 next（仅限本站路径）。"""
    next_path = svc.safe_next_path(request.args.get("next"))
    if current_user.is_authenticated:
        return redirect(next_path or url_for("admin.dashboard"))

    if request.method == "POST":
        username = (request.form.get("username") or "").strip()
        password = request.form.get("password") or ""
        if svc.check_admin_credentials(username, password, current_app.config):
            login_user(svc.AdminUser(username))
            current_app.logger.info("Admin logged in: %s", username)
            return redirect(next_path or url_for("admin.dashboard"))
        current_app.logger.warning("Failed admin login attempt for %r", username[:50])
        return render_template("admin/login.html", error="Invalid credentials", next_path=next_path), 401
    return render_template("admin/login.html", error=None, next_path=next_path)


@admin_bp.route("/logout")
def logout():
    logout_user()
    return redirect(url_for("admin.login"))


# ============================================================
# 4) 后台：仪表盘 / 视频管理
# ============================================================


@admin_bp.route("/dashboard")
@login_required
def dashboard():
    catalog = svc.get_catalog()
    return render_template(
        "admin/dashboard.html",
        unfinished_videos=catalog.store.list_unfinished(),
        statistics=catalog.service.get_statistics(),
    )


@admin_bp.route("/videos")
@login_required
def manage_videos():
    page = svc.parse_page(request.args.get("page"))
    pagination = svc.get_catalog().store.list_all(page, svc.ADMIN_PAGE_SIZE)
    return render_template("admin/videos.html", pagination=pagination)


@admin_bp.route("/videos/add", methods=["GET", "POST"])
@login_required
def add_video():
    """单条添加：提交 VidGuard 远程拉取任务，记录先以未发布状态入库。"""
    if request.method == "GET":
        return render_template("admin/add_video.html", error=None, form={})

    form = request.form
    try:
        svc.get_catalog().service.submit_remote_upload(
            form.get("url"),
            title=form.get("title") or "",
            description=form.get("description") or "",
            model_name=form.get("model_name") or "",
            tags=svc.parse_tags_input(form.get("tags")),
        )
    except ValidationError as exc:
        return render_template("admin/add_video.html", error=str(exc), form=form), 400
    except UploadSubmissionFailed:
        current_app.logger.exception("Error adding video from %r", form.get("url"))
        return (
            render_template(
                "admin/add_video.html",
                error="Remote upload could not be submitted, please try again later",
                form=form,
            ),
            502,
        )

    flash("Remote upload submitted", "success")
    return redirect(url_for("admin.manage_videos"))


@admin_bp.route("/videos/mass-upload", methods=["GET", "POST"])
@login_required
def mass_upload():
    """批量上传：逐个落盘 -> 上传 VidGuard -> 入库（未发布）；单个失败不影响其余文件。"""
    if request.method == "GET":
        return render_template("admin/mass_upload.html", error=None, success=None, errors=None)

    files = [f for f in request.files.getlist("videos") if f and f.filename]
    if not files:
        return render_template("admin/mass_upload.html", error="No files uploaded", success=None, errors=None), 400

    upload_dir = current_app.config["UPLOAD_DIR"]
    max_size = current_app.config.get("MAX_FILE_SIZE")
    staged = []
    errors: list[str] = []
    for file_storage in files:
        try:
            staged.append(svc.stage_upload(file_storage, upload_dir, max_size))
        except ValueError as exc:
            errors.append(f"{file_storage.filename}: {exc}")
        except OSError:
            current_app.logger.exception("Could not stage upload %r", file_storage.filename)
            errors.append(f"{file_storage.filename}: Could not save file")

    result = svc.get_catalog().service.process_mass_upload(staged)
    errors.extend(result.errors)
    return render_template(
        "admin/mass_upload.html",
        error=None,
        success=f"Successfully uploaded {result.uploaded_count} videos",
        errors=errors or None,
    )


@admin_bp.route("/videos/edit/<int:video_id>", methods=["GET", "POST"])
@login_required
def edit_video(video_id: int):
    """编辑页：标题/简介/模特/标签/是否发布；嵌入代码等上传字段保持原值。"""
    catalog = svc.get_catalog()
    video = catalog.service.get_video(video_id)
    if request.method == "GET":
        return render_template("admin/edit_video.html", video=video)

    fields = svc.video_form_fields(request.form, catalog.store.as_fields(video))
    catalog.service.update_video(video_id, fields)
    flash("Video updated", "success")
    return redirect(url_for("admin.manage_videos"))


@admin_bp.post("/videos/delete/<int:video_id>")
@login_required
def delete_video(video_id: int):
    svc.get_catalog().service.delete_video(video_id)
    flash("Video deleted", "success")
    return redirect(url_for("admin.manage_videos"))


# ============================================================
# 5) 后台：上传状态 / 统计
# ============================================================


@admin_bp.get("/api/upload-status/<int:video_id>")
@login_required
def upload_status(video_id: int):
    """远程上传状态轮询：返回 VidGuard 原始状态；完成时顺带写入嵌入代码。"""
    status = svc.get_catalog().service.reconcile_remote_upload(video_id)
    return jsonify(status)


@admin_bp.route("/statistics")
@login_required
def statistics():
    return render_template("admin/statistics.html", **svc.get_catalog().service.get_admin_statistics())
