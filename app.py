"""Flask 入口：组装依赖、注册路由、登录管理、错误处理与日志。"""

import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask, current_app, redirect, render_template, request, url_for
from flask_login import LoginManager
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

import app_services as svc
from app_routes import admin_bp, api_bp, pages_bp
from config import Config
from core import ActionLogger, CatalogService, NotFound, ValidationError, VideoStore
from models import db
from provider import ProviderError, VidGuardAPI

login_manager = LoginManager()
login_manager.login_view = "admin.login"
login_manager.login_message = "Please log in to access the admin panel"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_MAX_BYTES = 10 * 1024 * 1024


@login_manager.user_loader
def load_user(user_id):
    """Flask-Login 回调：只认配置里的那一个管理员。"""
    return svc.load_admin(user_id, current_app.config)


@login_manager.unauthorized_handler
def unauthorized():
    if request.path.startswith("/admin/api/"):
        return svc.api_error("Unauthorized", code=401, http_status=401)
    return redirect(url_for("admin.login", next=request.path))


def configure_logging(app: Flask) -> None:
    """根 logger 统一设级别；配置了 LOG_DIR 时额外写 error.log / combined.log。"""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)

    log_dir = app.config.get("LOG_DIR")
    if not log_dir:
        return
    os.makedirs(log_dir, exist_ok=True)
    existing = {h.name for h in root.handlers}
    formatter = logging.Formatter(LOG_FORMAT)
    for name, filename, handler_level in (
        ("video_site.error", "error.log", logging.ERROR),
        ("video_site.combined", "combined.log", level),
    ):
        if name in existing:
            continue
        handler = RotatingFileHandler(os.path.join(log_dir, filename), maxBytes=LOG_MAX_BYTES, backupCount=5)
        handler.name = name
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)


def _wants_json() -> bool:
    return request.path.startswith("/api/") or request.path.startswith("/admin/api/")


def _error_response(message: str, status: int):
    if _wants_json():
        return svc.api_error(message, code=status, http_status=status)
    return render_template("error.html", error=message, status=status), status


def register_error_handlers(app: Flask) -> None:
    """业务异常 -> 4xx（带可读消息）；上游/数据库异常 -> 5xx（只给通用消息）。"""

    @app.errorhandler(NotFound)
    def handle_not_found(exc):
        return _error_response(str(exc) or "Not found", 404)

    @app.errorhandler(ValidationError)
    def handle_validation(exc):
        return _error_response(str(exc) or "Invalid request", 400)

    @app.errorhandler(ProviderError)
    def handle_provider(exc):
        app.logger.error("VidGuard error on %s: %s", request.path, exc)
        return _error_response("Video provider error, please try again later", 502)

    @app.errorhandler(SQLAlchemyError)
    def handle_db(exc):
        db.session.rollback()
        app.logger.exception("Database error on %s", request.path)
        return _error_response("Internal server error", 500)

    @app.errorhandler(HTTPException)
    def handle_http(exc):
        return _error_response(exc.description or exc.name, exc.code or 500)


def create_app(config_object=Config, *, provider=None) -> Flask:
    """应用工厂：数据库句柄与 VidGuard 客户端在这里创建并注入给业务层。"""
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app)

    os.makedirs(app.config["UPLOAD_DIR"], exist_ok=True)

    db.init_app(app)
    # 没有数据库时也允许启动（开发环境），建表失败只记日志
    try:
        with app.app_context():
            db.create_all()
    except SQLAlchemyError as exc:
        app.logger.warning("Skipping db.create_all during startup: %s", exc)

    store = VideoStore(db)
    service = CatalogService(
        store,
        provider or VidGuardAPI.from_config(app.config),
        embed_domain=app.config.get("VIDGUARD_EMBED_DOMAIN"),
    )
    app.extensions["catalog"] = svc.Catalog(store=store, service=service, actions=ActionLogger(db))

    login_manager.init_app(app)
    app.register_blueprint(pages_bp)
    app.register_blueprint(api_bp)
    app.register_blueprint(admin_bp)
    register_error_handlers(app)
    return app


if __name__ == "__main__":
    create_app().run(debug=True, port=int(os.environ.get("PORT", 3000)))
