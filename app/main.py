import logging
import sys
from datetime import datetime
from pathlib import Path

# Import configuration management
sys.path.append(str(Path(__file__).parent.parent))
from config_manager import ConfigManager, resolve_path

from flask import (
    Flask,
    Response,
    jsonify,
    send_from_directory,
    url_for,
)
from werkzeug.middleware.proxy_fix import ProxyFix

from app.admin.factory import create_admin_module
from app.auth.factory import create_auth_module
from app.knowledge.factory import create_knowledge_module
from app.note_capture.factory import create_note_capture_module, create_processing_tracker
from app.storage import Database
from app.topics.factory import attach_topic_routes, create_topics_module

logger = logging.getLogger(__name__)

TEMPLATE_FILES = {
    "index": "index.html",
    "progress": "progress.html",
    "analyze": "analyze.html",
    "knowledge_list": "knowledge_list.html",
    "knowledge_detail": "knowledge_detail.html",
    "topics": "topics.html",
    "topic_detail": "topic_detail.html",
    "login": "login.html",
    "register": "register.html",
    "init_data": "init_data.html",
}


def load_templates(ui_dir: Path) -> dict:
    """Read every page template into a string."""
    templates = {}
    for key, filename in TEMPLATE_FILES.items():
        with open(ui_dir / filename, "r", encoding="utf-8") as f:
            templates[key] = f.read()
    return templates


def get_file_version(path: Path) -> str:
    """Version string based on file modification time for cache busting."""
    try:
        if path.exists():
            return hex(int(path.stat().st_mtime))[2:]
    except OSError:
        pass
    return hex(int(datetime.now().timestamp()))[2:]


def create_app(config_manager: ConfigManager = None) -> Flask:
    """Build the Flask application and wire every module.

    Args:
        config_manager: Configuration to use; a default ``ConfigManager`` when omitted
    """
    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------
    config_manager = config_manager or ConfigManager()
    app_config = config_manager.get_app_config()
    llm_config = config_manager.get_llm_config()
    db_config = config_manager.get_database_config()
    auth_config = config_manager.get_auth_config()
    analysis_config = config_manager.get_analysis_config()
    paths_config = config_manager.get_paths_config()

    ui_dir = resolve_path(paths_config.ui_dir)
    data_dir = resolve_path(paths_config.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)

    app = Flask(__name__, template_folder=str(ui_dir), static_folder=None)
    app.wsgi_app = ProxyFix(
        app.wsgi_app,
        x_proto=1,      # trust 1 hop for X-Forwarded-Proto
        x_host=1,       # trust 1 hop for X-Forwarded-Host
        x_prefix=1)     # honour X-Forwarded-Prefix

    # -------------------------------------------------------------------------
    # Storage and modules
    # -------------------------------------------------------------------------
    database = Database(db_config.url, echo=db_config.echo)
    database.init_database()

    templates = load_templates(ui_dir)
    processing_tracker = create_processing_tracker(data_dir)

    auth_module = create_auth_module(
        database=database,
        auth_config=auth_config,
        login_template=templates["login"],
        register_template=templates["register"],
        admin_emails=app_config.admin_emails,
        production=app_config.production,
    )
    auth_service = auth_module["service"]

    topics_module = create_topics_module(database, analysis_config, llm_config)
    topic_service = topics_module["service"]

    knowledge_module = create_knowledge_module(
        database=database,
        topic_service=topic_service,
        auth_service=auth_service,
        analysis_config=analysis_config,
        list_template=templates["knowledge_list"],
        detail_template=templates["knowledge_detail"],
        processing_tracker=processing_tracker,
    )

    attach_topic_routes(
        topics_module,
        knowledge_module["service"],
        auth_service,
        templates["topics"],
        templates["topic_detail"],
    )

    note_capture_module = create_note_capture_module(
        knowledge_module=knowledge_module,
        topic_service=topic_service,
        auth_service=auth_service,
        processing_tracker=processing_tracker,
        analysis_config=analysis_config,
        llm_config=llm_config,
        index_template=templates["index"],
        progress_template=templates["progress"],
        analyze_template=templates["analyze"],
    )

    admin_module = create_admin_module(
        database,
        auth_service,
        knowledge_module["service"],
        topic_service,
        templates["init_data"],
    )

    # Register blueprints
    app.register_blueprint(auth_module["blueprint"])
    app.register_blueprint(note_capture_module["blueprint"])
    app.register_blueprint(knowledge_module["blueprint"])
    app.register_blueprint(topics_module["blueprint"])
    app.register_blueprint(admin_module["blueprint"])

    app.extensions["squirrel_notes"] = {
        "config_manager": config_manager,
        "database": database,
        "auth": auth_module,
        "topics": topics_module,
        "knowledge": knowledge_module,
        "note_capture": note_capture_module,
        "admin": admin_module,
        "processing_tracker": processing_tracker,
    }

    app.after_request(auth_service.apply_cookies)

    # -------------------------------------------------------------------------
    # Template context
    # -------------------------------------------------------------------------
    base_css_path = ui_dir / "base.css"

    @app.context_processor
    def inject_versioned_urls():
        def base_css_versioned() -> str:
            return f"{url_for('base_css')}?v={get_file_version(base_css_path)}"

        def static_js_versioned(filename: str) -> str:
            version = get_file_version(ui_dir / "js" / filename)
            return f"{url_for('static_js', filename=filename)}?v={version}"

        return {
            "base_css_versioned": base_css_versioned,
            "static_js_versioned": static_js_versioned,
        }

    # -------------------------------------------------------------------------
    # Static assets and health
    # -------------------------------------------------------------------------
    @app.get("/assets/base.css")
    def base_css():
        """Serve base.css with cache control headers."""
        response = Response(base_css_path.read_text(encoding="utf-8"), mimetype="text/css")
        response.headers['Cache-Control'] = 'public, max-age=31536000, must-revalidate'
        return response

    @app.get("/static/js/<path:filename>")
    def static_js(filename):
        """Serve JavaScript files from the ui/js directory."""
        return send_from_directory(ui_dir / "js", filename, mimetype="application/javascript")

    @app.get("/actuator/health")
    def actuator_health():
        """Health check endpoint for monitoring tools and cloud platforms."""
        return jsonify({
            "status": "UP",
            "service": "squirrel-notes"
        }), 200

    logger.info("Application created (db=%s, provider=%s, model=%s)",
                database.engine.url.render_as_string(hide_password=True),
                llm_config.provider, llm_config.model)
    return app
