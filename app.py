import os
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from config import Config
from extensions import init_extensions
from logger import configure_app_logging


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.config.get("SECRET_KEY"):
        if app.config.get("TESTING"):
            app.config["SECRET_KEY"] = "testing"
        else:
            raise ValueError("SECRET_KEY must be set in production")

    # ------------------------------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------------------------------
    configure_app_logging(app)

    # ------------------------------------------------------------------------------------------
    # Client IP / scheme from the trusted reverse proxies only
    # ------------------------------------------------------------------------------------------
    trusted_proxies = app.config.get("TRUSTED_PROXY_COUNT", 0)
    if trusted_proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=trusted_proxies, x_proto=trusted_proxies)

    # ------------------------------------------------------------------------------------------
    # sqlite fallback needs its instance directory
    # ------------------------------------------------------------------------------------------
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if database_uri.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(database_uri.replace("sqlite:///", "", 1)) or ".", exist_ok=True)

    # ------------------------------------------------------------------------------------------
    # Initialize extensions
    # ------------------------------------------------------------------------------------------
    init_extensions(app)

    # ------------------------------------------------------------------------------------------
    # Register blueprints and CLI
    # ------------------------------------------------------------------------------------------
    def register_blueprints(app):
        from blueprints.postback import bp as postback_bp

        app.register_blueprint(postback_bp)

    register_blueprints(app)

    from cli import affiliates_cli
    app.cli.add_command(affiliates_cli)

    # ----------------------
    # JSON errors only, partners never get HTML
    # ----------------------
    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        app.logger.error(f"Unhandled error: {error}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    # ----------------------
    # Basic routes
    # ----------------------
    @app.route("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    app.logger.info(f"Postback engine started (dedup window={app.config.get('POSTBACK_DEDUP_WINDOW_SECONDS', 0)}s)")
    return app


# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", False)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)
