"""MRP fulfillment service: Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from mrp.database import init_db
import os


def _is_production(app):
    return app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'


def _init_sentry(app):
    """Report unhandled errors to Sentry when a DSN is configured in production."""
    dsn = os.getenv('SENTRY_DSN')
    if not dsn or not _is_production(app):
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0.1')),
        environment=os.getenv('FLASK_ENV', 'production'),
        release=os.getenv('GIT_COMMIT', 'unknown')
    )


def _register_error_handlers(app):
    from mrp.exceptions import MrpError

    @app.errorhandler(MrpError)
    def handle_mrp_error(error):
        """Domain errors carry their own status code and payload."""
        if error.status_code >= 500:
            app.logger.error(f"MrpError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"MrpError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        app.logger.exception(f"Unhandled exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    _init_sentry(app)

    # Side channels: low stock mail, change notifications, metrics
    from mrp.services.email_service import init_mail
    from mrp.services.notify_service import init_notifier
    from mrp.blueprints.metrics import setup_metrics_instrumentation
    init_mail(app)
    init_notifier(app)
    setup_metrics_instrumentation(app)

    # Behind the reverse proxy in production
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_db(app)

    from mrp.middleware import load_request_context
    app.before_request(load_request_context)

    _register_error_handlers(app)

    from mrp.blueprints.main import main_bp
    from mrp.blueprints.metrics import metrics_bp
    from mrp.blueprints.workorders import workorders_bp
    from mrp.blueprints.inventory import inventory_bp
    from mrp.blueprints.serials import serials_bp

    for blueprint in (main_bp, metrics_bp, workorders_bp, inventory_bp, serials_bp):
        app.register_blueprint(blueprint)

    from mrp.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(
        f"MRP service ready (db={app.config['SQLALCHEMY_DATABASE_URI'].split(':', 1)[0]}, "
        f"notify channel={app.config.get('CHANGE_NOTIFY_CHANNEL')})"
    )
    return app
