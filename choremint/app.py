"""ChoreMint Flask application - Main entry point."""

import os
import sys
import logging
from pathlib import Path
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.middleware.proxy_fix import ProxyFix

# Configure logging for the entire application
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

from choremint.models import db

# Initialize Flask-Migrate
migrate = Migrate()

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory pattern for Flask app creation."""
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    from choremint.config import config
    app.config.from_object(config[config_name])

    # Ensure data directory exists for file-based SQLite databases
    if app.config['SQLALCHEMY_DATABASE_URI'].startswith('sqlite:///') and \
            app.config['SQLALCHEMY_DATABASE_URI'] != "sqlite:///:memory:":
        data_dir = Path(app.config['DATA_DIR'])
        data_dir.mkdir(parents=True, exist_ok=True)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db, directory=str(Path(__file__).parent / 'migrations'), render_as_batch=True)

    # ProxyFix handles reverse proxy headers (X-Forwarded-For, etc.)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # Goal processing runs after every committed ledger append
    register_ledger_hooks(app)

    # Register routes
    register_routes(app)

    # Register CLI commands
    from choremint.commands import register_commands
    register_commands(app)

    # Initialize background scheduler
    from choremint.scheduler import init_scheduler
    init_scheduler(app)

    logger.info(f"ChoreMint app created with '{config_name}' configuration")
    return app


def register_ledger_hooks(app):
    """Register the post-append hooks that replace database triggers."""
    from choremint.services.goal_service import GoalService
    from choremint.services.ledger_service import register_post_append_hook

    register_post_append_hook(app, GoalService.handle_ledger_append)


def register_routes(app):
    """Register all application routes."""

    # Register blueprints
    from choremint.routes import points_bp, goals_bp, evolution_bp

    app.register_blueprint(points_bp)
    app.register_blueprint(goals_bp)
    app.register_blueprint(evolution_bp)

    @app.route('/health')
    def health():
        """Health check endpoint for monitoring."""
        from choremint.scheduler import get_job_status

        try:
            # Check database connectivity
            db.session.execute(text('SELECT 1'))
            db_status = 'healthy'
        except SQLAlchemyError as e:
            db.session.rollback()
            db_status = f'unhealthy: {str(e)}'

        return jsonify({
            'status': 'healthy' if db_status == 'healthy' else 'degraded',
            'database': db_status,
            'jobs': get_job_status()
        })


if __name__ == '__main__':
    # Run development server
    create_app().run(host='0.0.0.0', port=8099, debug=True)
