import logging

from flask import Flask
from flask_login import LoginManager
from config import Config
from achievetrack.models import db, User
from achievetrack.errors import Unauthenticated, register_error_handlers

from flask_wtf.csrf import CSRFProtect
from flask_migrate import Migrate

login_manager = LoginManager()
csrf = CSRFProtect()
migrate = Migrate()

@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))

@login_manager.unauthorized_handler
def unauthorized():
    raise Unauthenticated()

def configure_logging(app):
    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    migrate.init_app(app, db)

    register_error_handlers(app)

    # Register Blueprints
    from achievetrack.routes.auth_routes import auth_bp
    from achievetrack.routes.student_routes import student_bp
    from achievetrack.routes.reviewer_routes import reviewer_bp
    from achievetrack.routes.admin_routes import admin_bp
    from achievetrack.routes.report_routes import report_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(reviewer_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(report_bp)

    return app
