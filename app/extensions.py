"""
Flask extensions initialization.

Extensions are initialized here without binding to the app, then bound
in the application factory using init_app() pattern.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Initialize extensions
# These will be bound to the app in create_app() using init_app()
db = SQLAlchemy()
migrate = Migrate()
