"""
WSGI Entry Point
Production scheduler

The scheduling engine keeps its in-flight guard in process memory, so run a
single worker process (threads are fine):
    gunicorn --workers 1 --threads 8 wsgi:app
"""
import os

# Set production environment if not already set
if 'FLASK_ENV' not in os.environ:
    os.environ['FLASK_ENV'] = 'production'

# Import the Flask application factory
from app import create_app, init_db

# Create the application instance
app = create_app()

# Initialize database if needed
try:
    init_db(app)
except Exception as e:
    app.logger.warning(f"Database initialization skipped or failed: {e}")

# This is the WSGI application object
application = app

if __name__ == "__main__":
    app.run(debug=True, host='0.0.0.0', port=5000)
