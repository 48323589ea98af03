"""
WSGI entry point and Flask-Migrate / Alembic app.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi seed-system-admin --email admin@example.com --password ...
"""

from taskhub import create_app

app = create_app()
