"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-templates
    gunicorn wsgi:app
"""

from bmt import create_app

app = create_app()
