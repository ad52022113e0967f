"""
Root pytest configuration for the Django project.

Sets environment defaults so the test suite runs without a .env file or a
PostgreSQL server, then sets Django up. App-wide fixtures live in
app/conftest.py; app-specific fixtures in each app's tests/conftest.py.

Any variable already present in the environment wins, so the suite can be
pointed at PostgreSQL with DATABASE_URL.
"""

import os

import django

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")
os.environ.setdefault("SECURE_SSL_REDIRECT", "False")
os.environ.setdefault("LOG_LEVEL", "WARNING")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()
