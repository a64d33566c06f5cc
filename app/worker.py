"""
Celery worker entry point for background billing reconciliation.

Usage (dev):
  export REDIS_URL=redis://localhost:6379/0
  celery -A app.worker worker -l info
"""
from app import create_app

flask_app = create_app()
celery_app = flask_app.extensions["celery"]
