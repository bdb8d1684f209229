"""
WSGI entry point for the reading planner.

Point the host's WSGI file at this module; it expects the callable to be
named ``application``. Set SECRET_KEY and DATABASE_URL in the environment
before the first request.
"""
import sys
import os

# Make sure the project directory is on the path
project_dir = os.path.dirname(os.path.abspath(__file__))
if project_dir not in sys.path:
    sys.path.insert(0, project_dir)

from app import app as application  # noqa: F401,E402
