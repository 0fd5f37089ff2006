"""
Rationalization Suggestion Workflow
SQLAlchemy extension instance shared by every model module.

Usage:
    from suggestion_hub.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
