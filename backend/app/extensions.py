"""
Shared Flask extensions

Created unbound here and attached to the app in create_app, so models and
services can import them without importing the application.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Toll accounts, sync logs, sync queue and the fleet tables the queue targets
db = SQLAlchemy()

# Schema migrations (flask db upgrade)
migrate = Migrate()
