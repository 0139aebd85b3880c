# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Notifier registry key in app.extensions (see services/notification_service.py)
NOTIFIERS_KEY = "savdo_notifiers"
