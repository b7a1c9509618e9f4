# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Keys under app.extensions for the composition-root owned messaging objects.
NOTIFIER_KEY = "refpoints.notifier"
BROADCAST_QUEUE_KEY = "refpoints.broadcast_queue"
