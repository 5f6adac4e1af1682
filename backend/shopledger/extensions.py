# Overview: Flask extension instances for database, migrations and the usage dispatcher.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.usage_dispatch import UsageDispatcher

db = SQLAlchemy()
migrate = Migrate()
usage_dispatcher = UsageDispatcher()
