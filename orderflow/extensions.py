"""
orderflow/extensions.py

Extension singletons shared by models, services and blueprints.

- db: Flask-SQLAlchemy with named constraints, so Flask-Migrate can emit
  reproducible ALTERs for the counters and status foreign keys.
- login_manager: staff sessions. The portal never uses it (token auth).
- csrf: protects the session-authenticated JSON routes.

All of them are bound to the app in create_app().
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect
from sqlalchemy import MetaData

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

db = SQLAlchemy(metadata=MetaData(naming_convention=NAMING_CONVENTION))
migrate = Migrate(render_as_batch=True)

login_manager = LoginManager()
# API clients: no redirect, unauthorized_handler answers JSON
login_manager.login_view = None

csrf = CSRFProtect()
