"""
salesdocs/extensions.py

Flask extension instances shared by the models, the document core and the
blueprints. They are bound to an app in create_app().

NOTE:
- Importing ``db`` from here (never from the package root) keeps the core
  modules free of circular imports.
- The login manager answers JSON 401s; its handler is registered in
  create_app(), so no login_view is configured.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()

login_manager = LoginManager()
login_manager.session_protection = "strong"

# JSON clients send the token from /auth/csrf-token in the X-CSRFToken header
csrf = CSRFProtect()
