"""
extensions.py — Flask extension singletons.

`db` and `ma` are created unbound here and attached to the app inside
create_app() with init_app(), so test suites can build their own app
instance against a separate database.

    from roomsplit.app.extensions import db, ma

Schema rule: request schemas in app/schemas/ subclass marshmallow.Schema,
never ma.Schema. ma.Schema needs an application context, and the unit
tests in tests/unit/ load schemas without one.
"""

from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

ma = Marshmallow()
