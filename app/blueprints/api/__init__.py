from flask import Blueprint

bp = Blueprint("api", __name__)

from . import billing  # noqa: E402,F401
