from flask import Blueprint

bp = Blueprint("embed", __name__)

# Importing is what registers the routes
from . import routes
