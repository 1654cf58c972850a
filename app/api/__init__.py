# app/api/__init__.py
# Import the router
from app.api.routes import router
