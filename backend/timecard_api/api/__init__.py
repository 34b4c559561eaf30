from flask import Flask
from .extractions import extractions_bp
from .exports import exports_bp

def register_blueprints(app: Flask):
    """Register all API blueprints."""
    app.register_blueprint(extractions_bp)
    app.register_blueprint(exports_bp)
