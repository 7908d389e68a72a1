from .auth import auth_bp
from .generate import generate_bp
from .export import export_bp
from .community import community_bp
from .admin import admin_bp
from .payments import payments_bp
from .pages import pages_bp

__all__ = ['auth_bp', 'generate_bp', 'export_bp', 'community_bp', 'admin_bp', 'payments_bp', 'pages_bp']
