"""Routes package for ChoreMint API endpoints."""

# Import blueprints
from .points import points_bp
from .goals import goals_bp
from .evolution import evolution_bp

# Export all blueprints
__all__ = ['points_bp', 'goals_bp', 'evolution_bp']
