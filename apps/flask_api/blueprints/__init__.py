"""Flask API Blueprints package.

- health: Health check and metadata endpoints
- sites: Site, sample, dataset and preload endpoints
"""

from apps.flask_api.blueprints.health import health_bp
from apps.flask_api.blueprints.sites import sites_bp

__all__ = [
    "health_bp",
    "sites_bp",
]
