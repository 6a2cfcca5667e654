"""
Middleware Configuration for the FastAPI Application
"""

from typing import Any, Dict, List

from fastapi.middleware.cors import CORSMiddleware

# --- CORS Middleware Configuration ---
# The default origin list from settings is ["*"], which is only suitable for
# local development. Set INTUNE_PUBLISHER_CORS_ORIGINS to the front end's
# domain(s) before exposing the API.


def cors_middleware_config(origins: List[str]) -> Dict[str, Any]:
    return {
        "middleware_class": CORSMiddleware,
        "allow_origins": origins,
        "allow_credentials": "*" not in origins,  # credentials cannot be combined with a wildcard origin
        "allow_methods": ["GET", "POST"],
        "allow_headers": ["*"],
    }
