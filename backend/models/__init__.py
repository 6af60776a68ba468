"""
Backend models package.
"""

from backend.models.request import NetworkDesignRequest, ProjectConfigIn, TerrainIn
from backend.models.canonical import NetworkDesignResponse

__all__ = [
    "NetworkDesignRequest",
    "ProjectConfigIn",
    "TerrainIn",
    "NetworkDesignResponse",
]
