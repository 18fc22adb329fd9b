"""Plugin admin schemas"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum


class PluginLogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class PluginConfigUpdate(BaseModel):
    config: Dict[str, Any]


class GalleryInstallRequest(BaseModel):
    plugin_name: str = Field(..., min_length=1, max_length=100)
    acknowledge_code_execution: bool = False


class PluginActionRequest(BaseModel):
    params: Dict[str, Any] = {}


class PluginResponse(BaseModel):
    """Plugin row with password config fields masked"""
    id: int
    name: str
    display_name: str
    version: str
    api_version: str
    description: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None
    source: str
    enabled: bool
    installed: bool
    loaded: bool = False
    permissions: List[str] = []
    hooks: List[str] = []
    config: Dict[str, Any] = {}
    config_schema: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PluginLogPage(BaseModel):
    logs: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
