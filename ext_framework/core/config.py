from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, validator
from pydantic_settings import BaseSettings


class FrameworkConfig(BaseModel):
    """Read-only configuration snapshot handed to the loader and to plugins"""
    plugin_base_path: str = Field(..., description="Directory holding one sub-directory per plugin")
    environment: str = Field(default="development", description="Deployment environment name")
    database_name: str = Field(default="ext_framework", description="Database used for plugin schemas")
    load_timeout_seconds: Optional[float] = Field(default=None, description="Deadline per top-level plugin load")
    extra: Dict[str, Any] = Field(default_factory=dict, description="Free-form settings passed to plugins")


class Settings(BaseSettings):
    # Plugins
    plugin_base_path: str = Field(default="plugins", description="Directory holding one sub-directory per plugin")
    plugins: List[str] = Field(default_factory=list, description="Plugin ids loaded at startup, in order")
    fail_fast: bool = Field(default=True, description="Abort startup when a plugin fails to load")
    load_timeout_seconds: Optional[float] = Field(default=30.0, gt=0, description="Deadline per top-level plugin load")
    route_prefix: str = Field(default="/plugin", description="URL prefix plugin routers are mounted under")

    # Environment
    environment: str = "development"

    # Database
    mongodb_url: str = Field(default="mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field(default="ext_framework", min_length=1, description="MongoDB database name")

    # App Settings
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: Optional[str] = None

    @validator('log_level')
    def validate_log_level(cls, v):
        """Normalise and validate the log level name"""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level

    @validator('route_prefix')
    def validate_route_prefix(cls, v):
        if v and not v.startswith("/"):
            v = "/" + v
        return v.rstrip("/")

    def to_framework_config(self) -> FrameworkConfig:
        """Build the snapshot handed to the plugin loader"""
        return FrameworkConfig(
            plugin_base_path=self.plugin_base_path,
            environment=self.environment,
            database_name=self.database_name,
            load_timeout_seconds=self.load_timeout_seconds,
        )

    class Config:
        env_file = ".env"
        env_prefix = "EXT_"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
