"""Plugin lifecycle, log, job and data models"""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from cfp.core.database import Base

PLUGIN_SOURCES = ("local", "upload", "gallery")
JOB_STATUSES = ("pending", "running", "completed", "failed")
LOG_LEVELS = ("debug", "info", "warn", "error")


class Plugin(Base):
    """Persisted plugin state. The enabled flag here is authoritative."""

    __tablename__ = "plugins"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    display_name = Column(String(200), nullable=False)
    version = Column(String(50), nullable=False)
    api_version = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    author = Column(String(200), nullable=True)
    homepage = Column(String(500), nullable=True)
    source = Column(String(20), default="local", nullable=False)
    install_path = Column(String(1000), nullable=True)
    enabled = Column(Boolean, default=False, nullable=False)
    installed = Column(Boolean, default=True, nullable=False)
    permissions = Column(JSON, nullable=False, default=list)
    hooks = Column(JSON, nullable=False, default=list)
    config = Column(JSON, nullable=False, default=dict)
    config_schema = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    logs = relationship("PluginLog", back_populates="plugin", cascade="all, delete-orphan")
    jobs = relationship("PluginJob", back_populates="plugin", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("source IN ('local', 'upload', 'gallery')", name='chk_plugin_source'),
    )

    def __repr__(self):
        return f"<Plugin(id={self.id}, name='{self.name}', version='{self.version}', enabled={self.enabled})>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "display_name": self.display_name,
            "version": self.version,
            "api_version": self.api_version,
            "description": self.description,
            "author": self.author,
            "homepage": self.homepage,
            "source": self.source,
            "enabled": self.enabled,
            "installed": self.installed,
            "permissions": list(self.permissions or []),
            "hooks": list(self.hooks or []),
            "config": dict(self.config or {}),
            "config_schema": self.config_schema,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class PluginLog(Base):
    __tablename__ = "plugin_logs"

    id = Column(Integer, primary_key=True, index=True)
    plugin_id = Column(Integer, ForeignKey("plugins.id", ondelete="CASCADE"), nullable=False)
    level = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    metadata_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    plugin = relationship("Plugin", back_populates="logs")

    __table_args__ = (
        Index("idx_plugin_logs_plugin_created", "plugin_id", "created_at"),
        Index("idx_plugin_logs_level", "level"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "plugin_id": self.plugin_id,
            "level": self.level,
            "message": self.message,
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PluginJob(Base):
    """Background job enqueued by a plugin"""

    __tablename__ = "plugin_jobs"

    id = Column(Integer, primary_key=True, index=True)
    plugin_id = Column(Integer, ForeignKey("plugins.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), default="pending", nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    priority = Column(Integer, default=100, nullable=False)
    run_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    locked_at = Column(DateTime(timezone=True), nullable=True)
    locked_by = Column(String(100), nullable=True)
    result = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    plugin = relationship("Plugin", back_populates="jobs")

    __table_args__ = (
        Index("idx_plugin_jobs_status_run_at", "status", "run_at"),
        Index("idx_plugin_jobs_plugin_status", "plugin_id", "status"),
        CheckConstraint(
            "status IN ('pending', 'running', 'completed', 'failed')",
            name='chk_plugin_job_status'
        ),
        CheckConstraint('attempts >= 0', name='chk_plugin_job_attempts'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "plugin_id": self.plugin_id,
            "type": self.type,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "priority": self.priority,
            "run_at": self.run_at.isoformat() if self.run_at else None,
            "locked_at": self.locked_at.isoformat() if self.locked_at else None,
            "locked_by": self.locked_by,
            "result": self.result,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class PluginData(Base):
    """Namespaced key/value storage owned by one plugin"""

    __tablename__ = "plugin_data"

    id = Column(Integer, primary_key=True, index=True)
    plugin_id = Column(Integer, ForeignKey("plugins.id", ondelete="CASCADE"), nullable=False)
    namespace = Column(String(100), nullable=False, default="default")
    key = Column(String(255), nullable=False)
    value = Column(Text, nullable=False)
    encrypted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("plugin_id", "namespace", "key", name="uq_plugin_data_key"),
    )
