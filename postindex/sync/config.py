"""
Plugin Configuration for postindex.

The whole configuration is built once at startup, either from a YAML file
(the ``semantic_search`` section of a site config, or a standalone file) or
from environment variables, and then handed to the engine constructors.
Nothing in the engines looks configuration up on its own.
"""

import os
import yaml
from pathlib import Path
from typing import List, Optional, Union, Any, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import (
    CONFIG_SECTION, DEFAULT_SYNC_FIELDS, DEFAULT_TIMEOUT, DEFAULT_RELATED_LIMIT,
    DEFAULT_MIN_SCORE, DEFAULT_QUERY_FIELDS, DEFAULT_CONCURRENCY, DEFAULT_BATCH_DELAY,
    DEFAULT_RETRIES, DEFAULT_RETRY_BASE_DELAY, resolve_env_var
)
from .error_tracker import ConfigurationError


class SyncSettings(BaseModel):
    """Settings for the incremental document sync."""
    model_config = ConfigDict(populate_by_name=True)

    fields: List[str] = Field(default_factory=lambda: list(DEFAULT_SYNC_FIELDS), description="Fields fingerprinted and sent to the remote store")
    auto: bool = Field(default=True, description="Sync automatically after each build")
    retries: int = Field(default=0, description="In-pass retries for transient upsert/delete failures")
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, alias="retryBaseDelay", description="Linear backoff step in seconds")

    @field_validator('fields')
    @classmethod
    def validate_fields(cls, v):
        if not v:
            raise ValueError('sync fields must not be empty')
        return v

    @field_validator('retries')
    @classmethod
    def validate_retries(cls, v):
        if v < 0:
            raise ValueError('retries must be >= 0')
        return v


class RelatedSettings(BaseModel):
    """Settings for related posts computation."""
    model_config = ConfigDict(populate_by_name=True)

    enable: bool = Field(default=True, description="Whether related posts are computed")
    limit: int = Field(default=DEFAULT_RELATED_LIMIT, description="Maximum related posts per post")
    min_score: float = Field(default=DEFAULT_MIN_SCORE, alias="minScore", description="Minimum relevance score")
    query_fields: List[str] = Field(default_factory=lambda: list(DEFAULT_QUERY_FIELDS), alias="queryFields", description="Fields used to build the search query")
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, description="Simultaneous in-flight searches")
    delay: float = Field(default=DEFAULT_BATCH_DELAY, description="Pause between batches in seconds")
    retries: int = Field(default=DEFAULT_RETRIES, description="Retries per post on transient errors")
    retry_base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, alias="retryBaseDelay", description="Linear backoff step in seconds")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Per-search timeout in seconds")

    @field_validator('limit', 'concurrency')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError('must be >= 1')
        return v

    @field_validator('delay', 'retries', 'retry_base_delay')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError('must be >= 0')
        return v

    @field_validator('min_score')
    @classmethod
    def validate_min_score(cls, v):
        if not 0.0 <= v <= 1.0:
            raise ValueError('min_score must be between 0 and 1')
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError('timeout must be > 0')
        return v


class PluginConfig(BaseModel):
    """Main configuration, one instance per process."""
    model_config = ConfigDict(populate_by_name=True)

    enable: bool = Field(default=True, description="Master switch")
    endpoint: Optional[str] = Field(None, description="Remote store base URL")
    writer_key: Optional[str] = Field(None, alias="writerKey", description="Key used for upserts and deletes")
    reader_key: Optional[str] = Field(None, alias="readerKey", description="Key used for searches")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Request timeout in seconds")
    state_dir: str = Field(default=".", alias="stateDir", description="Directory holding the state and cache files")

    sync: SyncSettings = Field(default_factory=SyncSettings)
    related: RelatedSettings = Field(default_factory=RelatedSettings, alias="relatedPosts")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(None, description="Log file path")
    log_format: str = Field(default="text", description="Log output format (text or json)")

    @field_validator('endpoint')
    @classmethod
    def normalize_endpoint(cls, v):
        if v:
            v = v.rstrip('/')
        return v or None

    @field_validator('writer_key', 'reader_key')
    @classmethod
    def resolve_keys(cls, v):
        return resolve_env_var(v) or None

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        if v not in ('text', 'json'):
            raise ValueError('log_format must be "text" or "json"')
        return v

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PluginConfig':
        """Build from a mapping, accepting a wrapping ``semantic_search`` section."""
        data = dict(data or {})
        if CONFIG_SECTION in data and isinstance(data[CONFIG_SECTION], dict):
            data = dict(data[CONFIG_SECTION])
        # Site configs spell the related section related_posts
        if 'related_posts' in data and 'related' not in data:
            data['related'] = data.pop('related_posts')
        try:
            return cls.model_validate(data)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'PluginConfig':
        """Load configuration from YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse configuration file {path}: {e}")

        return cls.from_dict(data)

    @classmethod
    def from_environment(cls) -> 'PluginConfig':
        """
        Create configuration from environment variables.

        Reads POSTINDEX_ENDPOINT, POSTINDEX_WRITER_KEY, POSTINDEX_READER_KEY,
        POSTINDEX_STATE_DIR and POSTINDEX_LOG_LEVEL. Everything else keeps its
        default.
        """
        data: Dict[str, Any] = {}
        for env_var, key in (
            ('POSTINDEX_ENDPOINT', 'endpoint'),
            ('POSTINDEX_WRITER_KEY', 'writer_key'),
            ('POSTINDEX_READER_KEY', 'reader_key'),
            ('POSTINDEX_STATE_DIR', 'state_dir'),
            ('POSTINDEX_LOG_LEVEL', 'log_level'),
        ):
            value = os.getenv(env_var)
            if value:
                data[key] = value
        return cls.from_dict(data)

    @property
    def can_write(self) -> bool:
        return bool(self.enable and self.endpoint and self.writer_key)

    @property
    def can_read(self) -> bool:
        return bool(self.enable and self.endpoint and self.reader_key)
