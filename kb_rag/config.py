"""
Configuration - Load .kb-rag.yml into explicit, immutable config objects

The YAML file is read once at the edge (CLI) and turned into dataclasses that
are passed to each component. String values may reference environment
variables as ``${NAME}``; this is the only place environment state is read.

Example .kb-rag.yml:

    project:
      name: Support KB
    database:
      host: 127.0.0.1
      user: bs_user
      password: ${DB_PASSWORD}
      name: bookstack
    embedding:
      provider: openai
      model: text-embedding-3-small
      api_key: ${OPENAI_API_KEY}
    indexing:
      chunk_tokens: 500
      chunk_overlap: 75
      embed_batch_size: 50
    retrieval:
      top_k: 5
      default_audience: agent
      default_status: active
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError

from kb_rag.exceptions import ConfigurationError
from kb_rag.models import SearchLimits

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".kb-rag.yml"
CONFIG_ENV_VAR = "KB_RAG_CONFIG"

DEFAULT_CHUNK_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 75
DEFAULT_EMBED_BATCH_SIZE = 50
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

EMBEDDING_PROVIDERS = ("openai", "ollama")

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 5


@dataclass(frozen=True)
class EmbeddingConfig:
    provider: str = "openai"
    model: str = DEFAULT_EMBEDDING_MODEL
    api_key: Optional[str] = None
    host: Optional[str] = None


@dataclass(frozen=True)
class IndexingConfig:
    chunk_tokens: int = DEFAULT_CHUNK_TOKENS
    chunk_overlap: int = DEFAULT_OVERLAP_TOKENS
    embed_batch_size: int = DEFAULT_EMBED_BATCH_SIZE
    max_concurrent_batches: int = 1


@dataclass(frozen=True)
class RetrievalConfig:
    top_k: int = 5
    candidate_limit: int = 2000
    keyword_limit: int = 200
    term_limit: int = 20
    default_audience: Optional[str] = "agent"
    default_status: Optional[str] = "active"
    reject_dimension_mismatch: bool = False

    def limits(self, top_k: Optional[int] = None) -> SearchLimits:
        return SearchLimits(
            candidate_limit=self.candidate_limit,
            keyword_limit=self.keyword_limit,
            term_limit=self.term_limit,
            top_k=self.top_k if top_k is None else top_k,
        )


@dataclass(frozen=True)
class KBConfig:
    database: DatabaseConfig
    embedding: EmbeddingConfig
    indexing: IndexingConfig = field(default_factory=IndexingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    project_name: str = "Knowledge Base"
    notifications: Dict[str, Any] = field(default_factory=dict)


def expand_env(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """Recursively replace ${NAME} references; unset variables expand to ''"""
    env = os.environ if environ is None else environ
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: env.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: expand_env(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v, env) for v in value]
    return value


def _positive_int(section: Mapping[str, Any], key: str, default: int, minimum: int = 1) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{key} must be >= {minimum}, got {value}")
    return value


def _database_config(section: Mapping[str, Any]) -> DatabaseConfig:
    url = section.get("url")
    if url:
        try:
            make_url(url)
        except ArgumentError as e:
            raise ConfigurationError(f"Invalid database url: {e}") from e
    else:
        user = section.get("user")
        name = section.get("name")
        if not user or not name:
            raise ConfigurationError(
                "database.url or database.user and database.name are required"
            )
        url = URL.create(
            section.get("driver", "mysql+pymysql"),
            username=user,
            password=section.get("password") or None,
            host=section.get("host", "127.0.0.1"),
            port=section.get("port"),
            database=name,
        ).render_as_string(hide_password=False)

    return DatabaseConfig(
        url=url,
        echo=bool(section.get("echo", False)),
        pool_size=_positive_int(section, "pool_size", 5),
    )


def _embedding_config(section: Mapping[str, Any]) -> EmbeddingConfig:
    provider = str(section.get("provider", "openai")).lower()
    if provider not in EMBEDDING_PROVIDERS:
        raise ConfigurationError(
            f"Unknown embedding provider '{provider}' (expected one of {EMBEDDING_PROVIDERS})"
        )

    api_key = section.get("api_key") or None
    if provider == "openai" and not api_key:
        raise ConfigurationError("embedding.api_key is required for the openai provider")

    return EmbeddingConfig(
        provider=provider,
        model=section.get("model") or DEFAULT_EMBEDDING_MODEL,
        api_key=api_key,
        host=section.get("host") or None,
    )


def _indexing_config(section: Mapping[str, Any]) -> IndexingConfig:
    return IndexingConfig(
        chunk_tokens=_positive_int(section, "chunk_tokens", DEFAULT_CHUNK_TOKENS),
        chunk_overlap=_positive_int(section, "chunk_overlap", DEFAULT_OVERLAP_TOKENS, minimum=0),
        embed_batch_size=_positive_int(section, "embed_batch_size", DEFAULT_EMBED_BATCH_SIZE),
        max_concurrent_batches=_positive_int(section, "max_concurrent_batches", 1),
    )


def _retrieval_config(section: Mapping[str, Any]) -> RetrievalConfig:
    defaults = RetrievalConfig()
    return RetrievalConfig(
        top_k=_positive_int(section, "top_k", defaults.top_k),
        candidate_limit=_positive_int(section, "candidate_limit", defaults.candidate_limit),
        keyword_limit=_positive_int(section, "keyword_limit", defaults.keyword_limit),
        term_limit=_positive_int(section, "term_limit", defaults.term_limit),
        default_audience=section.get("default_audience", defaults.default_audience) or None,
        default_status=section.get("default_status", defaults.default_status) or None,
        reject_dimension_mismatch=bool(section.get("reject_dimension_mismatch", False)),
    )


def parse_config(raw: Optional[Mapping[str, Any]]) -> KBConfig:
    """
    Build a KBConfig from an already-expanded configuration mapping

    Raises:
        ConfigurationError: If required connection or credential settings are missing
    """
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Configuration root must be a mapping")

    return KBConfig(
        database=_database_config(raw.get("database") or {}),
        embedding=_embedding_config(raw.get("embedding") or {}),
        indexing=_indexing_config(raw.get("indexing") or {}),
        retrieval=_retrieval_config(raw.get("retrieval") or {}),
        project_name=(raw.get("project") or {}).get("name", "Knowledge Base"),
        notifications=dict(raw.get("notifications") or {}),
    )


def find_config_file(config_path: Optional[str] = None) -> Path:
    """
    Locate the configuration file

    An explicit path wins, then $KB_RAG_CONFIG, then .kb-rag.yml in the
    current directory or up to five parent directories.
    """
    if config_path:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        return path

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return find_config_file(env_path)

    search_path = Path.cwd()
    for _ in range(6):
        candidate = search_path / CONFIG_FILENAME
        if candidate.exists():
            return candidate
        if search_path.parent == search_path:
            break
        search_path = search_path.parent

    raise ConfigurationError(
        f"{CONFIG_FILENAME} not found. Create it in your project root "
        f"or set {CONFIG_ENV_VAR}."
    )


def load_config(config_path: Optional[str] = None) -> KBConfig:
    """Find, read, expand and parse the project configuration"""
    path = find_config_file(config_path)
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse {path}: {e}") from e

    logger.debug(f"Loaded configuration from {path}")
    return parse_config(expand_env(raw))
