"""
Configuration for the requirements canvas service.

Settings resolve environment variable → hard-coded default. A ``.env`` file
at the project root is loaded first; variables already set in the shell win.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .editor_session import DEFAULT_MAX_SESSIONS
from .persistence import (
    DocumentStore, JSONFileDocumentStore, MemoryDocumentStore, SQLiteDocumentStore
)

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_DATA_DIR = os.path.join(_PROJECT_ROOT, 'data')
ENV_FILE = os.path.join(_PROJECT_ROOT, '.env')

STORE_BACKENDS = ('sqlite', 'json', 'memory')


def load_env_file(path: Optional[str] = None) -> bool:
    """Load ``KEY=value`` lines into the environment without overriding it.

    Returns whether the file defined any variables.
    """
    return load_dotenv(path or ENV_FILE, override=False)


def resolve_setting(env_var: str, default: str) -> str:
    """Environment variable if set and non-blank, otherwise the default."""
    env_val = os.environ.get(env_var, '').strip()
    if env_val:
        return env_val
    return default


def _int_setting(env_var: str, default: int) -> int:
    value = resolve_setting(env_var, str(default))
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{env_var} must be an integer, got {value!r}")


@dataclass
class EditorSettings:
    """Effective service configuration."""
    store_backend: str = 'sqlite'
    db_path: str = os.path.join(_DATA_DIR, 'documents.db')
    data_dir: str = os.path.join(_DATA_DIR, 'documents')
    host: str = '0.0.0.0'
    port: int = 5002
    log_level: str = 'INFO'
    max_sessions: int = DEFAULT_MAX_SESSIONS

    @classmethod
    def from_env(cls) -> 'EditorSettings':
        defaults = cls()
        backend = resolve_setting('UCD_CANVAS_STORE', defaults.store_backend).lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(
                f"UCD_CANVAS_STORE must be one of {', '.join(STORE_BACKENDS)}, got {backend!r}"
            )
        port_number = _int_setting('UCD_CANVAS_PORT', defaults.port)
        max_sessions = _int_setting('UCD_CANVAS_MAX_SESSIONS', defaults.max_sessions)
        if max_sessions < 1:
            raise ValueError(f"UCD_CANVAS_MAX_SESSIONS must be at least 1, got {max_sessions}")
        return cls(
            store_backend=backend,
            db_path=resolve_setting('UCD_CANVAS_DB_PATH', defaults.db_path),
            data_dir=resolve_setting('UCD_CANVAS_DATA_DIR', defaults.data_dir),
            host=resolve_setting('UCD_CANVAS_HOST', defaults.host),
            port=port_number,
            log_level=resolve_setting('UCD_CANVAS_LOG_LEVEL', defaults.log_level).upper(),
            max_sessions=max_sessions,
        )

    def create_store(self) -> DocumentStore:
        """Build the document store selected by ``store_backend``."""
        if self.store_backend == 'memory':
            return MemoryDocumentStore()
        if self.store_backend == 'json':
            return JSONFileDocumentStore(self.data_dir)
        return SQLiteDocumentStore(self.db_path)


def configure_logging(level: Optional[str] = None):
    """Basic log format for the service entry point."""
    logging.basicConfig(
        level=getattr(logging, (level or 'INFO').upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
