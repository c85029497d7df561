import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from sonosync.domain.entities import Platform, ResolvedCredentials


class ConfigError(Exception):
    """Configuration error."""
    pass


LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')

# Written by an external sign-in flow; override with SONOSYNC_TOKENS_FILE
DEFAULT_TOKENS_FILE = str(Path.home() / '.sonosync' / 'tokens.json')

# Environment variables that carry a ready-to-use token per platform
TOKEN_ENV_VARS = {
    Platform.SPOTIFY: 'SPOTIFY_ACCESS_TOKEN',
    Platform.DEEZER: 'DEEZER_ARL',
    Platform.YOUTUBE: 'YOUTUBE_ACCESS_TOKEN',
    Platform.APPLE: 'APPLE_MUSIC_TOKEN',
}


def _env_int(env: Mapping[str, str], name: str, default: Optional[int]) -> Optional[int]:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ConfigError(f"{name} must be at least 1, got {value}")
    return value


def _env_log_level(env: Mapping[str, str]) -> str:
    level = str(env.get('SONOSYNC_LOG_LEVEL') or 'INFO').strip().upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"SONOSYNC_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    return level


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return str(env.get(name, '')).strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the transfer pipeline."""

    window_size: int = 5
    chunk_size: Optional[int] = None
    require_artist_overlap: bool = False
    log_level: str = 'INFO'
    report_dir: str = 'reports'
    spotify_market: Optional[str] = None
    http_timeout: int = 15
    tokens_file: Optional[str] = DEFAULT_TOKENS_FILE

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from SONOSYNC_* environment variables."""
        env = os.environ if env is None else env
        return cls(
            window_size=_env_int(env, 'SONOSYNC_WINDOW_SIZE', 5),
            chunk_size=_env_int(env, 'SONOSYNC_CHUNK_SIZE', None),
            require_artist_overlap=_env_flag(env, 'SONOSYNC_REQUIRE_ARTIST_OVERLAP'),
            log_level=_env_log_level(env),
            report_dir=env.get('SONOSYNC_REPORT_DIR', 'reports'),
            spotify_market=env.get('SPOTIFY_MARKET') or None,
            http_timeout=_env_int(env, 'SONOSYNC_HTTP_TIMEOUT', 15),
            tokens_file=env.get('SONOSYNC_TOKENS_FILE') or DEFAULT_TOKENS_FILE,
        )


def load_tokens_file(path: Optional[str]) -> Dict[str, Any]:
    """Load a tokens.json file written by an external sign-in flow.

    Both `{"spotify": "token"}` and `{"spotify": {"access_token": "token"}}`
    shapes are accepted. A missing file yields an empty mapping.
    """
    if not path:
        return {}
    tokens_path = Path(path)
    if not tokens_path.exists():
        return {}

    try:
        with open(tokens_path, 'r') as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise ConfigError(f"Failed to load tokens from {tokens_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Tokens file {tokens_path} must contain a JSON object")
    return data


def _token_from_entry(entry: Any) -> Optional[str]:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        return entry.get('access_token') or entry.get('arl') or entry.get('token')
    return None


def resolve_credentials_from_env(env: Optional[Mapping[str, str]] = None,
                                 tokens_file: Optional[str] = None) -> ResolvedCredentials:
    """Resolve per-platform tokens from the environment, then from tokens.json.

    Environment variables win over the file.
    """
    env = os.environ if env is None else env
    file_tokens = load_tokens_file(tokens_file)

    resolved: Dict[str, Optional[str]] = {}
    for platform, var in TOKEN_ENV_VARS.items():
        value = env.get(var)
        if value is None or not str(value).strip():
            entry = file_tokens.get(platform.value)
            if entry is None and platform is Platform.YOUTUBE:
                entry = file_tokens.get('google')
            value = _token_from_entry(entry)
        resolved[platform.value] = value

    return ResolvedCredentials.from_mapping(resolved)


def get_config_summary(settings: Settings, credentials: ResolvedCredentials) -> Dict[str, Any]:
    """Get configuration summary without sensitive data."""
    return {
        'window_size': settings.window_size,
        'chunk_size': settings.chunk_size,
        'require_artist_overlap': settings.require_artist_overlap,
        'report_dir': settings.report_dir,
        'tokens_file': settings.tokens_file,
        'platforms_with_credentials': [p.value for p in credentials.platforms()],
    }
