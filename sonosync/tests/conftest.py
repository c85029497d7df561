import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


TOKEN_ENV_KEYS = [
    'SPOTIFY_ACCESS_TOKEN', 'DEEZER_ARL', 'YOUTUBE_ACCESS_TOKEN', 'APPLE_MUSIC_TOKEN',
    'SONOSYNC_TOKENS_FILE',
]


@pytest.fixture(autouse=True)
def _clear_provider_tokens_env(tmp_path):
    """Keep provider tokens from a developer .env or tokens.json out of the tests.

    Cleared before each test and restored afterwards, so tests that set
    them explicitly stay deterministic.
    """
    backup = {k: os.environ.get(k) for k in TOKEN_ENV_KEYS}
    for k in TOKEN_ENV_KEYS:
        os.environ.pop(k, None)
    os.environ['SONOSYNC_TOKENS_FILE'] = str(tmp_path / 'absent_tokens.json')
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
