"""Load a local ``.env`` before configuration is read.

The generation API key, Firestore project and rate-limit overrides usually
live in a ``.env`` during development. Shell variables always win
(python-dotenv ``override=False``).

Lookup order:
1. ``TALKGUARD_ENV_FILE`` if set
2. ``.env`` in the current working directory
3. ``.env`` beside the nearest parent ``pyproject.toml``
"""

import os
from pathlib import Path
from typing import Iterator, Optional

from dotenv import load_dotenv

ENV_FILE_VARIABLE = "TALKGUARD_ENV_FILE"


def _candidates(filename: str) -> Iterator[Path]:
    explicit = os.getenv(ENV_FILE_VARIABLE)
    if explicit:
        yield Path(explicit)
    cwd = Path.cwd()
    yield cwd / filename
    for parent in cwd.parents:
        if (parent / "pyproject.toml").exists():
            yield parent / filename
            break


def find_env_file(filename: str = ".env") -> Optional[Path]:
    for candidate in _candidates(filename):
        if candidate.is_file():
            return candidate
    return None


def load_env(env_file: Optional[str] = None, override: bool = False, verbose: bool = False) -> bool:
    """Load variables from ``env_file`` or the first file found.

    Returns:
        True if a file was loaded.
    """
    path = Path(env_file) if env_file else find_env_file()
    if path is None or not path.is_file():
        if verbose:
            print("[env] No .env file found, using environment variables only")
        return False

    if verbose:
        print(f"[env] Loading environment from: {path}")
    load_dotenv(dotenv_path=path, override=override)
    return True
