"""
groundchat — streaming chat client with search-grounded answers.

Talks to Gemini (with native Google Search grounding) and any
OpenAI-compatible endpoint, augmenting the latter with external web search.
"""

from pathlib import Path
import tomllib
from importlib.metadata import version, PackageNotFoundError

def _resolve_version() -> str:
    """Resolve the groundchat version.

    Priority:
    1) Local source checkout version from pyproject.toml (if present)
    2) Installed package metadata
    3) Safe fallback
    """
    try:
        root = Path(__file__).resolve().parent.parent
        pyproject = root / "pyproject.toml"
        if pyproject.exists():
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
            ver = data.get("project", {}).get("version")
            if isinstance(ver, str) and ver.strip():
                return ver.strip()
    except (OSError, tomllib.TOMLDecodeError):
        pass

    try:
        return version("groundchat")
    except PackageNotFoundError:
        return "0.0.0"


__version__ = _resolve_version()
