"""Template provider: loads static game template files by template kind."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from gameforge.core.errors import TemplateNotFoundError
from gameforge.jobs.models import TemplateKind

logger = logging.getLogger(__name__)

TEMPLATE_FILES = ("index.html", "template.js", "README.md")


@dataclass(frozen=True)
class TemplateFiles:
  html: str
  js: str
  readme: str


@dataclass(frozen=True)
class TemplateInfo:
  kind: TemplateKind
  name: str
  description: str
  mechanics: tuple[str, ...]


def describe_template(kind: TemplateKind) -> TemplateInfo:
  match kind:
    case TemplateKind.PLATFORMER:
      return TemplateInfo(kind, "Platformer", "Classic jump-and-run gameplay with platforms and enemies", ("Jumping", "Running", "Collecting", "Enemy Avoidance"))
    case TemplateKind.PUZZLE:
      return TemplateInfo(kind, "Puzzle", "Logic-based challenges and pattern matching", ("Match-3", "Tile Swapping", "Combo System"))
    case TemplateKind.SHOOTER:
      return TemplateInfo(kind, "Shooter", "Action-oriented shooting mechanics", ("Shooting", "Dodging", "Power-ups", "Enemy Waves"))
    case TemplateKind.RACING:
      return TemplateInfo(kind, "Racing", "Speed-based competitive gameplay", ("Acceleration", "Drifting", "Obstacles", "Time Trial"))
    case TemplateKind.CUSTOM:
      return TemplateInfo(kind, "Custom", "Fully AI-generated from scratch", ("Anything You Imagine",))


class TemplateProvider:
  """Read template files from ``<root>/<kind>/`` and keep them in memory."""

  def __init__(self, root: str | Path) -> None:
    self._root = Path(root)
    self._cache: dict[TemplateKind, TemplateFiles] = {}

  def _read(self, kind: TemplateKind) -> TemplateFiles:
    directory = self._root / kind.value
    paths = [directory / name for name in TEMPLATE_FILES]
    missing = [path.name for path in paths if not path.is_file()]
    if missing:
      raise TemplateNotFoundError(f"Template '{kind.value}' is missing {', '.join(missing)} under {directory}")
    html, js, readme = (path.read_text(encoding="utf-8") for path in paths)
    return TemplateFiles(html=html, js=js, readme=readme)

  async def load_template(self, kind: TemplateKind) -> TemplateFiles:
    cached = self._cache.get(kind)
    if cached is not None:
      return cached
    files = await run_in_threadpool(self._read, kind)
    self._cache[kind] = files
    logger.info("Loaded template %s", kind.value)
    return files
