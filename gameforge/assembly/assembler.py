"""Combine a template, generated code, and sprites into a zipped game package."""

from __future__ import annotations

import html
import io
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx
import pyzipper

from gameforge.ai.models import GameMetadata, SpriteSet
from gameforge.assembly.templates import TemplateFiles, describe_template
from gameforge.jobs.models import TemplateKind
from gameforge.utils.concurrency import gather_or_cancel

logger = logging.getLogger(__name__)

PACKAGE_VERSION = "1.0.0"

# Arcade physics per difficulty, injected as the template's physics block.
_PHYSICS_BY_DIFFICULTY: dict[str, dict[str, object]] = {
  "easy": {"gravity": {"y": 250}, "debug": False},
  "medium": {"gravity": {"y": 300}, "debug": False},
  "hard": {"gravity": {"y": 380}, "debug": False},
}


@dataclass(frozen=True)
class AssemblyInput:
  template: TemplateKind
  files: TemplateFiles
  code: str
  sprites: SpriteSet
  metadata: GameMetadata
  theme: str
  difficulty: str
  author: str
  mechanics: list[str] = field(default_factory=list)
  enemies: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AssembledGame:
  files: dict[str, bytes]

  @property
  def total_size(self) -> int:
    return sum(len(content) for content in self.files.values())


def _sprite_paths(sprites: SpriteSet) -> dict[str, str]:
  paths = {"assets/player.png": sprites.player.url, "assets/background.png": sprites.background.url}
  for index, enemy in enumerate(sprites.enemies):
    paths[f"assets/enemy{index}.png"] = enemy.url
  return paths


def render_script(parts: AssemblyInput) -> str:
  script = parts.files.js
  script = script.replace("[PLAYER_SPRITE_PATH]", "assets/player.png")
  script = script.replace("[BG_SPRITE_PATH]", "assets/background.png")
  enemy_paths = ", ".join(f"'assets/enemy{index}.png'" for index in range(len(parts.sprites.enemies)))
  script = script.replace("[ENEMY_SPRITE_PATHS]", f"[{enemy_paths}]")
  script = script.replace("[PHYSICS_CODE]", json.dumps(_PHYSICS_BY_DIFFICULTY.get(parts.difficulty, _PHYSICS_BY_DIFFICULTY["medium"])))
  level = {"theme": parts.theme, "difficulty": parts.difficulty, "mechanics": parts.mechanics}
  script = script.replace("// [LEVEL_CODE]", f"const GAME_LEVEL = {json.dumps(level)};")
  script = script.replace("// [ENEMY_LOGIC_CODE]", f"const GAME_ENEMIES = {json.dumps(parts.enemies)};")
  return script.replace("// [PLAYER_LOGIC_CODE]", parts.code)


def render_html(parts: AssemblyInput) -> str:
  title = html.escape(parts.metadata.title)
  meta_tags = "\n".join(
    [
      f'    <meta name="description" content="{html.escape(parts.metadata.description)}">',
      f'    <meta name="author" content="{html.escape(parts.author)}">',
      f'    <meta name="generator" content="gameforge {PACKAGE_VERSION}">',
    ]
  )
  document = parts.files.html.replace("[GAME_TITLE]", title)
  return document.replace("</head>", f"{meta_tags}\n  </head>", 1)


def render_readme(parts: AssemblyInput, *, created_at: str) -> str:
  info = describe_template(parts.template)
  controls = parts.metadata.controls
  lines = [
    parts.files.readme.rstrip(),
    "",
    "## About This Game",
    "",
    f"- **Title:** {parts.metadata.title}",
    f"- **Template:** {info.name}",
    f"- **Theme:** {parts.theme}",
    f"- **Difficulty:** {parts.difficulty}",
    f"- **Estimated play time:** {parts.metadata.estimated_play_time}",
    f"- **Created:** {created_at}",
    "",
    "## Controls",
    "",
    f"- Movement: {controls.movement}",
  ]
  if controls.jump:
    lines.append(f"- Jump: {controls.jump}")
  if controls.action:
    lines.append(f"- Action: {controls.action}")
  return "\n".join(lines) + "\n"


def render_package_json(parts: AssemblyInput) -> str:
  slug = "-".join(parts.metadata.title.lower().split()) or parts.template.value
  manifest = {
    "name": slug,
    "version": PACKAGE_VERSION,
    "description": parts.metadata.description,
    "author": parts.author,
    "scripts": {"start": "npx http-server . -p 8080"},
    "keywords": ["game", "phaser", parts.template.value, parts.theme],
  }
  return json.dumps(manifest, indent=2) + "\n"


class GameAssembler:
  """Build package files and zip them; sprite images are downloaded over HTTP."""

  def __init__(self, http_client: httpx.AsyncClient) -> None:
    self._http = http_client

  async def _download(self, url: str) -> bytes:
    response = await self._http.get(url)
    response.raise_for_status()
    return response.content

  async def assemble(self, parts: AssemblyInput) -> AssembledGame:
    created_at = datetime.now(UTC).isoformat()
    sprite_paths = _sprite_paths(parts.sprites)
    images = await gather_or_cancel(*(self._download(url) for url in sprite_paths.values()))

    files: dict[str, bytes] = {
      "index.html": render_html(parts).encode("utf-8"),
      "game.js": render_script(parts).encode("utf-8"),
      "README.md": render_readme(parts, created_at=created_at).encode("utf-8"),
      "package.json": render_package_json(parts).encode("utf-8"),
    }
    files.update(zip(sprite_paths.keys(), images, strict=True))
    assembled = AssembledGame(files=files)
    logger.info("Assembled %s game with %s files (%s bytes)", parts.template.value, len(files), assembled.total_size)
    return assembled

  @staticmethod
  def create_zip(assembled: AssembledGame) -> bytes:
    buffer = io.BytesIO()
    with pyzipper.ZipFile(buffer, mode="w", compression=pyzipper.ZIP_DEFLATED) as archive:
      for name, content in assembled.files.items():
        archive.writestr(name, content)
    return buffer.getvalue()
