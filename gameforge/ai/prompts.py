"""Prompt text for the code, metadata, and sprite generation calls."""

from __future__ import annotations

from gameforge.ai.models import GenerationRequest
from gameforge.jobs.models import TemplateKind

_VISUAL_RULES = """- CRITICAL: Use ONLY this.add.rectangle() and this.add.text() for fallback visuals
- Load sprites only through the ASSETS object provided by the page
- Do NOT use placeholder base64 images or external URLs
- Complete preload, create, update functions
Output ONLY valid JavaScript, no explanations."""


def _system_prompt(genre: str, features: list[str]) -> str:
  bullet_list = "\n".join(f"- {feature}" for feature in features)
  return f"You are an expert Phaser.js game developer. Generate a complete {genre} game with:\n- Phaser 3 syntax\n{bullet_list}\n{_VISUAL_RULES}"


def system_prompt_for(template: TemplateKind) -> str:
  match template:
    case TemplateKind.PLATFORMER:
      return _system_prompt("platformer", ["Player movement (arrow keys/WASD)", "Jump mechanics", "Platforms and obstacles", "Collision detection", "Score system"])
    case TemplateKind.PUZZLE:
      return _system_prompt("puzzle", ["Grid-based or logic puzzle mechanics", "On-screen input instructions", "Level reset or undo", "Progress tracking"])
    case TemplateKind.SHOOTER:
      return _system_prompt("top-down shooter", ["Player movement with arrow keys or WASD", "Shooting controls (spacebar or mouse)", "Enemy waves with increasing difficulty", "Health and score tracking"])
    case TemplateKind.RACING:
      return _system_prompt("racing", ["Vehicle control with arrow keys (accelerate, brake, steer)", "Track with checkpoints or a lap counter", "Opponent or time-trial mechanics", "HUD with speed and lap information"])
    case TemplateKind.CUSTOM:
      return _system_prompt("custom", ["Mechanics and controls derived from the prompt", "Clear in-scene instructions", "Scoring or objective tracking"])


def code_prompt(request: GenerationRequest) -> str:
  template = TemplateKind.parse(request.template)
  lines = [
    f"Game Template: {template.value}",
    f"Theme: {request.theme}",
    f"Player: {request.player_description}",
    f"Difficulty: {request.difficulty}",
  ]
  if request.mechanics:
    lines.append(f"Mechanics: {', '.join(request.mechanics)}")
  if request.enemies:
    lines.append(f"Enemies: {', '.join(request.enemies)}")
  if request.prompt:
    lines.append(f"User Prompt: {request.prompt}")
  lines.append("Produce fully-functional Phaser 3 code inside a single ```javascript``` block.")
  lines.append("Do not include explanations or commentary outside the code block.")
  return "\n".join(lines)


METADATA_SYSTEM_PROMPT = "You are a concise game design assistant. Return compact JSON describing the game without additional commentary."


def metadata_prompt(request: GenerationRequest, code: str) -> str:
  template = TemplateKind.parse(request.template)
  return "\n".join(
    [
      "Summarize the following Phaser 3 game code and provide gameplay metadata.",
      "Respond strictly in JSON with the shape:",
      '{ "title": string, "description": string, "difficulty": "easy"|"medium"|"hard", "estimatedPlayTime": string, "controls": { "movement": string, "jump"?: string, "action"?: string } }',
      "Avoid newline characters inside values unless necessary.",
      "",
      f"Template: {template.value}",
      f"Theme: {request.theme}",
      "",
      "Phaser Code:",
      code,
    ]
  )


STYLE_GUIDE: dict[str, str] = {
  "pixel-art": "in pixel art style, 16-bit retro game aesthetic, clean pixels, limited color palette",
  "hand-drawn": "in hand-drawn style, sketchy and artistic, with visible brush strokes",
  "realistic": "in realistic style, detailed and photorealistic, with proper lighting and shadows",
  "cartoon": "in cartoon style, vibrant colors, exaggerated features, family-friendly",
}


def sprite_prompt(kind: str, theme: str, description: str, style: str) -> str:
  guide = STYLE_GUIDE.get(style, "in vibrant game art style")
  return (
    f"Create a {kind} sprite for a {theme} themed 2D game.\n"
    f"Description: {description}\n"
    f"Style: {guide}\n"
    "The sprite should be on a transparent or solid background, centered, with clear silhouette.\n"
    "Full body view, facing forward or slightly to the side."
  )


def background_prompt(theme: str, style: str) -> str:
  return (
    f"Create a seamless, tileable game background for a {theme} themed game.\n"
    f"Style: {STYLE_GUIDE.get(style, 'vibrant and colorful')}.\n"
    "Make it visually appealing but not too busy, so game elements remain visible."
  )


ASSET_STYLE_DESCRIPTIONS: dict[str, str] = {
  "pixel-art": "8-bit pixel art, retro gaming, crisp pixels",
  "cartoon": "2D cartoon, bold outlines, vibrant colors",
  "2d-vector": "Clean 2D vector art, flat colors, modern",
  "hand-drawn": "Hand-drawn illustration, sketchy lines, artistic",
}

SPRITE_PRESETS: dict[str, dict[str, str]] = {
  "player": {
    "human": "Hero character, friendly expression, ready to play",
    "robot": "Cute robot companion, glowing eyes, metallic body",
    "animal": "Charming animal hero, expressive eyes, whimsical",
  },
  "enemy": {
    "basic": "Regular enemy, intimidating but simple design",
    "flying": "Flying enemy, wings or jet boosters, agile",
    "boss": "Boss enemy, larger scale, detailed armor",
  },
  "platform": {
    "grass": "Grassy platform tile, lush green top, earthy sides",
    "stone": "Stone platform tile, rugged texture, heavy",
    "metal": "Metal platform tile, industrial, riveted",
  },
  "collectible": {
    "coin": "Shiny coin collectible, gold, glimmering",
    "gem": "Precious gem collectible, vibrant colors",
    "star": "Magical star collectible, glowing aura",
  },
  "background": {
    "forest": "Forest backdrop, layered trees, soft lighting",
    "city": "City skyline backdrop, neon lights, futuristic",
    "space": "Outer space backdrop, stars and nebulae",
  },
}


def template_asset_subjects(template: TemplateKind) -> tuple[tuple[str, str], ...]:
  """Return the (asset key, subject) pairs a template needs; custom games have no fixed set."""
  match template:
    case TemplateKind.PLATFORMER:
      return (
        ("player", SPRITE_PRESETS["player"]["human"]),
        ("enemy", SPRITE_PRESETS["enemy"]["basic"]),
        ("platform", SPRITE_PRESETS["platform"]["grass"]),
        ("collectible", SPRITE_PRESETS["collectible"]["coin"]),
      )
    case TemplateKind.SHOOTER:
      return (
        ("player", "Top-down ship hero, aerodynamic design, glowing engine"),
        ("enemy", SPRITE_PRESETS["enemy"]["flying"]),
        ("bullet", "Projectile bullet, energy trail, glowing effect"),
      )
    case TemplateKind.PUZZLE:
      return (
        ("block_red", "Red puzzle block tile, glossy finish, soft shadows"),
        ("block_blue", "Blue puzzle block tile, glossy finish, soft shadows"),
        ("block_green", "Green puzzle block tile, glossy finish, soft shadows"),
      )
    case TemplateKind.RACING:
      return (
        ("car", "Player race car, sleek silhouette, vibrant paint job"),
        ("track", "Race track segment, striped edges, dynamic perspective"),
        ("obstacle", "Racing obstacle, hazard cone or barrier, high contrast"),
      )
    case TemplateKind.CUSTOM:
      return ()


def asset_prompt(subject: str, style: str, background: str) -> str:
  description = ASSET_STYLE_DESCRIPTIONS.get(style, ASSET_STYLE_DESCRIPTIONS["cartoon"])
  return f"{description}. Subject: {subject}. {background} background. Simple, clean, game-ready asset. No text, no UI. Centered composition. High contrast."
