"""Client for the external ASCII-art generator (OpenAI-compatible chat completions).

The service is asked for JSON only. Frames are read from ``frames`` (a list),
``art`` or ``tapestry`` (single strings); markdown fences are stripped. A
truncated ``art`` payload is rescued when possible.

Every transport or protocol failure surfaces as ``ArtServiceError``; callers
decide how to degrade.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

import requests

from castaway.logging_utils import get_logger

log = get_logger("art")

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
MAX_RESCUED_CHARS = 2000

_FENCE_RE = re.compile(r"```(?:ascii|json)?\s*", re.IGNORECASE)
_ART_RESCUE_RE = re.compile(r'"art"\s*:\s*"(.*?)(?:"|$)', re.DOTALL)
_SYMBOL_RESCUE_RE = re.compile(r'"symbol"\s*:\s*"(.*?)"')

TAPESTRY_SYSTEM = """You are an abstract texture generator for a retro terminal game. Output JSON only.
Schema: { "art": "STRING_WITH_NEWLINES" }
Use only these characters: space, ░, ▒, ▓, █.
Do not draw objects or outlines. Produce a seamless 40x20 dithering field whose density expresses the mood:
heavy moods are mostly ▓ and █, light moods mostly ░ and space.
The "art" field is a single string with "\\n" line breaks, exactly 20 rows of 40 characters. No code fences."""

INTERACTION_SYSTEM = """You are a retro icon animator. Output JSON only.
Schema: { "frames": ["frame1", "frame2", "frame3"] }
Draw a centered, symmetrical icon, no text labels. Frame 1 is the object at rest, frame 2 shows the action,
frame 3 shows the outcome. Use * for magic, # for solid, = for motion.
Each frame is one string with "\\n" line breaks, at most 15 rows of 40 characters. No code fences."""

SYMBOL_SYSTEM = """You are a cartographer for a retro RPG. Output JSON only.
Schema: { "symbol": "EMOJI" }
Answer with exactly one emoji that captures the place. No text, no numbers, no code fences."""


class ArtServiceError(RuntimeError):
    """The art service could not produce a usable answer."""


def clean_frame(value: Any) -> str:
    return _FENCE_RE.sub("", str(value)).strip()


def parse_frames(content: str) -> List[str]:
    """Extract frames from the model's JSON answer; ``[]`` when none are usable."""
    try:
        data = json.loads(content)
    except ValueError:
        match = _ART_RESCUE_RE.search(content or "")
        if not match:
            log.warn(event="art_parse_failed", length=len(content or ""))
            return []
        rescued = match.group(1).replace("\\n", "\n").replace('\\"', '"').replace("\\\\", "\\")
        if len(rescued) > MAX_RESCUED_CHARS:
            cut = rescued[:MAX_RESCUED_CHARS]
            newline = cut.rfind("\n")
            rescued = cut[:newline] if newline > 0 else cut
        frame = clean_frame(rescued)
        return [frame] if frame else []

    if not isinstance(data, dict):
        return []
    if isinstance(data.get("frames"), list):
        frames = [clean_frame(f) for f in data["frames"]]
    elif isinstance(data.get("art"), str):
        frames = [clean_frame(data["art"])]
    elif isinstance(data.get("tapestry"), str):
        frames = [clean_frame(data["tapestry"])]
    else:
        log.warn(event="art_unexpected_shape", keys=",".join(sorted(data.keys())))
        return []
    return [f for f in frames if f]


def parse_symbol(content: str) -> Optional[str]:
    try:
        data = json.loads(content)
    except ValueError:
        match = _SYMBOL_RESCUE_RE.search(content or "")
        if not match:
            return None
        return clean_frame(match.group(1)) or None
    if isinstance(data, dict) and isinstance(data.get("symbol"), str):
        return clean_frame(data["symbol"]) or None
    return None


class ArtClient:
    def __init__(
        self,
        api_key: Optional[str],
        url: str = DEFAULT_API_URL,
        model: str = "gpt-4o",
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "ArtClient":
        return cls(
            api_key=config.get("OPENAI_API_KEY"),
            url=config.get("ART_API_URL") or DEFAULT_API_URL,
            model=config.get("ART_MODEL") or "gpt-4o",
            timeout=config.get("ART_TIMEOUT") or 60,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Run one chat completion and return the raw message content."""
        if not self.enabled:
            raise ArtServiceError("OPENAI_API_KEY is not set")
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": 0.7,
            "response_format": {"type": "json_object"},
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            resp = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ArtServiceError(f"art request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise ArtServiceError(f"art service returned {resp.status_code}: {resp.text[:200]}")
        try:
            payload: Dict[str, Any] = resp.json()
            content = payload["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ArtServiceError("art service returned an unexpected body") from exc
        if not content:
            raise ArtServiceError("art service returned no content")
        return content

    def room_tapestry(self, room: Dict[str, Any], mood: str) -> List[str]:
        prompt = (
            f"Create a seamless 40x20 texture for this place.\n"
            f"Title: {room.get('title')}\n"
            f"Mood: {mood}\n"
            f"Shroud level: {room.get('shroud_level', 0)} (0=clear, 5=very mysterious; higher is denser)"
        )
        return parse_frames(self.complete(TAPESTRY_SYSTEM, prompt))

    def object_interaction(self, item: Dict[str, Any]) -> List[str]:
        outcome = item.get("success_message") or item.get("interact_verb")
        prompt = (
            f"Animate an interaction with this object in 3 frames.\n"
            f"Name: {item.get('name')}\n"
            f"Verb: {item.get('interact_verb')}\n"
            f"Frame 3 must depict this outcome: {outcome}"
        )
        return parse_frames(self.complete(INTERACTION_SYSTEM, prompt))

    def room_symbol(self, room: Dict[str, Any], mood: str) -> Optional[str]:
        prompt = (
            f"Pick a map symbol for this place.\n"
            f"Title: {room.get('title')}\n"
            f"Description: {room.get('description')}\n"
            f"Mood: {mood}\n"
            f"Shroud level: {room.get('shroud_level', 0)}"
        )
        return parse_symbol(self.complete(SYMBOL_SYSTEM, prompt))
