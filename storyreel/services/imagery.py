from __future__ import annotations

import asyncio
import io
import logging
from pathlib import Path
from typing import Mapping, Optional

from PIL import Image

from storyreel.clients.openai_chat import OpenAIChatClient
from storyreel.clients.stability import StabilityClient
from storyreel.models.domain import AspectRatio, SceneGroup
from storyreel.services.scheduling import StagePolicy, run_stage

IMAGE_SIZES: dict[str, tuple[int, int]] = {
    AspectRatio.LANDSCAPE.value: (1344, 768),
    AspectRatio.PORTRAIT.value: (768, 1344),
    AspectRatio.SQUARE.value: (1024, 1024),
}
DEFAULT_IMAGE_SIZE = (1024, 1024)

ORIENTATION_RULES: dict[str, str] = {
    AspectRatio.PORTRAIT.value: (
        "PORTRAIT ORIENTATION ONLY. A tall vertical composition designed for 9:16. "
        "No horizontal landscape framing."
    ),
    AspectRatio.LANDSCAPE.value: "LANDSCAPE ORIENTATION ONLY. A wide cinematic composition designed for 16:9.",
}
SQUARE_RULE = "SQUARE ORIENTATION ONLY. A centered and balanced 1:1 framing."

NO_TEXT_RULE = "No words, no letters, no text, no captions."
QUALITY_RULE = "Ultra detailed, high-quality professional artwork."

VISUAL_REWRITE_PROMPT = (
    "Rewrite the user's narration into a highly detailed, VISUAL image prompt. Focus ONLY on what can be drawn. "
    "Remove abstract ideas, emotions, metaphors, or backstory unless visually representable. Make it suitable "
    "for Stable Diffusion. Include: characters, setting, lighting, location, camera angle, atmosphere. "
    "Keep it literal and visual."
)


def image_size(aspect_ratio: str) -> tuple[int, int]:
    return IMAGE_SIZES.get(aspect_ratio, DEFAULT_IMAGE_SIZE)


def orientation_rule(aspect_ratio: str) -> str:
    return ORIENTATION_RULES.get(aspect_ratio, SQUARE_RULE)


def style_prompt(art_style: str, catalog: Mapping[str, Mapping[str, str]]) -> str:
    entry = catalog.get(art_style) or {}
    prompt = entry.get("prompt")
    if prompt:
        return prompt
    readable = art_style.replace("_", " ").replace("-", " ")
    return f"{readable} illustration"


def compose_image_prompt(style: str, visual: str, aspect_ratio: str) -> str:
    return "\n".join(
        [
            f"{style.rstrip('.')}.",
            f"Scene: {visual.rstrip('.')}.",
            orientation_rule(aspect_ratio),
            NO_TEXT_RULE,
            QUALITY_RULE,
        ]
    )


def _to_jpeg(data: bytes, output: Path) -> Path:
    with Image.open(io.BytesIO(data)) as image:
        image.convert("RGB").save(output, format="JPEG", quality=92)
    return output


class VisualPromptWriter:
    def __init__(self, chat: OpenAIChatClient) -> None:
        self.chat = chat

    async def rewrite(self, narration: str) -> str:
        text = await self.chat.complete(
            [
                {"role": "system", "content": VISUAL_REWRITE_PROMPT},
                {"role": "user", "content": narration},
            ],
            model=self.chat.visual_model,
            max_tokens=150,
            temperature=0.4,
        )
        return text.strip()


class ImageSynthesizer:
    def __init__(
        self,
        prompt_writer: VisualPromptWriter,
        client: StabilityClient,
        policy: StagePolicy,
        style_catalog: Mapping[str, Mapping[str, str]],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.prompt_writer = prompt_writer
        self.client = client
        self.policy = policy
        self.style_catalog = style_catalog
        self.log = logger or logging.getLogger(__name__)

    async def generate_all(
        self,
        groups: list[SceneGroup],
        art_style: str,
        aspect_ratio: str,
        workdir: Path,
    ) -> list[Path]:
        style = style_prompt(art_style, self.style_catalog)
        width, height = image_size(aspect_ratio)

        async def worker(index: int, group: SceneGroup) -> Path:
            visual = await self.prompt_writer.rewrite(group.text)
            self.log.info("scene visual prompt", extra={"scene": index, "visual_prompt": visual})
            prompt = compose_image_prompt(style, visual, aspect_ratio)
            data = await self.client.text_to_image(prompt, width, height)
            return await asyncio.to_thread(_to_jpeg, data, workdir / f"scene_{index}.jpg")

        return await run_stage(groups, worker, self.policy)
