from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from storyreel.clients.openai_chat import OpenAIChatClient
from storyreel.models.domain import VideoLength

WORD_TOLERANCE = 20

TOPIC_TEMPLATES: dict[str, str] = {
    "True stories": (
        "Write a single detailed narration script about the given topic. Focus on ONE coherent story with a "
        "clear beginning, middle, and end. Elaborate on the emotions, setting, and events to make it immersive. "
        "Do not list multiple short stories, focus on one. Keep sentences clear and natural, suitable for "
        "voiceover. Write the story about famous, historical figures, past or present, that made an impact on "
        "the world."
    ),
    "Bedtime stories": (
        "Write a calming and imaginative bedtime story suitable for children. Use gentle language, magical or "
        "whimsical settings, and end with a peaceful resolution. Keep the tone soothing and relaxing."
    ),
    "What If?": (
        "Write a narration script that explores a single intriguing 'what if' scenario in detail. Explain the "
        "consequences step by step, mix in speculation and logical reasoning, and keep it engaging as if "
        "explaining to a curious audience."
    ),
    "Spooky stories": (
        "Write a scary narration script that tells one eerie story with suspense, atmosphere, and twists. Use "
        "vivid, chilling descriptions to create tension, but keep it suitable for general YouTube audiences."
    ),
    "Motivational": (
        "Write a motivational narration script that inspires the audience. Use a strong, uplifting tone, "
        "include rhetorical questions, relatable struggles, and powerful takeaways that encourage action and "
        "positivity."
    ),
    "Urban Legends": (
        "Write a narration script about a famous urban legend. Explain the story in detail, its origins, and "
        "why it became popular. Build suspense while telling the legend as if narrating to an intrigued "
        "audience."
    ),
    "Fun Facts": (
        "Write a narration script that lists 5-7 surprising fun facts about the topic. Each fact should be "
        "explained in one or two sentences, with engaging transitions between them."
    ),
    "Educational": (
        "Write an educational narration script that explains the topic clearly and simply. Use analogies, "
        "examples, and engaging storytelling to make learning fun and easy to follow."
    ),
    "Sci-fi": "Cool sci fi story. Can also talk about what ifs. Describe the scenario immersively.",
    "Life pro tips": (
        "Write a narration script that shares 5-7 practical life tips. Each tip should be explained briefly "
        "but clearly, showing how it helps in real life. Keep the tone conversational and helpful."
    ),
    "Interesting History": (
        "Write a narration script about one fascinating historical event. Describe the context, key figures, "
        "dramatic moments, and its impact on the world, using storytelling to make it vivid and engaging."
    ),
}

STRICT_STYLE_RULE = """
IMPORTANT: You MUST follow the word count EXACTLY.
This rule overrides creativity, storytelling, and style.
Count every word carefully. CRITICAL STYLE RULES:
- DO NOT use screenplay format.
- DO NOT include [FADE IN], [CUT TO], [DISSOLVE TO], or any bracketed stage directions.
- DO NOT write camera movements or scene transitions.
- DO NOT use NARRATOR (V.O).
- Write as a natural spoken narration, like a YouTube storyteller.
- No brackets, no labels, no scene headings, no screenplay cues.
This rule overrides creativity, formatting, and style.
"""

DEFAULT_PROMPT = (
    "You are a script writer for educational, interesting videos. Write engaging narration scripts.\n\n"
    "Tone: engaging, conversational, and energetic, as if speaking directly to an audience on YouTube. "
    "Make it feel like natural storytelling, flowing from one point to the next. "
    "The script MUST follow the word count EXACTLY. This rule is more important than creativity or storytelling."
)

SAFETY_DIRECTIVE = (
    "\n\nIMPORTANT: Create content that is safe for all audiences. Avoid any content involving violence, adult "
    "themes, hate speech, or controversial topics. Keep the content educational, entertaining, and family-friendly."
)

RETRY_DIRECTIVE = (
    "\n\nCRITICAL: You must write scripts that are EXACTLY the specified word count. Count every word carefully."
)


@dataclass(frozen=True)
class LengthProfile:
    target_words: int
    duration_label: str
    max_tokens: int
    retry_max_tokens: int

    @property
    def min_words(self) -> int:
        return self.target_words - WORD_TOLERANCE

    @property
    def max_words(self) -> int:
        return self.target_words + WORD_TOLERANCE


LENGTH_PROFILES: dict[VideoLength, LengthProfile] = {
    VideoLength.SHORT: LengthProfile(target_words=90, duration_label="45-second", max_tokens=400, retry_max_tokens=300),
    VideoLength.LONG: LengthProfile(target_words=180, duration_label="90-second", max_tokens=600, retry_max_tokens=500),
}


def count_words(text: str) -> int:
    return len(text.strip().split())


def select_template(topic: str) -> Optional[str]:
    lowered = topic.strip().lower()
    for key, prompt in TOPIC_TEMPLATES.items():
        if key.lower() == lowered:
            return prompt
    return None


def build_system_prompt(topic: str) -> str:
    template = select_template(topic)
    if template:
        return f"{template}\n\n{STRICT_STYLE_RULE}"
    return DEFAULT_PROMPT


class ScriptWriter:
    def __init__(self, chat: OpenAIChatClient, logger: Optional[logging.Logger] = None) -> None:
        self.chat = chat
        self.log = logger or logging.getLogger(__name__)

    async def write(self, topic: str, length: VideoLength) -> str:
        profile = LENGTH_PROFILES[length]
        system_prompt = build_system_prompt(topic)
        script = await self.chat.complete(
            [
                {"role": "system", "content": system_prompt + SAFETY_DIRECTIVE},
                {
                    "role": "user",
                    "content": (
                        f"Write a narration script about {topic}, for a {profile.duration_label} video. "
                        f"The script must be EXACTLY {profile.target_words} words (±10 words maximum). "
                        "Count your words carefully and ensure the final script is between "
                        f"{profile.target_words - 10} and {profile.target_words + 10} words. "
                        "Ensure the content is family-friendly and safe for all audiences."
                    ),
                },
            ],
            model=self.chat.script_model,
            max_tokens=profile.max_tokens,
            temperature=0.7,
        )
        word_count = count_words(script)
        self.log.info(
            "script generated",
            extra={
                "topic": topic,
                "words": word_count,
                "target": profile.target_words,
                "range": f"{profile.min_words}-{profile.max_words}",
            },
        )
        # Short scripts are accepted as is; only overlong ones get a second pass.
        if word_count <= profile.max_words:
            return script

        self.log.info("script too long, regenerating with stricter limit", extra={"words": word_count})
        retry = await self.chat.complete(
            [
                {"role": "system", "content": system_prompt + RETRY_DIRECTIVE},
                {
                    "role": "user",
                    "content": (
                        f"Write a narration script about {topic}, for a {profile.duration_label} video. "
                        f"The script must be EXACTLY {profile.target_words} words (±5 words maximum). "
                        "This is a strict requirement - count your words and ensure the final script is between "
                        f"{profile.min_words} and {profile.max_words} words."
                    ),
                },
            ],
            model=self.chat.script_model,
            max_tokens=profile.retry_max_tokens,
            temperature=0.5,
        )
        retry_count = count_words(retry)
        if retry_count > profile.max_words:
            self.log.info(
                "script still too long after retry, keeping full text",
                extra={"words": retry_count, "max_words": profile.max_words},
            )
        return retry
