from __future__ import annotations

from .models import PromptSuggestions, SuggestionCategory

SUGGESTION_CATEGORIES: dict[str, list[str]] = {
    "Art Styles": [
        "in the style of Van Gogh's Starry Night",
        "minimalist geometric art",
        "watercolor painting",
        "pixel art",
        "art nouveau style",
    ],
    "Photography": [
        "cinematic lighting",
        "aerial view",
        "macro photography",
        "golden hour lighting",
        "black and white portrait",
    ],
    "Fantasy": [
        "magical forest with glowing mushrooms",
        "steampunk city",
        "floating islands in the sky",
        "crystal cave with bioluminescent plants",
        "underwater city with merfolk",
    ],
    "Sci-Fi": [
        "cyberpunk cityscape",
        "retro-futuristic",
        "space colony on Mars",
        "alien marketplace",
        "holographic interface",
    ],
}

PROMPT_MODIFIERS: list[str] = [
    "highly detailed",
    "professional photography",
    "8k resolution",
    "dramatic lighting",
    "photorealistic",
    "concept art",
    "trending on artstation",
    "volumetric lighting",
    "depth of field",
    "bokeh effect",
]


def prompt_suggestions() -> PromptSuggestions:
    return PromptSuggestions(
        categories=[
            SuggestionCategory(name=name, prompts=list(prompts))
            for name, prompts in SUGGESTION_CATEGORIES.items()
        ],
        modifiers=list(PROMPT_MODIFIERS),
    )
