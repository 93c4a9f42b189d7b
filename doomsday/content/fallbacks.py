"""
Fixed theme rotations and fallback content.

Fallback lists are pre-authored and never regenerated; they are indexed by day
number so a failed generation shows the same text on every retry.
"""

from __future__ import annotations

QUOTE_THEMES: tuple[str, ...] = (
    "time and urgency",
    "human potential and growth",
    "facing uncertainty",
    "technological progress",
    "collective action",
    "resilience and adaptation",
    "the future we create",
)

CHAT_THEMES: tuple[str, ...] = (
    "communication and meaningful connection",
    "shared experiences in uncertain times",
    "collective wisdom and learning from each other",
    "technology's impact on human relationships",
    "building community and mutual support",
    "finding purpose and meaning in times of change",
    "collaborative problem solving and hope",
)

NEWS_TOPICS: tuple[str, ...] = (
    "breakthrough in understanding human resilience during uncertainty",
    "innovative approaches to building digital community connections",
    "research on collective decision-making in times of change",
    "discoveries about meaning-making in transitional periods",
    "studies on technology's role in fostering genuine relationships",
    "insights into collaborative problem-solving for global challenges",
    "findings on hope and realism in facing unknown futures",
)

FALLBACK_QUOTES: tuple[str, ...] = (
    "The future is not some place we are going, but one we are creating.",
    "In the face of uncertainty, we find our truest selves.",
    "Change is the only constant. Embrace the transformation.",
    "Every moment brings us closer to who we are meant to become.",
    "What appears as an ending is merely a transition.",
)

FALLBACK_NEWS: tuple[str, ...] = (
    "OpenAI releases new multimodal AI model with enhanced capabilities",
    "Google DeepMind achieves breakthrough in quantum computing algorithms",
    "Microsoft announces AI copilot integration across Office applications",
    "Meta unveils advanced AI avatars for virtual reality platforms",
    "Tesla's FSD system reaches new milestone in autonomous driving",
)

FALLBACK_CHAT_THEMES: tuple[str, ...] = (
    "How do you find meaning when everything feels uncertain?",
    "What does genuine human connection look like in a digital world?",
    "How do we build community when traditional structures are changing?",
    "What wisdom can we share to help each other through transition?",
    "How do we balance hope and realism when facing the unknown?",
    "What role does technology play in bringing us together or apart?",
    "How do we create positive change when time feels limited?",
)

DEFAULT_CHAT_THEME = FALLBACK_CHAT_THEMES[0]


def fallback_content(day: int, items: tuple[str, ...] | list[str], count: int = 1) -> list[str]:
    """Return ``count`` contiguous items starting at ``((day - 1) * count) % len(items)``."""
    if not items:
        raise ValueError("fallback list is empty")
    start = ((day - 1) * count) % len(items)
    return [items[(start + i) % len(items)] for i in range(count)]
