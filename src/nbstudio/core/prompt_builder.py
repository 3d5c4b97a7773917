"""Prompt compilation for the NB Studio creative modes.

Every mode sends Gemini a single instruction string assembled from fixed
boilerplate plus user input.  The boilerplate establishes the studio's
ground rules (preserve likeness, one image, no watermarks); users control
variation through their own text.

Modes
-----
Single edit
    The curated preset prompt is sent as-is.  When a second reference image
    is attached, :data:`DUAL_IMAGE_HINT` tells the model which photo is which
    player.
Flipbook
    :func:`build_flipbook_frame_prompt` is called once per frame with a
    frame-specific narrative cue so the four frames read as one story.
Freestyle
    :func:`build_freestyle_prompt` wraps the user's instructions with the
    likeness-preservation rules.
Prompt-only
    :func:`build_prompt_only_prompt` wraps the user's prompt.
Contact icon
    :func:`build_icon_prompt` combines the contact name, optional scraped
    page metadata, one of :data:`ICON_STYLES`, and optional user
    instructions.

Sections are joined with single newlines, matching how the model was tuned.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nbstudio.core.url_metadata import UrlMetadata

FLIPBOOK_FRAME_COUNT = 4

# ---------------------------------------------------------------------------
# Fixed boilerplate sections.
# ---------------------------------------------------------------------------

DUAL_IMAGE_HINT = (
    "First uploaded photo represents Player 1 (left fighter). "
    "Second uploaded photo represents Player 2 (right fighter)."
)

_FLIPBOOK_NARRATIVE_GUIDANCE = (
    "Introduce the setting and characters while keeping the mood of the original image.",
    "Add a little movement to the characters and show the story beginning.",
    "Build toward a scene where the action or emotion intensifies.",
    "Wrap up from the climax into the afterglow, with a composition that shows "
    "the lingering motion.",
)

_FREESTYLE_PREAMBLE = (
    "You are a helpful creative image editor for the NB Studio family app.",
    "CRITICAL INSTRUCTION: You MUST preserve the exact facial features, identity, and "
    "likeness of the person in the uploaded reference image(s). The generated person "
    "MUST look 100% identical to the reference.",
    "Use the uploaded images purely as visual references.",
    "Blend the key elements from each reference in order, keeping the first uploads as "
    "the strongest guidance.",
    "Follow the user's instructions precisely and return exactly one polished image.",
    "User instructions:",
)

_PROMPT_ONLY_PREAMBLE = (
    "You are a helpful creative image generator for the NB Studio family app.",
    "Produce exactly one high-quality final image based solely on the user's prompt.",
    "Avoid adding any text, logos, or watermarks unless the user explicitly requests them.",
    "User prompt:",
)


@dataclass(frozen=True)
class IconStyle:
    """A selectable visual style for contact icons."""

    id: str
    label: str
    description: str
    prompt_fragment: str

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "description": self.description}


ICON_STYLES: tuple[IconStyle, ...] = (
    IconStyle(
        id="flat-minimal",
        label="Flat minimal",
        description="Simple colour fields and a single symbol",
        prompt_fragment=(
            "Use a flat, minimal design style with solid color fills, clean geometric shapes, "
            "and a single representative symbol or monogram. No gradients, no shadows, no "
            "textures. The palette should be limited to 2-3 harmonious colors."
        ),
    ),
    IconStyle(
        id="gradient-modern",
        label="Modern gradient",
        description="Vivid gradient background",
        prompt_fragment=(
            "Use a modern gradient design style with vibrant, smooth color transitions as the "
            "background. Overlay a clean white or light-colored symbol or monogram. The gradient "
            "should feel contemporary and eye-catching, similar to popular app icons."
        ),
    ),
    IconStyle(
        id="illustrated",
        label="Illustrated",
        description="Warm, hand-drawn illustration",
        prompt_fragment=(
            "Use a warm, hand-drawn illustration style with soft outlines, gentle colors, and a "
            "friendly, approachable feel. Include small illustrative details that represent the "
            "subject. The style should feel personal and inviting."
        ),
    ),
    IconStyle(
        id="photo-circle",
        label="Photo retouch",
        description="Circular icon based on a photo",
        prompt_fragment=(
            "Create a polished, circular profile-style icon. If reference images are provided, "
            "use them as the base and apply professional-grade retouching with soft studio "
            "lighting and a clean, subtle background. The result should look like a premium "
            "contact photo."
        ),
    ),
    IconStyle(
        id="auto",
        label="Automatic",
        description="Pick the best style from the contact details",
        prompt_fragment=(
            "Automatically choose the most appropriate visual style based on the contact's "
            "nature. For businesses and organizations, prefer clean and professional designs. "
            "For schools and community groups, prefer warm and friendly illustrations. For "
            "individuals, prefer polished portrait-style icons."
        ),
    ),
)

DEFAULT_ICON_STYLE = "auto"


def get_icon_style(style_id: str | None) -> IconStyle:
    """Return the icon style with ``style_id``, falling back to ``auto``."""
    by_id = {style.id: style for style in ICON_STYLES}
    return by_id.get(style_id or DEFAULT_ICON_STYLE, by_id[DEFAULT_ICON_STYLE])


def build_flipbook_frame_prompt(
    story_idea: str,
    frame_index: int,
    frame_count: int = FLIPBOOK_FRAME_COUNT,
) -> str:
    """Compile the prompt for one flipbook frame.

    Args:
        story_idea: The user's overall story idea.
        frame_index: Zero-based frame index.
        frame_count: Total number of frames in the flipbook.

    Returns:
        The frame prompt.  Frames beyond the scripted guidance reuse the
        final guidance line.
    """
    guidance_index = min(frame_index, len(_FLIPBOOK_NARRATIVE_GUIDANCE) - 1)
    guidance = _FLIPBOOK_NARRATIVE_GUIDANCE[guidance_index]
    return "\n".join(
        [
            "You are generating a single frame of a story-driven flipbook animation.",
            "Respect the uploaded reference image and keep the main character(s), colors, "
            "and atmosphere consistent across all frames.",
            "The flipbook must feel like it is expanding upon the reference scene with gentle "
            "motion between frames.",
            f"This is frame {frame_index + 1} of {frame_count}. {guidance}",
            "Describe motion by adjusting body pose, facial expression, and environment details "
            "slightly so that the next frame flows naturally from this one.",
            "Do not add text, UI, or speech bubbles.",
            f"Overall story idea from the user: {story_idea.strip()}",
        ]
    )


def build_freestyle_prompt(instructions: str) -> str:
    """Wrap freestyle edit instructions with the likeness-preservation rules."""
    return "\n".join([*_FREESTYLE_PREAMBLE, instructions.strip()])


def build_prompt_only_prompt(prompt: str) -> str:
    """Wrap a text-only generation prompt."""
    return "\n".join([*_PROMPT_ONLY_PREAMBLE, prompt.strip()])


def build_icon_prompt(
    name: str,
    style: str | None = DEFAULT_ICON_STYLE,
    url_meta: UrlMetadata | None = None,
    custom_prompt: str | None = None,
) -> str:
    """Compile the prompt for a contact icon.

    Args:
        name: Contact name.
        style: Icon style id.  Unknown ids fall back to ``auto``.
        url_meta: Metadata scraped from the contact's URL, if any.  Only the
            title and description are used here; the og:image is sent as a
            reference image by the caller.
        custom_prompt: Extra instructions from the user.

    Returns:
        The icon prompt.
    """
    selected = get_icon_style(style)

    lines: list[str] = [
        "You are a professional icon designer for the NB Studio family app.",
        "Generate a single, high-quality square icon image (512x512 pixels) suitable for use "
        "as a contact icon in phone contact lists, LINE, and messaging apps.",
        "The icon must be visually clear at small sizes (40x40 pixels) and work well in "
        "circular crop.",
        "",
        f'Contact name: "{name.strip()}"',
    ]

    if url_meta is not None:
        if url_meta.title:
            lines.append(f'Website title: "{url_meta.title}"')
        if url_meta.description:
            lines.append(f'Website description: "{url_meta.description}"')

    lines.append("")
    lines.append(f"Style: {selected.prompt_fragment}")

    if custom_prompt and custom_prompt.strip():
        lines.append("")
        lines.append(f"Additional instructions from user: {custom_prompt.strip()}")

    lines.append("")
    lines.append(
        "IMPORTANT: Output exactly one square image. Do not include any text labels, "
        "watermarks, or borders. Focus the composition so the main element fills the frame "
        "well for circular cropping."
    )

    return "\n".join(lines)
