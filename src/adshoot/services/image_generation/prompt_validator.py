"""Prompt validation for image generation.

Validates text prompts before a batch is accepted.
"""

MAX_PROMPT_LENGTH = 4000


def validate_prompt(prompt: str, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """Validate prompt text for image generation.

    Args:
        prompt: Text prompt submitted by the user
        max_length: Maximum allowed length after stripping

    Returns:
        Prompt with surrounding whitespace removed

    Raises:
        ValueError: If prompt is not a string, is blank, or exceeds max_length
    """
    if not isinstance(prompt, str):
        raise ValueError(f"Prompt must be a string, got {type(prompt).__name__}")

    prompt = prompt.strip()
    if not prompt:
        raise ValueError("Prompt cannot be empty")

    if len(prompt) > max_length:
        raise ValueError(
            f"Prompt exceeds maximum length of {max_length} characters (got {len(prompt)})"
        )

    return prompt
