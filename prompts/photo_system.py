"""Character portrait prompts for text-to-image models."""

IMAGE_PROMPT_SYSTEM_PROMPT = """You write prompts for photorealistic text-to-image models.

Return ONE prompt on a single line, under 80 words, with no quotes, labels or
commentary. Always describe a single person, head and shoulders, facing the
camera, with lighting and lens details."""

IMAGE_PROMPT_TEMPLATE = """Write a portrait prompt for this character.

Name: {name}
Description: {description}
Appearance: {appearance}
Traits: {traits}
Age: {age}
Gender: {gender}

Visual style: {style} ({style_guidelines})
Story theme: {theme}"""

ENHANCE_IMAGE_PROMPT_TEMPLATE = """Improve this image prompt so a text-to-image model produces a professional,
realistic portrait with detailed facial features and good lighting. Keep the
subject unchanged. Return only the improved prompt.

Prompt: {prompt}
Style: {style}"""
