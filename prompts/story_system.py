"""Story prompts: script writing, character extraction, character enhancement.

Templates are filled with str.format, so literal JSON braces are doubled.
Every response that must be JSON says so explicitly; the caller strips
markdown fences before parsing.
"""

SCRIPT_SYSTEM_PROMPT = """You are a professional short-form video screenwriter.

You write compact, production-ready scripts for vertical (9:16) story videos
that run one to two minutes. Every script you write has named characters who
speak in dialogue lines formatted as `NAME: line`, short scene descriptions,
and emotional cues in parentheses. Plain text only, no markdown headings."""

SCRIPT_PROMPT_TEMPLATE = """Create a professional {content_theme} script for a video in {video_style} style.

Theme: {theme}
User Request: {prompt}
Video Style: {video_style}
Content Theme: {content_theme}

Requirements:
1. Create 2-4 unique characters with distinct personalities
2. Write engaging dialogue that fits the {content_theme} genre
3. Include 3-5 scenes with clear progression
4. Make it suitable for {video_style} visual style
5. Each scene should be 10-20 seconds long
6. Include character descriptions and emotions
7. Make dialogue natural and compelling

Format the script with:
- Character introductions
- Scene descriptions
- Dialogue with character names
- Action descriptions
- Emotional cues

Create a complete, professional script now:"""

CHARACTER_SYSTEM_PROMPT = """You are a casting director and character designer.

You read scripts and produce vivid, visually distinct character sheets.
You ALWAYS answer with valid JSON and nothing else: no prose, no markdown."""

CHARACTERS_PROMPT_TEMPLATE = """Analyze this script and create {count} DIVERSE and UNIQUE characters:

Script:
{script}

Video Style: {video_style}
Content Theme: {content_theme}

IMPORTANT REQUIREMENTS:
- Each character must be completely DIFFERENT from the others
- Vary gender, age, appearance, and personality significantly
- Ensure gender consistency throughout the description
- Create distinct and memorable personalities
- Make each character visually unique

For each character, provide:
1. Name (appropriate for the theme and gender)
2. Detailed description (personality, background, motivations)
3. Physical appearance (age, gender, distinctive features, clothing style)
4. 5 personality traits (make them unique per character)
5. Role in the story (protagonist, antagonist, supporting, etc.)
6. Background story (different for each character)

Format as JSON array:
[
  {{
    "name": "Character Name",
    "description": "Detailed character description including personality and motivations",
    "appearance": "Physical description including age, gender, height, hair, clothing style",
    "traits": ["trait1", "trait2", "trait3", "trait4", "trait5"],
    "role": "protagonist/antagonist/supporting/comic relief",
    "age": "young/adult/middle-aged/elderly",
    "gender": "male/female/non-binary",
    "background": "Character's background story and history"
  }}
]

Generate {count} DIVERSE characters that fit the {content_theme} theme and {video_style} style."""

SINGLE_CHARACTER_PROMPT_TEMPLATE = """Create a detailed character based on this description:

Description: {description}
Video Style: {video_style}
Content Theme: {content_theme}

Format as JSON:
{{
  "name": "Character Name",
  "description": "Detailed character description",
  "appearance": "Physical description",
  "traits": ["trait1", "trait2", "trait3", "trait4", "trait5"],
  "role": "character role",
  "age": "age category",
  "gender": "gender",
  "background": "background story"
}}"""

ENHANCE_CHARACTER_PROMPT_TEMPLATE = """Enhance this character for a {content_theme} story in {video_style} style:

Current Character:
Name: {name}
Description: {description}
Traits: {traits}

Enhance with:
1. More detailed personality
2. Better physical description
3. Deeper background story
4. Style-appropriate details for {video_style}
5. Theme-appropriate elements for {content_theme}

Format as JSON:
{{
  "name": "{name}",
  "description": "Enhanced description",
  "appearance": "Detailed physical description",
  "traits": ["enhanced", "trait", "list"],
  "background": "enhanced background story"
}}"""

RELATIONSHIPS_PROMPT_TEMPLATE = """Analyze these characters and create relationships between them for a {content_theme} story:

Characters:
{character_list}

Consider protagonist/antagonist dynamics, family and professional ties,
friendships and rivalries, and romance where it fits the genre.

Format as a JSON object where each character name maps to an array of relationship descriptions:
{{
  "Character Name": ["relationship with other character", "another relationship"]
}}"""

SEGMENT_CHARACTERS_PROMPT_TEMPLATE = """Analyze the following script segment and extract all characters mentioned in it.
For each character, provide a name, a detailed description, 3-5 personality traits, and their role in this specific segment.

Segment Title: {title}
Script Segment:
{content}

Theme: {theme}

Respond in this JSON format:
[
  {{
    "name": "Character Name",
    "description": "A detailed description of the character",
    "traits": ["trait1", "trait2", "trait3"],
    "role": "Character's role in this specific segment (e.g. 'Protagonist', 'Supporting Character', 'Antagonist')"
  }}
]

If no characters are explicitly named in the segment, create appropriate characters that would fit this segment and theme."""
