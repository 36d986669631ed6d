"""
Prompt templates for LLM-based flows.

Templates are plain str.format strings; the per-format and per-content-type
wording lives in lookup tables so flow code never branches on them.
"""
from typing import Optional

from shared.placeholders import render_placeholder

# =============================================================================
# LOOKUP TABLES
# =============================================================================

OUTPUT_FORMAT_GUIDANCE = {
    "text": "Provide plain text only. Do not use Markdown or HTML syntax.",
    "markdown": (
        "Use Markdown syntax (headings, lists, bold, italics, code blocks, tables etc. "
        "where appropriate)."
    ),
    "html": (
        "Use valid, semantic HTML structure (e.g. <article>, <p>, <h1>, <ul>, <li>). "
        "Provide body content suitable for embedding in an existing page."
    ),
}

CONTENT_TYPE_GUIDANCE = {
    "blog post": "Write in an engaging, conversational tone with a clear introduction and conclusion.",
    "technical summary": "Be precise and concise. Prefer short sections, definitions and concrete facts.",
    "news article": "Lead with the most important facts. Keep a neutral, factual tone.",
    "tutorial": "Explain step by step. Include prerequisites and a short recap at the end.",
    "product description": "Focus on benefits and key features. Keep paragraphs short.",
}
DEFAULT_CONTENT_TYPE_GUIDANCE = "Structure the content so it is logical and easy to follow."

IMAGE_INSTRUCTIONS = {
    "with_images": """Image Integration Instructions (Generating {count} image(s)):
1.  First, generate the complete "{content_type}" as described.
2.  Within the generated content, identify {count} unique, contextually appropriate locations for images.
3.  At each chosen location insert a unique placeholder string of the form '{example_0}', where the number is a zero-based index.
    Placeholders run sequentially from '{example_0}' up to '{example_last}'.
    DO NOT add any other text, markdown, or HTML tags around these placeholders. Just the placeholder itself.
4.  Create an array of {count} concise, descriptive image generation prompts (max 20 words each) in 'image_prompt_suggestions'. The first prompt is for '{example_0}', the second for the next placeholder, and so on.
5.  The 'article_content' field must contain the placeholder strings.
6.  If you cannot find a suitable place or prompt for some images, provide fewer prompts, but keep placeholders and prompts matched.

Example for 2 images:
'article_content': "Intro text... {example_0} More text... {example_1} Conclusion."
'image_prompt_suggestions': ["A photo of concept A", "An illustration of concept B"]""",
    "without_images": """Image Integration Instructions:
No images are requested. Generate only the textual content. Do not include any image placeholders or image prompt suggestions.""",
}


# =============================================================================
# ARTICLE PROMPTS
# =============================================================================

ARTICLE_PROMPT = """{house_style}You are an AI assistant specializing in content generation and structuring. Your primary goal is to create a well-structured and coherent "{content_type}" based on the provided information.

Output Format: {output_format}. {format_guidance}
Target Language: {language}. Make sure the entire textual output is in this language.
{reference_sections}
Keywords/Topics to focus on: {keywords}
Content Type to generate: {content_type}
{content_type_guidance}

{image_instructions}

General Instructions:
1.  Prioritize the user-uploaded document if provided.
2.  Incorporate additional context intelligently.
3.  Ensure the final article is logical and addresses the keywords and content type.
4.  Generate STRICTLY in the target language and output format.

{response_schema}"""


STREAM_ARTICLE_PROMPT = """{house_style}You are an AI assistant specializing in content generation. Your primary goal is to create a well-structured and coherent "{content_type}" based on the provided information.

Output Format: {output_format}. {format_guidance} Ensure your entire output strictly adheres to this format.
Target Language: {language}. Make sure the entire output is in this language.
{reference_sections}
Keywords/Topics to focus on: {keywords}
Content Type to generate: {content_type}
{content_type_guidance}

Instructions:
1. If a user-uploaded document is provided, use it as the main foundation for the article.
2. If additional context is provided, incorporate it so it aligns with the document's theme.
3. Otherwise, generate the article from the keywords, content type and output format.
4. Generate the entire article STRICTLY in the target language and output format. Do not mix languages or formats.

Generated Article (in {language}, format: {output_format}):"""


UPLOADED_CONTENT_SECTION = """
User-Uploaded Document (Primary Reference):
---
{content}
---
"""

ADDITIONAL_CONTEXT_SECTION = """
Additional Context/Notes from User:
---
{content}
---
"""


# =============================================================================
# SEARCH / TOPIC PROMPTS
# =============================================================================

EXTRACT_HTML_PROMPT = """You are an expert web content extractor. Analyze the raw HTML below and extract the main article or primary readable content.

Instructions:
1.  Identify the core content body of the webpage and extract its meaningful text.
2.  Remove all HTML tags, JavaScript and CSS.
3.  Exclude boilerplate: navigation menus, footers, advertisements, cookie banners, branding, social sharing buttons and comment sections.
4.  Preserve paragraph structure (line breaks between paragraphs).
5.  If the page is an error page, a login page, or has no discernible main content, return "[No significant textual content found on this page.]" or "[Page appears to be an error/login page.]".
6.  If the content is extremely long, summarize the main points or keep the first few significant paragraphs.

HTML Content to Process:
```html
{html_content}
```

{response_schema}"""


SUGGEST_TOPICS_PROMPT = """Suggest topics or keywords related to the following input:

{input}

Return the topics as a JSON object with a "topics" array of strings.

{response_schema}"""


def _section(template: str, content: Optional[str]) -> str:
    if content and content.strip():
        return template.format(content=content.strip())
    return ""


def _house_style(article_prompt: Optional[str]) -> str:
    if article_prompt and article_prompt.strip():
        return article_prompt.strip() + "\n\n"
    return ""


def image_instructions(number_of_images: int, content_type: str) -> str:
    if number_of_images <= 0:
        return IMAGE_INSTRUCTIONS["without_images"]
    return IMAGE_INSTRUCTIONS["with_images"].format(
        count=number_of_images,
        content_type=content_type,
        example_0=render_placeholder(0),
        example_1=render_placeholder(1),
        example_last=render_placeholder(number_of_images - 1),
    )


def build_article_prompt(
    template: str,
    keywords: str,
    content_type: str,
    language: str,
    output_format: str,
    uploaded_content: Optional[str] = None,
    additional_context: Optional[str] = None,
    number_of_images: int = 0,
    article_prompt: Optional[str] = None,
    response_schema: str = "",
) -> str:
    """Fill an article template. Sections with no content are left out."""
    reference_sections = (
        _section(UPLOADED_CONTENT_SECTION, uploaded_content)
        + _section(ADDITIONAL_CONTEXT_SECTION, additional_context)
    )
    guidance = CONTENT_TYPE_GUIDANCE.get(content_type.strip().lower(), DEFAULT_CONTENT_TYPE_GUIDANCE)

    return template.format(
        house_style=_house_style(article_prompt),
        content_type=content_type,
        output_format=output_format,
        format_guidance=OUTPUT_FORMAT_GUIDANCE[output_format],
        language=language,
        reference_sections=reference_sections,
        keywords=keywords,
        content_type_guidance=guidance,
        image_instructions=image_instructions(number_of_images, content_type),
        response_schema=response_schema,
    )
