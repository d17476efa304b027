"""
Prompt templates for the article generation pipeline.

Output labels are Japanese because tenants publish in Japanese; the parsers
in parsers.py match these labels.
"""

# =============================================================================
# SYSTEM PROMPTS
# =============================================================================

REASONING_SYSTEM_PROMPT = """You are a professional SEO writer. It is currently {current_date}.
Use web search to check the latest trends and always base your answer on information that is current as of today."""

GENERAL_SYSTEM_PROMPT = """You are a professional SEO writer. It is currently {current_date}.
Write accurate, up-to-date content in natural Japanese."""


# =============================================================================
# TEXT STAGES
# =============================================================================

KEYWORD_PROMPT = """### ROLE
You are an SEO strategist for a Japanese media site.

### TASK
Pick ONE search keyword for a new article in the category "{category_name}".
{category_description}
The keyword should have real search demand right now ({current_date}).

### KEYWORDS TO AVOID
These were used recently. Do NOT return any of them, or a trivial variation:
{avoid_keywords}

### OUTPUT FORMAT
Reply with exactly one line:
キーワード: [keyword]"""


RESEARCH_PROMPT = """### ROLE
You are a professional SEO writer preparing an article brief.

### TASK
1. Search the web for "{keyword}" and analyse the latest trends and what searchers want to know ({current_date}).
2. Based on that, write the brief in Japanese using EXACTLY the format below, one item per line.

### OUTPUT FORMAT
検索ユーザーのペルソナ（人物像）: [persona]
検索意図（顕在ニーズ）: [explicit needs]
検索意図（潜在ニーズ）: [latent needs]
記事のゴール: [article goal]
記事に記載すべき内容: [content requirements]
関連キーワード: [keyword 1], [keyword 2], [keyword 3], [keyword 4]"""


TITLE_PROMPT = """### TASK
Write a Japanese article title of 25-32 characters targeting the reader below.
The title MUST contain the keyword and make the reader want to click.

<keyword>{keyword}</keyword>
<target_reader>{target_audience}</target_reader>
<reader_needs>{explicit_needs}</reader_needs>

### OUTPUT FORMAT
タイトル: [title]"""


OUTLINE_PROMPT = """### TASK
Create the outline of a Japanese SEO article.

<title>{title}</title>
<keyword>{keyword}</keyword>
<target_reader>{target_audience}</target_reader>
<explicit_needs>{explicit_needs}</explicit_needs>
<latent_needs>{latent_needs}</latent_needs>
<article_goal>{article_goal}</article_goal>
<must_cover>{content_requirements}</must_cover>
<related_keywords>{related_keywords}</related_keywords>

### RULES
- Use <h2> for main sections and <h3> for sub-sections.
- 4 to 6 <h2> sections. The last one is a summary.
- Output ONLY the HTML headings, no commentary, no code fences."""


INTRODUCTION_PROMPT = """### TASK
Write the introduction of a Japanese SEO article in 200-300 characters.

<title>{title}</title>
<keyword>{keyword}</keyword>
<target_reader>{target_audience}</target_reader>
<outline>
{outline}
</outline>

### RULES
- Empathise with the reader's problem, then say what the article will give them.
- Wrap each paragraph in <p> tags.
- Output ONLY the HTML, no headings, no code fences."""


BODY_PROMPT = """### TASK
Write the main body of a Japanese SEO article following the outline exactly.

<title>{title}</title>
<keyword>{keyword}</keyword>
<target_reader>{target_audience}</target_reader>
<explicit_needs>{explicit_needs}</explicit_needs>
<latent_needs>{latent_needs}</latent_needs>
<must_cover>{content_requirements}</must_cover>
<related_keywords>{related_keywords}</related_keywords>
<outline>
{outline}
</outline>

### RULES
- Keep every <h2> and <h3> heading from the outline, in order.
- Write 300-500 characters of <p> paragraphs under every heading. Use <ul>/<li> where a list reads better.
- Weave the related keywords in naturally.
- Do NOT repeat the introduction.
- Output ONLY the HTML, no code fences, no <html> or <body> wrappers."""


FAQ_PROMPT = """### TASK
Based on the article below, write 5 frequently asked questions a reader would still have, with concise answers in Japanese.

<title>{title}</title>
<article>
{article_text}
</article>

### OUTPUT FORMAT
Q: [question]
A: [answer]

IMPORTANT: Always use "Q:" and "A:" with half-width letters and colons. Leave one blank line between pairs."""


# =============================================================================
# HELPER PROMPTS
# =============================================================================

TAG_SLUG_PROMPT = """Convert this tag name into a short English URL slug.

<tag>{name}</tag>

Rules:
- At most 3 English words
- lowercase, words separated by hyphens
- letters, digits and hyphens only

Reply with ONLY the slug."""


TRANSLATE_PROMPT = """Translate the following {context} from {source_language} into {target_language}.
Keep HTML tags unchanged. Reply with ONLY the translation.

{text}"""


SUMMARY_PROMPT = """Summarise the following article in {language} in 150-200 characters.
Reply with ONLY the summary.

{text}"""


IMPROVE_IMAGE_PROMPT = """Rewrite this image generation prompt so an image model produces a polished, professional editorial image.

<prompt>
{prompt}
</prompt>

Rules:
- Keep the subject and the style instructions.
- Add concrete detail about composition, lighting and colour.
- No text, letters, logos or watermarks in the image.
- English, under 150 words.

Reply with ONLY the improved prompt."""


FEATURED_IMAGE_SUFFIX = 'This is a featured image for an article titled "{title}".'

INLINE_IMAGE_SUFFIX = 'Section heading: "{heading}"\nThe image should visually represent the content of this section of an article titled "{title}".'
