"""
Response parsers for free-text LLM output.

Each stage asks the model for labelled lines ("タイトル: ...") and parses the
reply with line-anchored patterns. A label that does not match degrades to an
empty string; the caller gets a PartiallyParsed result naming what was
missing so it can log the degradation.
"""
import re
from typing import Dict, List, Sequence

from .schemas import (
    FAQEntry, MAX_RELATED_KEYWORDS, Parsed, ParseResult, PartiallyParsed,
    ResearchBrief,
)

_COLON = r"[:：]"

# field -> alternative label patterns (Japanese first, English fallback)
KEYWORD_LABELS = {
    "keyword": [r"キーワード", r"Keyword"],
}

RESEARCH_LABELS = {
    "target_audience": [r"検索ユーザーのペルソナ[（(]人物像[)）]", r"(?:Target audience|Persona)"],
    "explicit_needs": [r"検索意図[（(]顕在ニーズ[)）]", r"Explicit needs?"],
    "latent_needs": [r"検索意図[（(]潜在ニーズ[)）]", r"Latent needs?"],
    "article_goal": [r"記事のゴール", r"Article goal"],
    "content_requirements": [r"記事に記載すべき内容", r"Content requirements?"],
    "related_keywords": [r"関連キーワード", r"Related keywords?"],
}

TITLE_LABELS = {
    "title": [r"タイトル", r"Title"],
}

_FAQ_PATTERN = re.compile(
    r"[QＱ][:：]\s*([^\n]+)\s*\n\s*[AＡ][:：]\s*([^\n]+(?:\n(?![QＱ][:：])[^\n]+)*)",
    re.IGNORECASE,
)

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def _label_pattern(alternatives: Sequence[str]) -> re.Pattern:
    # Optional list markers and bold markup are common around labels
    labels = "|".join(f"(?:{a})" for a in alternatives)
    return re.compile(
        rf"^[ \t]*(?:[-*・•][ \t]*)?(?:\*\*)?(?:{labels})(?:\*\*)?[ \t]*{_COLON}[ \t]*(?:\*\*)?[ \t]*(.+?)[ \t]*$",
        re.IGNORECASE | re.MULTILINE,
    )


def parse_labeled_fields(text: str, labels: Dict[str, Sequence[str]]) -> ParseResult:
    """Extract one value per label; the first matching line wins."""
    fields: Dict[str, str] = {}
    missing: List[str] = []
    text = text or ""

    for field, alternatives in labels.items():
        match = _label_pattern(alternatives).search(text)
        value = _strip_brackets(match.group(1)) if match else ""
        fields[field] = value
        if not value:
            missing.append(field)

    if missing:
        return PartiallyParsed(fields=fields, missing=missing)
    return Parsed(fields=fields)


def _strip_brackets(value: str) -> str:
    value = value.strip().strip("*").strip()
    if len(value) >= 2 and value[0] in "[「『\"" and value[-1] in "]」』\"":
        value = value[1:-1].strip()
    return value


def parse_keyword(text: str) -> ParseResult:
    return parse_labeled_fields(text, KEYWORD_LABELS)


def parse_title(text: str) -> ParseResult:
    return parse_labeled_fields(text, TITLE_LABELS)


def parse_research(text: str) -> tuple:
    """
    Parse the research reply into a ResearchBrief.

    Returns (brief, parse_result) so callers can log which fields were missing.
    """
    result = parse_labeled_fields(text, RESEARCH_LABELS)
    fields = result.fields
    brief = ResearchBrief(
        target_audience=fields["target_audience"],
        explicit_needs=fields["explicit_needs"],
        latent_needs=fields["latent_needs"],
        article_goal=fields["article_goal"],
        content_requirements=fields["content_requirements"],
        related_keywords=split_related_keywords(fields["related_keywords"]),
    )
    return brief, result


def split_related_keywords(text: str, limit: int = MAX_RELATED_KEYWORDS) -> List[str]:
    """Split on ASCII or Japanese commas, dropping blanks and duplicates."""
    keywords: List[str] = []
    for part in re.split(r"[,、，]", text or ""):
        keyword = _strip_brackets(part)
        if keyword and keyword not in keywords:
            keywords.append(keyword)
    return keywords[:limit]


def parse_faq(text: str) -> List[FAQEntry]:
    """
    Extract Q/A pairs.

    Half- and full-width Q, A and colons are accepted. Multi-line answers are
    joined with spaces. Malformed pairs are dropped; no pairs gives [].
    """
    entries = []
    for match in _FAQ_PATTERN.finditer(text or ""):
        question = match.group(1).strip()
        answer = _WHITESPACE_PATTERN.sub(" ", match.group(2).replace("\n", " ")).strip()
        if question and answer:
            entries.append(FAQEntry(question=question, answer=answer))
    return entries


def strip_code_fences(text: str) -> str:
    text = re.sub(r"```(?:html)?\s*", "", text or "", flags=re.IGNORECASE)
    return text.strip()


def clean_body_html(text: str) -> str:
    """Normalise model HTML so headings and paragraphs sit on their own lines."""
    html = strip_code_fences(text)
    html = re.sub(r"\n{3,}", "\n\n", html)
    html = re.sub(r">\s+<", "><", html)
    html = re.sub(r"</p>\s*<p>", "</p>\n<p>", html)
    html = re.sub(r"</h2>\s*<p>", "</h2>\n<p>", html)
    html = re.sub(r"</h3>\s*<p>", "</h3>\n<p>", html)
    return html.strip()


def html_to_plain_text(html: str) -> str:
    text = _TAG_PATTERN.sub(" ", html or "")
    return _WHITESPACE_PATTERN.sub(" ", text).strip()
