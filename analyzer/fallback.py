"""
Fallback document builder.

When an automated framework evaluation cannot complete (quota exhausted,
outage, unparseable model output, timeout) the work already done is preserved
as a Markdown document: the collected data plus the exact prompt the
evaluator would have sent, ready to paste into any other assistant.

This is the last line of defense, so build_fallback_document() never raises.
"""

import logging
from typing import Any, Dict, Optional, Union

from analyzer.frameworks import FRAMEWORKS, FrameworkId
from analyzer.models import FallbackDocument
from analyzer.prompts import (
    NOT_AVAILABLE,
    build_content_block,
    content_value,
    get_framework_prompt,
    heading_values,
    join_values,
    format_word_count,
)

logger = logging.getLogger(__name__)

DEFAULT_EXCERPT_CHARS = 3000


def _label_and_rubric(framework_id: Any):
    try:
        config = FRAMEWORKS[FrameworkId(framework_id)]
        return config.framework_id.value, config.label, config.task_description
    except (ValueError, KeyError):
        name = str(getattr(framework_id, "value", framework_id) or "unknown")
        rubric = (
            f"Analyze the website using the {name} framework. Score each "
            "criterion of the framework with evidence from the content, list "
            "what is missing, and give the top 3 actionable improvements."
        )
        return name, name, rubric


def _error_text(error: Any) -> str:
    if error is None:
        return "Unknown error"
    if isinstance(error, BaseException):
        text = str(error) or error.__class__.__name__
    else:
        text = str(error)
    return text.strip() or "Unknown error"


def summarize_content(content: Any) -> Dict[str, str]:
    """Human-readable summary of what was collected, never the raw payload"""
    return {
        "Title": str(content_value(content, "title", NOT_AVAILABLE)),
        "Meta Description": str(content_value(content, "meta_description", NOT_AVAILABLE)),
        "Word Count": format_word_count(content),
        "Keywords": join_values(content_value(content, "extracted_keywords"), 10),
        "H1 Headings": join_values(heading_values(content, "h1")),
        "H2 Headings": join_values(heading_values(content, "h2"), 5),
    }


def build_fallback_document(
    framework_id: Union[FrameworkId, str],
    url: Optional[str],
    collected_content: Any,
    error: Any,
    excerpt_chars: int = DEFAULT_EXCERPT_CHARS,
) -> FallbackDocument:
    """
    Convert a failed evaluation into a replayable document.

    Args:
        framework_id: Framework that failed (unknown ids get a generic rubric)
        url: Analyzed URL
        collected_content: ScrapedContent, a plain dict, or anything partial
        error: Exception or message that ended the automated attempt
        excerpt_chars: Bound on the embedded page text

    Returns:
        FallbackDocument; missing fields are rendered as "N/A".
    """
    name, label, rubric = _label_and_rubric(framework_id)
    try:
        error_message = _error_text(error)
    except Exception:
        error_message = "Unknown error"
    url_text = str(url) if url else NOT_AVAILABLE

    try:
        summary = summarize_content(collected_content)
        content_block = build_content_block(url_text, collected_content, excerpt_chars)
    except Exception as e:
        logger.warning(f"⚠️ Collected content for {name} unusable, using placeholders: {e}")
        summary = summarize_content(None)
        content_block = build_content_block(url_text, None, excerpt_chars)

    document = FallbackDocument(
        framework_id=name,
        framework_label=label,
        url=url_text,
        collected_data_summary=summary,
        replayable_instructions=get_framework_prompt(rubric, content_block),
        error_message=error_message,
    )
    logger.info(f"📝 Fallback document built for {name} ({url_text}): {error_message}")
    return document
