"""
Framework Analysis Prompts for Claude API

Holds the scoring rubric of every framework and assembles the evaluation
prompt. The same prompt text is used for the automated evaluation and for the
manual replay section of a fallback document, so a human pasting it into any
other assistant gets the identical task.
"""

from typing import Any, Iterable, List, Optional

NOT_AVAILABLE = "N/A"


GOLDEN_CIRCLE_RUBRIC = """Analyze this website using Simon Sinek's Golden Circle framework (Why, How, What, Who).

GOLDEN CIRCLE FRAMEWORK:

WHY (Purpose, Cause, Belief):
- What is the organization's purpose beyond making money?
- What cause does it serve? What belief drives it?

HOW (Process, Methodology, Differentiation):
- How does the organization fulfill its purpose?
- What unique process or methodology does it use?
- How is it different from competitors?

WHAT (Products, Services, Features):
- What products or services does it offer?
- What tangible things does it provide?

WHO (Target Audience, People, Relationships):
- Who is their ideal customer?
- Who believes what they believe?
- Who benefits from their WHY?

Please provide:
1. Overall Golden Circle Score (0-40)
2. WHY score (0-10) with evidence
3. HOW score (0-10) with evidence
4. WHAT score (0-10) with evidence
5. WHO score (0-10) with evidence
6. Alignment assessment between all four elements
7. Top 3 actionable improvements"""


B2C_ELEMENTS_RUBRIC = """Analyze this website using the B2C Elements of Value framework (30 consumer value elements by Bain & Company).

B2C ELEMENTS OF VALUE FRAMEWORK (30 Elements):

FUNCTIONAL (14 elements):
1. saves_time, 2. simplifies, 3. makes_money, 4. reduces_effort, 5. reduces_cost,
6. reduces_risk, 7. organizes, 8. integrates, 9. connects, 10. quality,
11. variety, 12. informs, 13. avoids_hassles, 14. sensory_appeal

EMOTIONAL (10 elements):
15. reduces_anxiety, 16. rewards_me, 17. nostalgia, 18. design_aesthetics,
19. badge_value, 20. wellness, 21. therapeutic, 22. fun_entertainment,
23. attractiveness, 24. provides_access

LIFE-CHANGING (5 elements):
25. provides_hope, 26. self_actualization, 27. motivation, 28. heirloom, 29. affiliation_belonging

SOCIAL IMPACT (1 element):
30. self_transcendence

Please provide:
1. Overall B2C Value Score (0-30), one point per element clearly present
2. Category breakdowns (Functional, Emotional, Life-Changing, Social Impact)
3. Each element scored 0-10 with evidence from the content
4. Missing elements with specific recommendations
5. Top 3 actionable improvements for better consumer value"""


B2B_ELEMENTS_RUBRIC = """Analyze this website using the B2B Elements of Value framework (42 business value elements by Bain & Company).

B2B ELEMENTS OF VALUE FRAMEWORK (42 Elements):

TABLE STAKES (4): meeting_specifications, acceptable_price, regulatory_compliance, ethical_standards

FUNCTIONAL (9):
- Economic: improved_top_line, cost_reduction
- Performance: product_quality, scalability, innovation
- Strategic: risk_reduction, reach, flexibility, component_quality

EASE OF DOING BUSINESS (18):
- Productivity: time_savings, reduced_effort, decreased_hassles, information, transparency
- Operational: organization, simplification, connection, integration
- Access: access, availability, variety, configurability
- Relationship: responsiveness, expertise, commitment, stability, cultural_fit

INDIVIDUAL (7):
- Career: network_expansion, marketability, reputational_assurance
- Personal: design_aesthetics_b2b, growth_development, reduced_anxiety_b2b, fun_perks

INSPIRATIONAL (4): purpose, vision, hope_b2b, social_responsibility

Please provide:
1. Overall B2B Value Score (0-42), one point per element clearly present
2. Category and subcategory breakdowns
3. Each element scored with evidence from the content
4. Missing elements with specific recommendations
5. Top 3 actionable improvements for better B2B value"""


CLIFTON_STRENGTHS_RUBRIC = """Analyze this website using the CliftonStrengths framework (34 themes across 4 domains by Gallup).

CLIFTONSTRENGTHS FRAMEWORK (34 Themes):

STRATEGIC THINKING (8): analytical, context, futuristic, ideation, input, intellection, learner, strategic

EXECUTING (9): achiever, arranger, belief, consistency, deliberative, discipline, focus, responsibility, restorative

INFLUENCING (8): activator, command, communication, competition, maximizer, self_assurance, significance, woo

RELATIONSHIP BUILDING (9): adaptability, connectedness, developer, empathy, harmony, includer, individualization, positivity, relator

Please provide:
1. Overall CliftonStrengths Score (0-34), one point per theme clearly expressed
2. Domain breakdowns (Strategic Thinking, Executing, Influencing, Relationship Building)
3. Top 5 dominant strengths with evidence
4. Present themes with evidence
5. Missing themes with recommendations
6. Top 3 actionable improvements for better strength alignment"""


RESPONSE_FORMAT = """Return ONLY valid JSON (no markdown fences, no commentary) with this structure:
{
  "overall_score": <number on the framework's own scale>,
  "breakdown": {"<category>": {"score": <number>, "evidence": "<quote or observation>"}},
  "strengths": ["<strength>", ...],
  "gaps": ["<missing element or weakness>", ...],
  "recommendations": ["<top improvement>", "<second>", "<third>"],
  "summary": "<two or three sentence assessment>"
}"""


def content_value(content: Any, name: str, default: Any = None) -> Any:
    """
    Read a field from scraped content that may be a model, a dict, or junk.

    Legacy scrape payloads nest SEO fields under ``seo``; those are used when
    the top-level field is empty.
    """
    if content is None:
        return default
    if isinstance(content, dict):
        value = content.get(name)
        seo = content.get("seo")
    else:
        value = getattr(content, name, None)
        seo = getattr(content, "seo", None)
    if value in (None, "", [], {}) and isinstance(seo, dict):
        value = seo.get(name)
    return default if value in (None, "") else value


def join_values(values: Any, limit: Optional[int] = None) -> str:
    if not isinstance(values, Iterable) or isinstance(values, (str, bytes, dict)):
        return NOT_AVAILABLE
    items: List[str] = [str(v).strip() for v in values if str(v).strip()]
    if limit is not None:
        items = items[:limit]
    return ", ".join(items) or NOT_AVAILABLE


def heading_values(content: Any, level: str) -> Any:
    headings = content_value(content, "headings", {})
    if isinstance(headings, dict):
        return headings.get(level) or []
    return getattr(headings, level, None) or []


def format_word_count(content: Any) -> str:
    value = content_value(content, "word_count")
    try:
        return str(int(value))
    except (TypeError, ValueError):
        return NOT_AVAILABLE


def build_content_block(url: str, content: Any, excerpt_chars: int = 3000) -> str:
    """Render the scraped content the rubric is applied to"""
    text = content_value(content, "clean_text")
    excerpt = str(text)[:excerpt_chars] if text else "No content extracted"

    lines = [
        f"URL: {url or NOT_AVAILABLE}",
        "",
        "WEBSITE CONTENT:",
        f"- Title: {content_value(content, 'title', NOT_AVAILABLE)}",
        f"- Meta Description: {content_value(content, 'meta_description', NOT_AVAILABLE)}",
        f"- Word Count: {format_word_count(content)}",
        f"- Keywords: {join_values(content_value(content, 'extracted_keywords'), 10)}",
        f"- H1 Headings: {join_values(heading_values(content, 'h1'))}",
        f"- H2 Headings: {join_values(heading_values(content, 'h2'), 5)}",
        "- Content:",
        excerpt,
    ]
    return "\n".join(lines)


def get_framework_prompt(task_description: str, content_block: str) -> str:
    """
    Generate the complete evaluation prompt for one framework.

    Args:
        task_description: Rubric text from the framework config
        content_block: Output of build_content_block()

    Returns:
        Prompt string that is self-sufficient when pasted into any assistant.
    """
    return (
        "You are an expert marketing strategist scoring a website against a "
        "structured business framework. Base every score strictly on the "
        "content provided; if evidence is missing, score it as absent.\n\n"
        f"{task_description}\n\n"
        "## Website Data\n\n"
        f"{content_block}\n\n"
        "## Response Format\n\n"
        f"{RESPONSE_FORMAT}"
    )


def get_summary_prompt(url: str, framework_lines: List[str], missing: List[str]) -> str:
    """Prompt for the executive summary paragraph of the final report"""
    missing_text = ", ".join(missing) if missing else "none"
    findings = "\n".join(framework_lines)
    return f"""You are writing the executive summary of a website growth report for {url}.

Framework results (normalized 0-100):
{findings}

Frameworks that could not be evaluated automatically: {missing_text}

Write 3-5 sentences for a marketing executive: the strongest positioning signal,
the biggest gap, and the single most valuable next step. Plain text only."""
