from analyzer.fallback import build_fallback_document
from analyzer.frameworks import FrameworkId
from doubles import make_content


def test_document_embeds_summary_prompt_and_error():
    content = make_content()

    doc = build_fallback_document(
        FrameworkId.GOLDEN_CIRCLE, content.url, content, RuntimeError("credit balance too low")
    )

    assert doc.framework_id == "golden_circle"
    assert doc.framework_label == "Golden Circle (Simon Sinek)"
    assert doc.url == "https://acme.example"
    assert doc.error_message == "credit balance too low"
    assert doc.collected_data_summary["Title"] == "Acme Rockets"
    assert doc.collected_data_summary["Word Count"] == "420"
    assert doc.collected_data_summary["H2 Headings"] == "Why Acme, Pricing"
    assert "Golden Circle" in doc.replayable_instructions
    assert "Acme builds reliable rockets" in doc.replayable_instructions
    assert "overall_score" in doc.replayable_instructions


def test_markdown_rendering_is_self_contained():
    content = make_content()
    doc = build_fallback_document(FrameworkId.B2C_ELEMENTS, content.url, content, "timeout")

    markdown = doc.to_markdown()

    assert markdown.startswith("# B2C Elements of Value (Bain & Company) - Analysis Prompt")
    assert "> **Error:** timeout" in markdown
    assert "| **Title** | Acme Rockets |" in markdown
    assert "## AI Analysis Prompt" in markdown
    assert doc.replayable_instructions in markdown


def test_missing_fields_render_as_not_available():
    doc = build_fallback_document(FrameworkId.CLIFTON_STRENGTHS, None, {"title": "Only a title"}, "boom")

    summary = doc.collected_data_summary
    assert summary["Title"] == "Only a title"
    assert summary["Meta Description"] == "N/A"
    assert summary["Word Count"] == "N/A"
    assert summary["Keywords"] == "N/A"
    assert doc.url == "N/A"
    assert "No content extracted" in doc.replayable_instructions


def test_keywords_and_h2_are_bounded():
    content = make_content()
    content.extracted_keywords = [f"kw{i}" for i in range(25)]
    content.headings.h2 = [f"Section {i}" for i in range(9)]

    summary = build_fallback_document(FrameworkId.GOLDEN_CIRCLE, content.url, content, "x").collected_data_summary

    assert summary["Keywords"].split(", ") == [f"kw{i}" for i in range(10)]
    assert summary["H2 Headings"].split(", ") == [f"Section {i}" for i in range(5)]


def test_excerpt_is_bounded():
    content = make_content()
    content.clean_text = "x" * 5000

    doc = build_fallback_document(FrameworkId.GOLDEN_CIRCLE, content.url, content, "x", excerpt_chars=3000)

    assert "x" * 3000 in doc.replayable_instructions
    assert "x" * 3001 not in doc.replayable_instructions


def test_legacy_seo_payload_is_understood():
    payload = {"seo": {"title": "Legacy Title", "meta_description": "Legacy meta"}, "word_count": 12}

    summary = build_fallback_document("golden_circle", "https://old.example", payload, "x").collected_data_summary

    assert summary["Title"] == "Legacy Title"
    assert summary["Meta Description"] == "Legacy meta"
    assert summary["Word Count"] == "12"


def test_unknown_framework_gets_generic_prompt():
    doc = build_fallback_document("porter_five_forces", "https://acme.example", make_content(), "x")

    assert doc.framework_id == "porter_five_forces"
    assert "porter_five_forces framework" in doc.replayable_instructions


def test_never_raises_on_unusable_input():
    class Exploding:
        def __getattr__(self, name):
            raise RuntimeError("no attribute access for you")

    class BadError(Exception):
        def __str__(self):
            raise RuntimeError("cannot render")

    doc = build_fallback_document(None, None, Exploding(), BadError())

    assert doc.error_message == "Unknown error"
    assert doc.collected_data_summary["Title"] == "N/A"
    assert doc.to_markdown()


def test_missing_error_becomes_unknown_error():
    doc = build_fallback_document(FrameworkId.GOLDEN_CIRCLE, "https://acme.example", None, None)

    assert doc.error_message == "Unknown error"
