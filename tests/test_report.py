import asyncio

import pytest

from analyzer.errors import ErrorKind, SynthesisFailure
from analyzer.fallback import build_fallback_document
from analyzer.frameworks import FrameworkId
from analyzer.models import FrameworkFailure, FrameworkResult
from analyzer.report import ReportSynthesizer
from doubles import make_content


def result(framework_id, score, **data):
    return FrameworkResult(framework_id=framework_id, data=data, score=score)


def failure(framework_id):
    content = make_content()
    return FrameworkFailure(
        framework_id=framework_id,
        error="timeout",
        kind=ErrorKind.TIMEOUT,
        fallback=build_fallback_document(framework_id, content.url, content, "timeout"),
    )


def test_report_summarizes_succeeded_frameworks():
    succeeded = [
        result(FrameworkId.GOLDEN_CIRCLE, 80.0, summary="Strong why", strengths=["Mission"], recommendations=["a", "b", "c", "d"]),
        result(FrameworkId.B2C_ELEMENTS, 40.0, gaps="No pricing page"),
    ]

    report = asyncio.run(ReportSynthesizer().synthesize("https://acme.example", make_content(), succeeded, []))

    assert report.title == "Acme Rockets"
    assert report.overall_score == 60.0
    assert report.partial is False
    golden, b2c = report.frameworks
    assert golden.label == "Golden Circle (Simon Sinek)"
    assert golden.summary == "Strong why"
    assert golden.recommendations == ["a", "b", "c"]
    assert b2c.gaps == ["No pricing page"]


def test_missing_frameworks_make_report_partial():
    report = asyncio.run(
        ReportSynthesizer().synthesize(
            "https://acme.example",
            make_content(),
            [result(FrameworkId.GOLDEN_CIRCLE, 50.0)],
            [failure(FrameworkId.B2B_ELEMENTS)],
        )
    )

    assert report.partial is True
    assert report.missing_frameworks == ["b2b_elements"]
    assert report.fallback_documents == ["b2b_elements"]


def test_executive_summary_is_added():
    prompts = []

    async def summarize(prompt):
        prompts.append(prompt)
        return "  Acme should lead with its mission.  "

    report = asyncio.run(
        ReportSynthesizer(summarize=summarize).synthesize(
            "https://acme.example", make_content(), [result(FrameworkId.GOLDEN_CIRCLE, 50.0)], []
        )
    )

    assert report.executive_summary == "Acme should lead with its mission."
    assert "https://acme.example" in prompts[0]
    assert "Golden Circle (Simon Sinek): 50.0" in prompts[0]


def test_summary_failure_degrades_instead_of_failing():
    async def summarize(prompt):
        raise ConnectionError("api unreachable")

    report = asyncio.run(
        ReportSynthesizer(summarize=summarize).synthesize(
            "https://acme.example", None, [result(FrameworkId.GOLDEN_CIRCLE, None)], []
        )
    )

    assert report.executive_summary is None
    assert report.partial is True
    assert report.overall_score is None


def test_no_results_is_a_synthesis_failure():
    with pytest.raises(SynthesisFailure):
        asyncio.run(
            ReportSynthesizer().synthesize(
                "https://acme.example", make_content(), [], [failure(FrameworkId.GOLDEN_CIRCLE)]
            )
        )
