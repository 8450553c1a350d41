"""Tests for roundtable/moderator.py."""

import json
import math

import pytest

from roundtable.models import AgentResponse, DebateRound, Intervention
from roundtable.moderator import (
    FAILURE_PREFIX,
    AssessmentParseError,
    RawAssessment,
    build_convergence_prompt,
    clamp_confidence,
    decode_assessment,
    evaluate_convergence,
    finalize_assessment,
)
from roundtable.providers.base import ErrorKind, ProviderError
from tests.conftest import CONVERGED, MockChatClient

TOPIC = "What is the best programming language?"


def _verdict(converged, score, reasoning="ok") -> str:
    return json.dumps({"isConverged": converged, "confidenceScore": score, "reasoning": reasoning})


# --- decode_assessment ---

def test_decode_plain_json():
    raw = decode_assessment(_verdict(True, 0.9, "aligned"))
    assert raw == RawAssessment(is_converged=True, confidence_score=0.9, reasoning="aligned")


def test_decode_json_wrapped_in_prose():
    text = 'Here is my verdict:\n```json\n{"isConverged": false, "confidenceScore": 0.4, "reasoning": "split"}\n```\nThanks.'
    raw = decode_assessment(text)
    assert raw.is_converged is False
    assert raw.confidence_score == 0.4


def test_decode_skips_unbalanced_brace_before_object():
    text = 'Note {not json here. ' + _verdict(True, 0.7)
    assert decode_assessment(text).confidence_score == 0.7


def test_decode_takes_first_object():
    text = _verdict(False, 0.1, "first") + " and later " + _verdict(True, 0.9, "second")
    assert decode_assessment(text).reasoning == "first"


def test_decode_integer_score():
    assert decode_assessment(_verdict(True, 1)).confidence_score == 1.0


@pytest.mark.parametrize(
    "text, message",
    [
        ("no json at all", "No JSON"),
        ('{"confidenceScore": 0.5, "reasoning": "x"}', "isConverged"),
        ('{"isConverged": "yes", "confidenceScore": 0.5, "reasoning": "x"}', "isConverged"),
        ('{"isConverged": true, "confidenceScore": "high", "reasoning": "x"}', "confidenceScore"),
        ('{"isConverged": true, "confidenceScore": true, "reasoning": "x"}', "confidenceScore"),
        ('{"isConverged": true, "confidenceScore": 0.5}', "reasoning"),
        ('{"isConverged": true, "confidenceScore": 0.5, "reasoning": 3}', "reasoning"),
    ],
)
def test_decode_rejects_malformed(text, message):
    with pytest.raises(AssessmentParseError, match=message):
        decode_assessment(text)


def test_decode_huge_integer_does_not_overflow():
    raw = decode_assessment('{"isConverged": true, "confidenceScore": ' + "9" * 400 + ', "reasoning": "x"}')
    assert raw.confidence_score == math.inf


# --- clamping / finalize ---

@pytest.mark.parametrize(
    "score, expected",
    [(-3.0, 0.0), (0.0, 0.0), (0.42, 0.42), (1.0, 1.0), (7.5, 1.0), (math.inf, 1.0), (-math.inf, 0.0), (math.nan, 0.0)],
)
def test_clamp_confidence(score, expected):
    assert clamp_confidence(score) == expected


def test_nan_score_from_reply_is_clamped():
    raw = decode_assessment('{"isConverged": true, "confidenceScore": NaN, "reasoning": "x"}')
    assessment = finalize_assessment(raw, 0.5)
    assert assessment.confidence_score == 0.0
    assert assessment.is_converged is False


def test_finalize_requires_threshold():
    low = finalize_assessment(RawAssessment(True, 0.6, "claims agreement"), threshold=0.8)
    assert low.is_converged is False
    assert low.confidence_score == 0.6

    high = finalize_assessment(RawAssessment(True, 0.85, "agree"), threshold=0.8)
    assert high.is_converged is True


def test_finalize_respects_model_flag():
    assessment = finalize_assessment(RawAssessment(False, 0.99, "still split"), threshold=0.5)
    assert assessment.is_converged is False


def test_finalize_score_equal_to_threshold_converges():
    assert finalize_assessment(RawAssessment(True, 0.8, "x"), threshold=0.8).is_converged is True


# --- prompt ---

def test_prompt_excludes_errored_responses():
    rounds = [
        DebateRound(
            number=1,
            responses=[
                AgentResponse(model="deepseek", content="Python is best."),
                AgentResponse(model="gpt-5", content="", error="Failed after 3 attempts: boom"),
            ],
        )
    ]
    prompt = build_convergence_prompt(TOPIC, rounds, 0.8, "CRITERIA")
    assert TOPIC in prompt
    assert "Convergence Threshold: 0.8" in prompt
    assert "=== Round 1 ===" in prompt
    assert "deepseek: Python is best." in prompt
    assert "gpt-5" not in prompt
    assert "boom" not in prompt
    assert prompt.endswith("CRITERIA")


def test_prompt_includes_user_guidance(sample_round):
    prompt = build_convergence_prompt(TOPIC, [sample_round], 0.8, "C", [Intervention("Consider speed.", 1)])
    assert "User guidance: Consider speed." in prompt


# --- evaluate_convergence ---

async def test_evaluate_no_rounds_makes_no_call(sample_app_config):
    client = MockChatClient()
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [], 0.8, sample_app_config)
    assert assessment.is_converged is False
    assert assessment.confidence_score == 0.0
    assert assessment.reasoning == "No rounds to evaluate"
    assert client.calls == []


async def test_evaluate_converged(sample_app_config, sample_round):
    client = MockChatClient(moderator=CONVERGED)
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert assessment.is_converged is True
    assert assessment.confidence_score == 0.85

    call = client.calls_for("moderator")[0]
    assert call.model == "deepseek"
    assert (call.temperature, call.max_tokens) == (0.3, 500)
    assert call.messages[0].content == sample_app_config.prompts.moderator_system
    assert sample_app_config.prompts.moderator_instructions in call.messages[1].content


async def test_evaluate_low_confidence_overrides_claim(sample_app_config, sample_round):
    client = MockChatClient(moderator=_verdict(True, 0.5))
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert assessment.is_converged is False


async def test_evaluate_out_of_range_clamped(sample_app_config, sample_round):
    client = MockChatClient(moderator=_verdict(True, 42))
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert assessment.confidence_score == 1.0
    assert assessment.is_converged is True


async def test_evaluate_provider_failure_falls_back(sample_app_config, sample_round):
    client = MockChatClient(moderator=ProviderError("deepseek", "429 rate limited", ErrorKind.RATE_LIMITED))
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert assessment.is_converged is False
    assert assessment.confidence_score == 0.0
    assert assessment.reasoning.startswith(FAILURE_PREFIX)
    assert "failed" in assessment.reasoning
    assert "429" in assessment.reasoning


async def test_evaluate_unexpected_failure_falls_back(sample_app_config, sample_round):
    client = MockChatClient(moderator=RuntimeError("socket closed"))
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert "failed" in assessment.reasoning
    assert assessment.is_converged is False


async def test_evaluate_unparseable_reply_falls_back(sample_app_config, sample_round, caplog):
    client = MockChatClient(moderator="I think they mostly agree, consensus reached.")
    with caplog.at_level("WARNING"):
        assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert assessment.is_converged is False
    assert assessment.confidence_score == 0.0
    assert "failed" in assessment.reasoning
    assert "consensus reached" in assessment.reasoning  # raw preview kept
    assert any("Could not parse moderator reply" in m for m in caplog.messages)


async def test_evaluate_empty_reply_falls_back(sample_app_config, sample_round):
    client = MockChatClient(moderator="  ")
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert "failed" in assessment.reasoning


@pytest.mark.parametrize(
    "reply",
    [
        _verdict(True, -5),
        _verdict(True, 1e308),
        '{"isConverged": true, "confidenceScore": Infinity, "reasoning": "x"}',
        '{"isConverged": true, "confidenceScore": -Infinity, "reasoning": "x"}',
        '{"isConverged": true, "confidenceScore": NaN, "reasoning": "x"}',
        "{broken",
        "",
    ],
)
async def test_evaluate_score_always_finite_and_bounded(sample_app_config, sample_round, reply):
    client = MockChatClient(moderator=reply)
    assessment = await evaluate_convergence(client, "deepseek", TOPIC, [sample_round], 0.8, sample_app_config)
    assert math.isfinite(assessment.confidence_score)
    assert 0.0 <= assessment.confidence_score <= 1.0
