import json
from unittest.mock import patch

import pytest
import requests

from conftest import make_samples
from farmsight.core.errors import ExternalServiceError
from farmsight.services.stress.analyzer import (
    LlmStressAnalyzer,
    RuleBasedStressAnalyzer,
    StressDetector,
    parse_text_response,
)
from farmsight.services.stress.classifier import StressLevel

METADATA = {"coordinates": "-7.456,110.123", "crop_type": "rice", "area": 12.5}


def llm():
    return LlmStressAnalyzer("https://llm.example.com/v1/chat", "key", "test-model", timeout=5)


def chat_reply(content):
    return {"choices": [{"message": {"content": content}}]}


def test_rule_based_assessment():
    assessment = RuleBasedStressAnalyzer().analyze(make_samples([0.35, 0.45, 0.55]), METADATA)

    assert assessment.stress_level is StressLevel.HIGH
    assert assessment.model == "rule-based"
    assert assessment.current_ndvi == 0.35
    assert assessment.average_ndvi == pytest.approx(0.45)
    assert "escalated" in assessment.analysis


@patch("farmsight.services.stress.analyzer.requests.post")
def test_llm_json_reply(mock_post):
    mock_post.return_value.json.return_value = chat_reply(
        json.dumps(
            {
                "stressLevel": "high",
                "confidence": 0.85,
                "recommendations": ["Irrigate within 48 hours"],
                "analysis": "Water deficit",
                "riskFactors": ["heat"],
            }
        )
    )

    assessment = llm().analyze(make_samples([0.28, 0.3, 0.33]), METADATA)

    assert assessment.stress_level is StressLevel.HIGH
    assert assessment.confidence == 0.85
    assert assessment.risk_factors == ["heat"]
    assert assessment.model == "llm"

    _, kwargs = mock_post.call_args
    assert kwargs["timeout"] == 5
    assert kwargs["headers"]["Authorization"] == "Bearer key"
    assert "Declining" in kwargs["json"]["messages"][1]["content"]


@patch("farmsight.services.stress.analyzer.requests.post")
def test_llm_text_reply_is_read_by_keyword(mock_post):
    mock_post.return_value.json.return_value = chat_reply("Crops look under severe water stress.")

    assessment = llm().analyze(make_samples([0.3, 0.3, 0.3]), METADATA)

    assert assessment.stress_level is StressLevel.SEVERE
    assert assessment.confidence == 0.7


@patch("farmsight.services.stress.analyzer.requests.post")
def test_llm_network_failure_raises(mock_post):
    mock_post.side_effect = requests.ConnectionError("unreachable")

    with pytest.raises(ExternalServiceError):
        llm().analyze(make_samples([0.3, 0.3, 0.3]), METADATA)


@patch("farmsight.services.stress.analyzer.requests.post")
def test_llm_unknown_level_raises(mock_post):
    mock_post.return_value.json.return_value = chat_reply(json.dumps({"stressLevel": "purple"}))

    with pytest.raises(ExternalServiceError):
        llm().analyze(make_samples([0.3, 0.3, 0.3]), METADATA)


@patch("farmsight.services.stress.analyzer.requests.post")
def test_detector_falls_back_to_rules(mock_post):
    mock_post.side_effect = requests.Timeout("slow")

    assessment = StressDetector(primary=llm()).detect(make_samples([0.82, 0.8, 0.78]), METADATA)

    assert assessment.model == "rule-based"
    assert assessment.stress_level is StressLevel.HEALTHY


@pytest.mark.parametrize(
    "payload",
    [
        {"choices": ["severe stress"]},
        {"choices": [{"message": "severe stress"}]},
        {"choices": "severe stress"},
        ["severe stress"],
        {"choices": [{"message": {"content": None}}]},
        {},
    ],
)
@patch("farmsight.services.stress.analyzer.requests.post")
def test_malformed_reply_falls_back_to_rules(mock_post, payload):
    mock_post.return_value.json.return_value = payload

    with pytest.raises(ExternalServiceError):
        llm().analyze(make_samples([0.15, 0.2, 0.25]), METADATA)

    assessment = StressDetector(primary=llm()).detect(make_samples([0.15, 0.2, 0.25]), METADATA)
    assert assessment.model == "rule-based"
    assert assessment.stress_level is StressLevel.SEVERE


@pytest.mark.parametrize(
    "content",
    [
        '{"stressLevel": "high", "confidence": NaN}',
        '{"stressLevel": "high", "confidence": Infinity}',
    ],
)
@patch("farmsight.services.stress.analyzer.requests.post")
def test_non_finite_confidence_falls_back_to_rules(mock_post, content):
    mock_post.return_value.json.return_value = chat_reply(content)

    with pytest.raises(ExternalServiceError):
        llm().analyze(make_samples([0.25, 0.26, 0.27]), METADATA)

    assessment = StressDetector(primary=llm()).detect(make_samples([0.25, 0.26, 0.27]), METADATA)
    assert assessment.model == "rule-based"
    assert 0.0 <= assessment.confidence <= 1.0


@patch("farmsight.services.stress.analyzer.requests.post")
def test_non_string_list_items_are_coerced(mock_post):
    mock_post.return_value.json.return_value = chat_reply(
        json.dumps({"stressLevel": "low", "confidence": 0.75, "recommendations": "water", "riskFactors": [3, None]})
    )

    assessment = llm().analyze(make_samples([0.45, 0.46, 0.47]), METADATA)

    assert assessment.recommendations == ["Monitor crop conditions"]
    assert assessment.risk_factors == ["3"]


def test_detector_without_primary_uses_rules():
    assessment = StressDetector().detect(make_samples([0.15, 0.2, 0.25]), METADATA)

    assert assessment.model == "rule-based"
    assert assessment.stress_level is StressLevel.SEVERE


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Critical condition", "severe"),
        ("serious decline", "high"),
        ("only mild yellowing", "low"),
        ("Field looks good", "healthy"),
        ("hard to say", "moderate"),
    ],
)
def test_parse_text_response(text, expected):
    assert parse_text_response(text)["stressLevel"] == expected
