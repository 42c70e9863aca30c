"""Tests for the command-line interface."""

import json
from unittest.mock import MagicMock, patch

import pytest

from threat_classifier.cli import create_parser, main
from threat_classifier.models.analysis import AIAnalysis
from threat_classifier.services.threat_analyzer import AIGatewayError


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "bag.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)
    return path


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "threat-classifier" in capsys.readouterr().out


def test_scenarios_command(capsys):
    assert main(["scenarios"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert len(out) == 5
    assert out[0].startswith("firearm-correct")


def test_demo_command_prints_json(capsys):
    assert main(["demo", "explosive-real"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert result["threatLevel"] == "CRITICAL"
    assert result["riskAssessment"]["isBombThreat"] is True


def test_demo_command_with_location(capsys):
    assert main(["demo", "firearm-correct", "--location", "Gate 7"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert "Location context: Gate 7" in result["riskAssessment"]["contextualFactors"]


def test_demo_unknown_scenario(capsys):
    assert main(["demo", "nope"]) == 1
    assert "Unknown demo scenario 'nope'" in capsys.readouterr().out


def test_classify_missing_file(tmp_path, capsys):
    assert main(["classify", str(tmp_path / "missing.png")]) == 1
    assert "File not found" in capsys.readouterr().out


def test_classify_without_api_key(image_file, capsys):
    assert main(["classify", str(image_file)]) == 1
    assert "GEMINI_API_KEY" in capsys.readouterr().out


@patch("threat_classifier.services.image_validator.magic.from_buffer", return_value="image/png")
@patch("threat_classifier.cli.analyze_image")
@patch("threat_classifier.cli.get_gemini_client")
def test_classify_success(mock_client, mock_analyze, mock_magic, image_file, capsys):
    mock_client.return_value = MagicMock()
    mock_analyze.return_value = AIAnalysis.model_validate({
        "detected": True,
        "primaryClass": "laptop",
        "confidence": 0.95,
        "explanation": "A laptop.",
    })

    assert main(["classify", str(image_file), "--xray"]) == 0

    result = json.loads(capsys.readouterr().out)
    assert result["primaryClass"] == "benign_object"
    assert result["modality"] == "X-RAY"
    assert mock_analyze.call_args.args[3] is True


@patch("threat_classifier.services.image_validator.magic.from_buffer", return_value="image/png")
@patch("threat_classifier.cli.analyze_image")
@patch("threat_classifier.cli.get_gemini_client")
def test_classify_gateway_error(mock_client, mock_analyze, mock_magic, image_file, capsys):
    mock_client.return_value = MagicMock()
    mock_analyze.side_effect = AIGatewayError(402, "credits")

    assert main(["classify", str(image_file)]) == 1
    assert "Analysis failed" in capsys.readouterr().out


def test_serve_defaults():
    args = create_parser().parse_args(["serve"])

    assert args.host == "127.0.0.1"
    assert args.port == 8000
    assert args.reload is False
