"""
Tests for the command line entry point.
"""

import json
from unittest.mock import MagicMock, patch

from query_understanding.__main__ import create_parser, main
from query_understanding.exceptions import ConfigurationError
from query_understanding.feature_flags import flags


class TestParser:
    """Argument parsing"""

    def test_query_and_flags(self):
        args = create_parser().parse_args(["ECE 2005 batch", "--no-llm", "--json"])
        assert args.query == "ECE 2005 batch"
        assert args.no_llm is True
        assert args.json is True
        assert args.status is False


class TestMain:
    """main() end to end, regex only"""

    def test_no_arguments_prints_help(self, capsys):
        assert main([]) == 2
        assert "usage" in capsys.readouterr().out.lower()

    def test_json_output(self, capsys):
        assert main(["ECE people from 2005 batch", "--no-llm", "--json"]) == 0

        result = json.loads(capsys.readouterr().out)
        assert result["intent"] == "find_peers"
        assert result["entities"]["graduation_year"] == [2005]
        assert result["extraction_method"] == "regex"
        assert flags.llm_escalation is False

    def test_readable_output(self, capsys):
        main(["Find web development companies in Chennai", "--no-llm"])

        out = capsys.readouterr().out
        assert "find_business" in out
        assert "Chennai" in out

    def test_status_without_backend(self, capsys):
        with patch("query_understanding.__main__.create_gateway",
                   side_effect=ConfigurationError("no keys")):
            assert main(["--status"]) == 0

        captured = capsys.readouterr()
        assert "No generation backend configured" in captured.out
        assert "unavailable" in captured.err

    def test_query_and_status_json_is_one_document(self, capsys):
        assert main(["ECE people from 2005 batch", "--no-llm", "--status", "--json"]) == 0

        document = json.loads(capsys.readouterr().out)
        assert document["parsed"]["intent"] == "find_peers"
        assert document["status"] is None

    def test_status_json(self, capsys):
        gateway = MagicMock()
        gateway.get_backend_status.return_value = [
            {"name": "deepinfra", "circuit_open": False, "consecutive_failures": 0},
        ]
        gateway.get_stats_dict.return_value = {"total_requests": 0}
        with patch("query_understanding.__main__.create_gateway", return_value=gateway):
            assert main(["--status", "--json"]) == 0

        document = json.loads(capsys.readouterr().out)
        assert document["backends"][0]["name"] == "deepinfra"
        assert document["stats"] == {"total_requests": 0}
