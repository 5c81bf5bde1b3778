"""Tests for cloudflared output classification."""

import pytest

from pocket_share.tunnel.output import OutputClassifier, OutputKind


class TestOutputClassifier:
    @pytest.mark.parametrize(
        "line",
        [
            "2024-01-01T00:00:00Z INF Registered tunnel connection connIndex=0 location=ams01",
            "INF Registered tunnel connection connIndex=3",
        ],
    )
    def test_ready_lines(self, line):
        assert OutputClassifier().classify(line) is OutputKind.READY

    @pytest.mark.parametrize(
        "line",
        [
            "2024-01-01T00:00:00Z ERR Failed to serve quic connection",
            "2024-01-01T00:00:00Z FTL tunnel credentials file not found",
            "ERR",
        ],
    )
    def test_fatal_lines(self, line):
        assert OutputClassifier().classify(line) is OutputKind.FATAL

    @pytest.mark.parametrize(
        "line",
        [
            "2024-01-01T00:00:00Z INF Starting tunnel tunnelID=abc",
            "INF Generated Connector ID: ERRATIC",
            "",
        ],
    )
    def test_other_lines_are_connecting(self, line):
        assert OutputClassifier().classify(line) is OutputKind.CONNECTING

    def test_markers_can_be_swapped(self):
        class CustomClassifier(OutputClassifier):
            READY_MARKERS = ("Connection registered",)

        classifier = CustomClassifier()

        assert classifier.classify("Connection registered") is OutputKind.READY
        assert classifier.classify("Registered tunnel connection") is OutputKind.CONNECTING
