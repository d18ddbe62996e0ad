"""Tests for the command-line interface."""

import json
from pathlib import Path
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from vote_nearby.cli import app
from vote_nearby.models import Coordinates

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point log and cache files at a temporary directory."""
    monkeypatch.setenv("VOTE_NEARBY_LOG_LEVEL", "ERROR")
    monkeypatch.setenv("VOTE_NEARBY_LOG_FILE", str(tmp_path / "logs" / "cli.log"))
    monkeypatch.setenv("VOTE_NEARBY_CACHE_FILE", str(tmp_path / "cache.json"))
    return tmp_path


@pytest.fixture
def address_file(tmp_path: Path) -> Path:
    path = tmp_path / "addresses.csv"
    path.write_text("id,street,city,state,zip\na1,100 Main St,Charlotte,NC,28202\n")
    return path


@pytest.fixture
def voter_file(tmp_path: Path) -> Path:
    path = tmp_path / "voters.json"
    path.write_text(
        json.dumps(
            [
                {
                    "voter_id": "V1",
                    "first_name": "Ann",
                    "last_name": "Lee",
                    "date_of_birth": "1970-01-01",
                    "residential_address": "5 Close St",
                    "city": "Charlotte",
                    "state": "NC",
                    "zip": "28202",
                    "lat": 35.228,
                    "lng": -80.8431,
                }
            ]
        )
    )
    return path


class TestGeocodeCommand:
    """Tests for the geocode command."""

    @patch("vote_nearby.cli.GeocodeServiceRegistry.get_service")
    def test_geocode_writes_cache_and_output(
        self, mock_get_service, address_file: Path, isolated_settings: Path
    ):
        """Test a full run against a stubbed provider."""
        service = Mock()
        service.service_name = "census"
        service.geocode_batch.return_value = {"0-0": Coordinates(lat=35.22, lng=-80.84)}
        mock_get_service.return_value = service
        output = isolated_settings / "out.json"

        result = runner.invoke(
            app, ["geocode", str(address_file), "--addresses", "--output", str(output)]
        )

        assert result.exit_code == 0, result.output
        cache = json.loads((isolated_settings / "cache.json").read_text())
        assert cache == {"100 main st|charlotte|nc|28202": {"lat": 35.22, "lng": -80.84}}
        assert json.loads(output.read_text()) == [{"id": "a1", "lat": 35.22, "lng": -80.84}]

    @patch("vote_nearby.cli.GeocodeServiceRegistry.get_service")
    def test_geocode_with_individual_service(
        self, mock_get_service, address_file: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Test the notice when the batch service geocodes one address per request."""
        monkeypatch.setenv("VOTE_NEARBY_BATCH_GEOCODE_SERVICE", "nominatim")
        service = Mock()
        service.service_name = "nominatim"
        service.geocode_batch.return_value = {}
        mock_get_service.return_value = service

        result = runner.invoke(app, ["geocode", str(address_file), "--addresses"])

        assert result.exit_code == 0, result.output
        assert "batches run one at a time" in result.output
        assert "Batch services: census" in result.output

    def test_geocode_rejects_batch_size(self, address_file: Path):
        """Test the provider batch limit."""
        result = runner.invoke(app, ["geocode", str(address_file), "--batch-size", "20000"])

        assert result.exit_code == 1

    def test_geocode_missing_file(self, tmp_path: Path):
        """Test the missing input file error."""
        result = runner.invoke(app, ["geocode", str(tmp_path / "nope.csv")])

        assert result.exit_code == 1
        assert "File not found" in result.output


class TestApplyAndStatus:
    """Tests for the apply and cache-status commands."""

    def test_apply_uses_cache_only(self, address_file: Path, isolated_settings: Path):
        """Test that unresolved addresses come back with null coordinates."""
        (isolated_settings / "cache.json").write_text(
            json.dumps({"100 main st|charlotte|nc|28202": None})
        )
        output = isolated_settings / "applied.csv"

        result = runner.invoke(app, ["apply", str(address_file), str(output), "--addresses"])

        assert result.exit_code == 0, result.output
        assert output.read_text().splitlines() == ["id,lat,lng", "a1,,"]

    def test_cache_status(self, isolated_settings: Path):
        """Test the resolved and unresolved counts table."""
        (isolated_settings / "cache.json").write_text(
            json.dumps({"a": {"lat": 1.0, "lng": 2.0}, "b": None})
        )

        result = runner.invoke(app, ["cache-status"])

        assert result.exit_code == 0
        assert "Resolved" in result.output
        assert "50.0%" in result.output


class TestNearbyCommand:
    """Tests for the nearby command."""

    def test_invalid_state(self, voter_file: Path):
        """Test that validation errors exit with code 1."""
        result = runner.invoke(app, ["nearby", str(voter_file), "--state", "North", "--zip", "28202"])

        assert result.exit_code == 1
        assert "Invalid search" in result.output

    @patch("vote_nearby.cli.GeocodeServiceRegistry.get_service")
    def test_nearby_json(self, mock_get_service, voter_file: Path):
        """Test the JSON response is sanitized."""
        service = Mock()
        service.geocode_address.return_value = Coordinates(lat=35.227, lng=-80.8431)
        mock_get_service.return_value = service

        result = runner.invoke(
            app, ["nearby", str(voter_file), "--state", "NC", "--address", "1 Main St, 28202", "--json"]
        )

        assert result.exit_code == 0, result.output
        response = json.loads(result.output)
        assert response["total"] == 1
        assert response["center_lat"] == 35.227
        assert "voter_id" not in response["voters"][0]
        assert response["voters"][0]["birth_year"] == "1970"
