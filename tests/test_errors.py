"""
Tests for custom exception hierarchy.
"""

import pytest

from wayfield.core.errors import (
    AmbiguousJunctionError,
    ChunkGenerationError,
    ConfigurationError,
    InvalidGeometryError,
    PathNotFoundError,
    RateLimitedError,
    RegionUnavailableError,
    ValidationError,
    WayfieldException,
)


class TestWayfieldException:
    """Tests for base WayfieldException class."""

    def test_basic_exception(self):
        """Test basic exception creation."""
        exc = WayfieldException(message="Test error", error_code="TEST_ERROR")

        assert str(exc) == "TEST_ERROR: Test error"
        assert exc.message == "Test error"
        assert exc.error_code == "TEST_ERROR"
        assert exc.details == {}
        assert exc.suggestions == []

    def test_to_dict(self):
        """Test conversion to dictionary."""
        exc = WayfieldException(
            message="Test error",
            error_code="TEST_ERROR",
            details={"key": "value"},
            suggestions=["Fix it"],
        )

        assert exc.to_dict() == {
            "error_code": "TEST_ERROR",
            "message": "Test error",
            "details": {"key": "value"},
            "suggestions": ["Fix it"],
        }

    def test_repr(self):
        """Test debug representation."""
        exc = WayfieldException(message="boom", error_code="X")
        assert repr(exc) == "WayfieldException(error_code='X', message='boom')"

    def test_can_be_raised(self):
        """Test exception can be raised and caught."""
        with pytest.raises(WayfieldException) as exc_info:
            raise WayfieldException("Test", "TEST")
        assert exc_info.value.message == "Test"


class TestSpecificExceptions:
    """Tests for the specific exception types."""

    def test_validation_error(self):
        """Test ValidationError records the field."""
        exc = ValidationError("Bad cell", field="cell")

        assert exc.error_code == "VALIDATION_ERROR"
        assert exc.details["field"] == "cell"
        assert exc.suggestions

    def test_invalid_geometry_error(self):
        """Test InvalidGeometryError records the segment."""
        exc = InvalidGeometryError("Too few points", segment_id=7)

        assert exc.error_code == "INVALID_GEOMETRY"
        assert exc.details["segment_id"] == 7
        assert isinstance(exc, WayfieldException)

    def test_ambiguous_junction_error(self):
        """Test AmbiguousJunctionError records positions and splines."""
        exc = AmbiguousJunctionError(
            "Ambiguous", positions=[(1.0, 2.0), (3.0, 4.0)], spline_ids=[3, 1]
        )

        assert exc.error_code == "AMBIGUOUS_JUNCTION"
        assert exc.details["positions"] == [[1.0, 2.0], [3.0, 4.0]]
        assert exc.details["spline_ids"] == [1, 3]

    def test_path_not_found_error(self):
        """Test PathNotFoundError records endpoints."""
        exc = PathNotFoundError("No path", start=(0, 0), goal=(5, 5))

        assert exc.error_code == "PATH_NOT_FOUND"
        assert exc.details["start"] == [0, 0]
        assert exc.details["goal"] == [5, 5]

    def test_rate_limited_error(self):
        """Test RateLimitedError records retry delay."""
        exc = RateLimitedError("Slow down", client_id="alice", retry_after=0.2)

        assert exc.error_code == "RATE_LIMITED"
        assert exc.details == {"client_id": "alice", "retry_after": 0.2}

    def test_chunk_generation_error(self):
        """Test ChunkGenerationError records chunk and attempts."""
        exc = ChunkGenerationError("Failed", chunk_id=(2, 3), attempts=3)

        assert exc.error_code == "CHUNK_GENERATION_ERROR"
        assert exc.details["chunk_id"] == [2, 3]
        assert exc.details["attempts"] == 3

    def test_region_unavailable_error(self):
        """Test RegionUnavailableError records region and operation."""
        exc = RegionUnavailableError(
            "Store down", region=(0.0, 0.0, 10.0, 10.0), operation="load_segments"
        )

        assert exc.error_code == "REGION_UNAVAILABLE"
        assert exc.details["region"] == [0.0, 0.0, 10.0, 10.0]
        assert exc.details["operation"] == "load_segments"

    def test_configuration_error(self):
        """Test ConfigurationError records the key."""
        exc = ConfigurationError("Bad value", config_key="view_radius")

        assert exc.error_code == "CONFIGURATION_ERROR"
        assert exc.details["config_key"] == "view_radius"

    def test_custom_suggestions_override_defaults(self):
        """Test explicit suggestions replace the defaults."""
        exc = InvalidGeometryError("Bad", suggestions=["Only this"])
        assert exc.suggestions == ["Only this"]
