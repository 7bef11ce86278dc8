"""
Custom exception hierarchy for the Wayfield world server.

This module defines the exceptions raised by the road, distance field,
pathfinding, streaming and persistence layers. Every exception carries an
error code, technical details and resolution suggestions so callers can log
or forward them uniformly.
"""

from typing import Any, Dict, List, Optional, Tuple


class WayfieldException(Exception):
    """
    Base exception for all Wayfield-specific errors.

    Attributes:
        error_code: String identifier for the error type
        message: User-friendly error message
        details: Technical details for logging/debugging
        suggestions: Optional list of resolution suggestions
    """

    def __init__(
        self,
        message: str,
        error_code: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize WayfieldException.

        Args:
            message: User-friendly error message
            error_code: String identifier for the error type
            details: Technical details for logging
            suggestions: List of suggestions for resolution
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logs and client replies.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
        }

    def __str__(self) -> str:
        """String representation of the exception."""
        return f"{self.error_code}: {self.message}"

    def __repr__(self) -> str:
        """Detailed string representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}')"
        )


class ValidationError(WayfieldException):
    """
    Raised when input validation fails.

    Used for out-of-range cells, unknown clients or malformed edits.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ValidationError.

        Args:
            message: User-friendly error message
            field: Name of the field that failed validation
            details: Technical details about the validation failure
            suggestions: List of suggestions for fixing the validation error
        """
        error_details = details or {}
        if field:
            error_details["field"] = field

        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            details=error_details,
            suggestions=suggestions or ["Check the input format and try again"],
        )


class InvalidGeometryError(WayfieldException):
    """
    Raised when road control points cannot form a spline.

    The edit is rejected and authoritative state is left unchanged.
    """

    def __init__(
        self,
        message: str,
        segment_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize InvalidGeometryError.

        Args:
            message: User-friendly error message
            segment_id: Road segment whose geometry is invalid
            details: Technical details about the geometry
            suggestions: List of suggestions for fixing the geometry
        """
        error_details = details or {}
        if segment_id is not None:
            error_details["segment_id"] = segment_id

        default_suggestions = [
            "Provide at least two distinct control points",
            "Ensure all coordinates are finite numbers",
        ]

        super().__init__(
            message=message,
            error_code="INVALID_GEOMETRY",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )


class AmbiguousJunctionError(WayfieldException):
    """
    Raised when junction candidates cannot be merged unambiguously.

    The edit that produced the ambiguity is rejected.
    """

    def __init__(
        self,
        message: str,
        positions: Optional[List[Tuple[float, float]]] = None,
        spline_ids: Optional[List[int]] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize AmbiguousJunctionError.

        Args:
            message: User-friendly error message
            positions: Conflicting junction positions
            spline_ids: Splines involved in the conflict
            details: Technical details about the conflict
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if positions:
            error_details["positions"] = [list(p) for p in positions]
        if spline_ids:
            error_details["spline_ids"] = sorted(spline_ids)

        default_suggestions = [
            "Move the crossing roads further apart",
            "Join the roads at a single point",
        ]

        super().__init__(
            message=message,
            error_code="AMBIGUOUS_JUNCTION",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )


class PathNotFoundError(WayfieldException):
    """
    Raised when no traversable route connects two cells.

    This is a normal query result rather than a fault.
    """

    def __init__(
        self,
        message: str,
        start: Optional[Tuple[int, int]] = None,
        goal: Optional[Tuple[int, int]] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize PathNotFoundError.

        Args:
            message: User-friendly error message
            start: Start cell as (col, row)
            goal: Goal cell as (col, row)
            details: Technical details about the search
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if start is not None:
            error_details["start"] = list(start)
        if goal is not None:
            error_details["goal"] = list(goal)

        super().__init__(
            message=message,
            error_code="PATH_NOT_FOUND",
            details=error_details,
            suggestions=suggestions or ["Choose a goal reachable over land"],
        )


class RateLimitedError(WayfieldException):
    """
    Raised when a client request arrives inside its cooldown window.

    The chunk request path drops such requests silently; this exception is
    only raised by explicit rate limit checks.
    """

    def __init__(
        self,
        message: str,
        client_id: Optional[str] = None,
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize RateLimitedError.

        Args:
            message: User-friendly error message
            client_id: Client that was rate limited
            retry_after: Seconds until the next request is accepted
            details: Technical details
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if client_id:
            error_details["client_id"] = client_id
        if retry_after is not None:
            error_details["retry_after"] = retry_after

        super().__init__(
            message=message,
            error_code="RATE_LIMITED",
            details=error_details,
            suggestions=suggestions or ["Wait for the request cooldown to elapse"],
        )


class ChunkGenerationError(WayfieldException):
    """
    Raised when distance field generation fails for a chunk.

    Failed chunks are re-enqueued; repeated failures are escalated.
    """

    def __init__(
        self,
        message: str,
        chunk_id: Optional[Tuple[int, int]] = None,
        attempts: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ChunkGenerationError.

        Args:
            message: User-friendly error message
            chunk_id: Chunk as (x, y)
            attempts: Number of attempts made
            details: Technical details about the failure
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if chunk_id is not None:
            error_details["chunk_id"] = list(chunk_id)
        if attempts is not None:
            error_details["attempts"] = attempts

        default_suggestions = [
            "Check worker pool resources",
            "Inspect the roads overlapping the chunk",
        ]

        super().__init__(
            message=message,
            error_code="CHUNK_GENERATION_ERROR",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )


class RegionUnavailableError(WayfieldException):
    """
    Raised when authoritative data for a region cannot be read.

    Only the affected region becomes unavailable; other chunks keep serving.
    """

    def __init__(
        self,
        message: str,
        region: Optional[Tuple[float, float, float, float]] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize RegionUnavailableError.

        Args:
            message: User-friendly error message
            region: Bounds of the affected region
            operation: Store operation that failed
            details: Technical details about the storage failure
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if region is not None:
            error_details["region"] = list(region)
        if operation:
            error_details["operation"] = operation

        default_suggestions = [
            "Check the world store is reachable",
            "Reopen the world once the store recovers",
        ]

        super().__init__(
            message=message,
            error_code="REGION_UNAVAILABLE",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )


class ConfigurationError(WayfieldException):
    """
    Raised when world or streaming configuration is invalid.

    Used for missing environment variables, invalid settings, or
    inconsistent streaming parameters.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ConfigurationError.

        Args:
            message: User-friendly error message
            config_key: Configuration key that is invalid
            details: Technical details about the configuration error
            suggestions: List of suggestions for resolution
        """
        error_details = details or {}
        if config_key:
            error_details["config_key"] = config_key

        default_suggestions = [
            "Check environment variables are set correctly",
            "Verify configuration values are within range",
        ]

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=error_details,
            suggestions=suggestions or default_suggestions,
        )
