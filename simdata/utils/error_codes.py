from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard SimData error codes."""

    S001 = "S001"  # Transport: Host unreachable
    S002 = "S002"  # Registration: Owner already exists
    S003 = "S003"  # Registration: Owner not registered in this run
    S004 = "S004"  # Submission: Sensor data rejected or not delivered
    S005 = "S005"  # Service: Unexpected collection service response
    S006 = "S006"  # Catalog: Scenario not found
    S007 = "S007"  # Catalog: Scenario invalid
    S008 = "S008"  # Internal: Invariant violated
    S010 = "S010"  # Internal: Internal error


ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.S001: "Collection service host unreachable",
    ErrorCode.S002: "Owner already registered",
    ErrorCode.S003: "Owner not registered",
    ErrorCode.S004: "Sensor data submission failed",
    ErrorCode.S005: "Unexpected collection service response",
    ErrorCode.S006: "Scenario not found",
    ErrorCode.S007: "Scenario invalid",
    ErrorCode.S008: "Invariant violated",
    ErrorCode.S010: "Internal error",
}
