# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# errors.py - Witness preparation error types.
################################################

# Every builder raises one of these before any value reaches the circuit.
# A builder never returns a partially populated witness.


class WitnessError(Exception):
    """Base class for all witness preparation errors."""

    error_type = "witness_error"

    def __init__(self, message="Witness preparation failed"):
        self.message = message
        super().__init__(message)


class InputEncodingError(WitnessError):
    """Malformed base64url, JSON, token or disclosure input."""

    error_type = "input_encoding_error"


class InvalidKey(WitnessError):
    """Key has the wrong type or curve, or its point is not on the curve."""

    error_type = "invalid_key"


class SignatureInvalid(WitnessError):
    """The off-circuit ECDSA check rejected the signature."""

    error_type = "signature_invalid"


class CapacityExceeded(WitnessError):
    """An input does not fit the fixed sizes the circuit was compiled for."""

    error_type = "capacity_exceeded"


class InternalArithmeticError(WitnessError):
    """Zero modulus, non-invertible value or point at infinity."""

    error_type = "internal_arithmetic_error"


class CircuitRejected(WitnessError):
    """The constraint verifier rejected a witness."""

    error_type = "circuit_rejected"


class SessionError(WitnessError):
    """Operation not allowed in the current session state."""

    error_type = "session_error"
