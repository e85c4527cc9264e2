# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# protocol.py - Register then Show, threading the device key
################################################

# Session:       UNREGISTERED -> REGISTERED, or FAILED (terminal)
# Presentation:  PRESENTING -> PRESENTED, one per present() call
# Presentations from one registered device key are independent of each
# other; a builder failure in any of them fails the session.

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .config import JwtCircuitParams, ShowCircuitParams
from .errors import CircuitRejected, InputEncodingError, InvalidKey, SessionError, WitnessError
from .prepare_prover import prepare_prover
from .prepare_show import generate_show_inputs
from .witness_helper import DeviceKey, point_to_jwk

logger = logging.getLogger(__name__)

REGISTER_CIRCUIT = "jwt"
SHOW_CIRCUIT = "show"


@dataclass(frozen=True)
class VerifierResult:
    accepted: bool
    outputs: Dict[str, Any] = field(default_factory=dict)


# Called as verifier(circuit_name, circuit_inputs); opaque accept/reject
ConstraintVerifier = Callable[[str, Dict[str, Any]], VerifierResult]


class SessionState(Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    FAILED = "failed"


class PresentationState(Enum):
    PRESENTING = "presenting"
    PRESENTED = "presented"


@dataclass
class Presentation:
    """One Show attempt against a registered device key."""
    nonce: Any
    state: PresentationState = PresentationState.PRESENTING
    result: Optional[VerifierResult] = None

    @property
    def accepted(self):
        return self.state == PresentationState.PRESENTED and self.result is not None and self.result.accepted


class PresentationSession:
    """One credential's Register/Show lifecycle.

    The device key attested by Register is kept on the session and reused by
    every later Show. Shows may overlap; each one carries its own state.
    Sessions share no state, so separate credentials can run side by side.
    """

    def __init__(self, verifier: ConstraintVerifier, jwt_params: JwtCircuitParams, show_params: ShowCircuitParams):
        self.verifier = verifier
        self.jwt_params = jwt_params
        self.show_params = show_params
        self.state = SessionState.UNREGISTERED
        self.device_key: Optional[DeviceKey] = None
        self.error: Optional[WitnessError] = None
        self.presentations = 0
        self._lock = threading.Lock()

    def _transition(self, state):
        with self._lock:
            logger.info("Session {} -> {}".format(self.state.value, state.value))
            self.state = state

    def _fail(self, error):
        with self._lock:
            logger.warning("Session failed in state {}: {}: {}".format(self.state.value, error.error_type, error.message))
            if self.state != SessionState.FAILED:
                self.error = error
                self.state = SessionState.FAILED
        return error

    def _require(self, state):
        with self._lock:
            if self.state == SessionState.FAILED:
                raise SessionError("Session has failed; start again with a fresh credential or signature")
            if self.state != state:
                raise SessionError("Operation not allowed in state {}".format(self.state.value))
            return self.device_key

    def register(self, token_with_disclosures, issuer_jwk, decode_flags=()):
        """Build and check the credential witness; returns the attested device key."""
        self._require(SessionState.UNREGISTERED)
        try:
            witness = prepare_prover(self.jwt_params, token_with_disclosures, issuer_jwk, decode_flags)
            result = self.verifier(REGISTER_CIRCUIT, witness.to_circuit_inputs())
            if not result.accepted:
                raise CircuitRejected("Register circuit rejected the credential witness")
            device_key = witness.device_key
            if 'KeyBindingX' in result.outputs or 'KeyBindingY' in result.outputs:
                attested = DeviceKey(int(result.outputs['KeyBindingX']), int(result.outputs['KeyBindingY']))
                if attested != device_key:
                    raise InvalidKey("Attested device key differs from the credential's confirmation key")
                device_key = attested
        except WitnessError as e:
            raise self._fail(e)

        self.device_key = device_key
        self._transition(SessionState.REGISTERED)
        return device_key

    def present(self, nonce, device_signature):
        """Build and check a Show witness for a verifier nonce; returns the Presentation."""
        device_key = self._require(SessionState.REGISTERED)
        presentation = Presentation(nonce=nonce)
        logger.info("Presentation {}".format(presentation.state.value))
        try:
            witness = generate_show_inputs(self.show_params, nonce, device_signature, point_to_jwk(device_key))
        except WitnessError as e:
            raise self._fail(e)
        except (TypeError, ValueError) as e:
            raise self._fail(InputEncodingError("Malformed Show input: {}".format(e))) from e

        # Exceptions from the verifier itself (timeout, cancellation) propagate
        # and leave the session as it was
        result = self.verifier(SHOW_CIRCUIT, witness.to_circuit_inputs())
        if not result.accepted:
            raise self._fail(CircuitRejected("Show circuit rejected the presentation witness"))

        with self._lock:
            self.presentations += 1
        presentation.result = result
        presentation.state = PresentationState.PRESENTED
        logger.info("Presentation {}".format(presentation.state.value))
        return presentation
