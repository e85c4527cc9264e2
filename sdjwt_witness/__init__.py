# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

"""Witness preparation for SD-JWT Register and Show circuits with device binding."""

from .claims import Claim, DecodeMode, Disclosure, PaddedClaimArray, encode_claims
from .config import JwtCircuitParams, ShowCircuitParams
from .ecdsa_witness import SignatureWitness, build_witness, sign
from .errors import (CapacityExceeded, CircuitRejected, InputEncodingError, InternalArithmeticError,
                     InvalidKey, SessionError, SignatureInvalid, WitnessError)
from .prepare_prover import CredentialWitness, generate_jwt_inputs, prepare_prover
from .prepare_show import PresentationWitness, generate_show_inputs, sign_device_nonce
from .protocol import Presentation, PresentationSession, PresentationState, SessionState, VerifierResult
from .witness_helper import CurvePoint, DeviceKey, P256_ORDER

__version__ = "0.1.0"
