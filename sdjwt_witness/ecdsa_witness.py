# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# ecdsa_witness.py - ES256 signing and signature witnesses
################################################

# A signature witness holds (r, s^-1 mod n, H(m) mod n) so the circuit can
# check the ECDSA relation with multiplications only:
#   R = (H(m) * s^-1) * G + (r * s^-1) * Q,   R.x mod n == r
# The relation is checked here first, so a bad signature is reported as
# SignatureInvalid instead of an unsatisfiable circuit.

import logging
from dataclasses import dataclass
from hashlib import sha256
from typing import NamedTuple, Optional

from ecdsa import SigningKey, VerifyingKey
from ecdsa.ellipticcurve import INFINITY
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigencode_string

from .errors import CapacityExceeded, InputEncodingError, InvalidKey, SignatureInvalid
from .witness_helper import (COMPACT_SIG_BYTE_LEN, COORDINATE_BYTE_LEN, CURVE, P256_ORDER, b64url_decode,
                             b64url_encode, circuit_int, jwk_to_point, mod_inverse, to_field)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignatureWitness:
    r: int
    s_inverse: int
    digest: int         # SHA-256 of the message, reduced mod n

    def to_circuit_inputs(self, limb_form=False):
        return {
            'sig_r': circuit_int(self.r, limb_form),
            'sig_s_inverse': circuit_int(self.s_inverse, limb_form),
            'messageHash': circuit_int(self.digest, limb_form),
        }


class VerificationResult(NamedTuple):
    ok: bool
    error: Optional[SignatureInvalid] = None


def message_digest(message):
    return int.from_bytes(sha256(message).digest(), byteorder='big')

def _check_message_length(message, max_message_length):
    if max_message_length is not None and len(message) > max_message_length:
        raise CapacityExceeded("Message of {} bytes exceeds maximum of {} bytes".format(len(message), max_message_length))

def _to_bytes(message):
    if isinstance(message, str):
        return message.encode('utf-8')
    return bytes(message)


def sign(message, private_scalar, max_message_length=None):
    """Sign SHA-256(message) with a P-256 private scalar.

    Returns the 64-byte compact r||s signature, base64url encoded.
    """
    message = _to_bytes(message)
    _check_message_length(message, max_message_length)
    if not 1 <= private_scalar < P256_ORDER:
        raise InvalidKey("Private scalar is out of range")
    sk = SigningKey.from_secret_exponent(private_scalar, curve=CURVE, hashfunc=sha256)
    sig = sk.sign_deterministic(message, hashfunc=sha256, sigencode=sigencode_string)
    return b64url_encode(sig)


def decode_compact_signature(signature):
    sig = b64url_decode(signature) if isinstance(signature, str) else bytes(signature)
    if len(sig) != COMPACT_SIG_BYTE_LEN:
        raise InputEncodingError("Compact signature must be {} bytes, found {}".format(COMPACT_SIG_BYTE_LEN, len(sig)))
    r = int.from_bytes(sig[0:COORDINATE_BYTE_LEN], byteorder='big')
    s = int.from_bytes(sig[COORDINATE_BYTE_LEN:], byteorder='big')
    return r, s


def load_public_key(public_jwk):
    """Validate a P-256 JWK and return an ecdsa VerifyingKey for it."""
    point = jwk_to_point(public_jwk)
    try:
        return VerifyingKey.from_string(point.to_bytes(), curve=CURVE, hashfunc=sha256)
    except MalformedPointError as e:
        raise InvalidKey("Invalid public key point: {}".format(e))


def verify_signature(vk, r, s_inverse, digest):
    """Recompute the ECDSA relation the circuit checks, off-circuit."""
    if not (1 <= r < P256_ORDER):
        return VerificationResult(False, SignatureInvalid("Signature component r is out of range"))
    u1 = (digest * s_inverse) % P256_ORDER
    u2 = (r * s_inverse) % P256_ORDER
    R = CURVE.generator * u1 + vk.pubkey.point * u2
    if R == INFINITY:
        return VerificationResult(False, SignatureInvalid("Signature relation yields the point at infinity"))
    if R.x() % P256_ORDER != r:
        return VerificationResult(False, SignatureInvalid("Signature does not verify under the supplied public key"))
    return VerificationResult(True)


def build_witness(message, signature, public_jwk, max_message_length=None):
    """Build a SignatureWitness for a compact ES256 signature over message.

    Raises SignatureInvalid, leaving no witness, if the signature does not
    verify under public_jwk.
    """
    message = _to_bytes(message)
    _check_message_length(message, max_message_length)
    vk = load_public_key(public_jwk)
    r, s = decode_compact_signature(signature)
    if r == 0 or s == 0:
        raise SignatureInvalid("Degenerate signature: r and s must be non-zero")
    if r >= P256_ORDER or s >= P256_ORDER:
        raise SignatureInvalid("Signature components must be less than the group order")

    s_inverse = mod_inverse(s, P256_ORDER)
    digest = message_digest(message)

    result = verify_signature(vk, r, s_inverse, digest)
    if not result.ok:
        raise result.error

    logger.debug("Built signature witness for {}-byte message".format(len(message)))
    return SignatureWitness(r=r, s_inverse=s_inverse, digest=to_field(digest, P256_ORDER))
