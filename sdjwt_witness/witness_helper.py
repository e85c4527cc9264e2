# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# witness_helper.py - Field, limb and encoding helpers shared by the
# witness builders.
################################################

import logging
import os
import re
import sys
import binascii
from dataclasses import dataclass

from ecdsa import NIST256p
from ecdsa.numbertheory import inverse_mod
from jwcrypto.common import base64url_decode, base64url_encode

from .errors import CapacityExceeded, InputEncodingError, InternalArithmeticError, InvalidKey

##### Constants ######
CURVE = NIST256p
P256_ORDER = CURVE.order               # Scalar field order n, shared by every builder
P256_PRIME = CURVE.curve.p()           # Base field of the curve
JWK_KTY = "EC"
JWK_CRV = "P-256"
COORDINATE_BYTE_LEN = 32
COMPACT_SIG_BYTE_LEN = 2*COORDINATE_BYTE_LEN
SHA256_BLOCK_BYTES = 64
SHA256_LENGTH_BYTES = 8                # SHA-256 padding ends with the 64-bit message bit length
CIRCOM_P256_LIMB_BITS = 43             # Required by the ecdsa-p256 circuit we use
CIRCOM_P256_N_LIMBS = 6
SUPPORTED_ALGS = ['ES256']
LOG_LEVEL_ENV = "SDJWT_WITNESS_LOG_LEVEL"

_B64URL_RE = re.compile(r'^[A-Za-z0-9_-]*={0,2}$')

logger = logging.getLogger(__name__)


##### Logging ######

def setup_logging(level=None):
    # Command line tools log to stderr, keeping stdout free for JSON output
    if level is None:
        name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
        level = getattr(logging, name, logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s [%(name)s] %(message)s"))
    root.addHandler(handler)


##### Field elements ######

def to_field(x, modulus=P256_ORDER):
    if modulus <= 0:
        raise InternalArithmeticError("Modulus must be positive, got {}".format(modulus))
    return x % modulus

def mod_inverse(a, modulus=P256_ORDER):
    """Return a^-1 mod modulus, so that (a * a^-1) % modulus == 1."""
    if modulus <= 0:
        raise InternalArithmeticError("Modulus must be positive, got {}".format(modulus))
    if a % modulus == 0:
        raise InternalArithmeticError("Zero has no inverse modulo {}".format(modulus))
    inv = inverse_mod(a % modulus, modulus)
    if (a * inv) % modulus != 1:
        raise InternalArithmeticError("Value is not invertible modulo {}".format(modulus))
    return inv


##### base64url ######

def b64url_decode(s):
    """Decode base64url text, with or without '=' padding, into bytes."""
    if isinstance(s, bytes):
        try:
            s = s.decode('ascii')
        except UnicodeDecodeError:
            raise InputEncodingError("base64url input is not ASCII")
    if not _B64URL_RE.match(s):
        raise InputEncodingError("Invalid base64url alphabet in '{}'".format(s[:32]))
    stripped = s.rstrip('=')
    if len(stripped) % 4 == 1:
        raise InputEncodingError("Invalid base64url length {}".format(len(stripped)))
    if s != stripped and len(s) % 4 != 0:
        raise InputEncodingError("Invalid base64url padding")
    try:
        return base64url_decode(stripped)
    except (binascii.Error, ValueError) as e:
        raise InputEncodingError("Invalid base64url input: {}".format(e))

def b64url_encode(b):
    """Encode bytes as unpadded base64url text."""
    return base64url_encode(bytes(b))

def b64_to_int(n_b64):
    return int.from_bytes(b64url_decode(n_b64), byteorder='big', signed=False)

def int_to_b64(n, n_bytes=COORDINATE_BYTE_LEN):
    if n < 0:
        raise InputEncodingError("Cannot encode negative integer")
    try:
        return b64url_encode(n.to_bytes(n_bytes, byteorder='big'))
    except OverflowError:
        raise CapacityExceeded("Integer does not fit in {} bytes".format(n_bytes))


##### Limbs ######

def to_limbs(x, limb_size, n_limbs):
    """Split x into n_limbs little-endian limbs of limb_size bits."""
    if x < 0:
        raise InputEncodingError("Cannot split a negative integer into limbs")
    if x >= 1 << (limb_size * n_limbs):
        raise CapacityExceeded("Integer of {} bits does not fit in {} limbs of {} bits".format(x.bit_length(), n_limbs, limb_size))
    msk = (1 << limb_size) - 1
    return [(x >> (i * limb_size)) & msk for i in range(n_limbs)]

def circuit_int(x, limb_form=False):
    # Whole decimal string, or the 43-bit limbs non-native P-256 circuits take
    if limb_form:
        return [str(limb) for limb in to_limbs(x, CIRCOM_P256_LIMB_BITS, CIRCOM_P256_N_LIMBS)]
    return str(x)


##### Byte arrays ######

def bytes_to_ints(input_bytes):
    return [c for c in input_bytes]

def zero_extend(values, length):
    if len(values) > length:
        raise CapacityExceeded("Array of length {} exceeds capacity {}".format(len(values), length))
    return list(values) + [0]*(length - len(values))

def sha256_padding(prepad_m):
    # Apply SHA256 padding: 0x80 terminator, zeros, then the 64-bit message bit length
    msg_length_bits = len(prepad_m) * 8
    padded_m = list(prepad_m) + [128]
    while (len(padded_m) + SHA256_LENGTH_BYTES) % SHA256_BLOCK_BYTES != 0:
        padded_m.append(0)
    padded_m.extend(msg_length_bits.to_bytes(SHA256_LENGTH_BYTES, byteorder='big'))
    return padded_m

def sha256_padded_size(msg_len):
    return ((msg_len + 1 + SHA256_LENGTH_BYTES + SHA256_BLOCK_BYTES - 1) // SHA256_BLOCK_BYTES) * SHA256_BLOCK_BYTES

def sha256_pad(message, max_len):
    """SHA-256 pad message and zero-extend it to max_len.

    Returns the padded list of ints and its length before zero extension.
    """
    padded = sha256_padding(bytes_to_ints(message))
    if len(padded) > max_len:
        raise CapacityExceeded("Message of {} bytes is {} bytes after SHA-256 padding, capacity is {}".format(len(message), len(padded), max_len))
    return zero_extend(padded, max_len), len(padded)


##### Curve points and JWKs ######

@dataclass(frozen=True)
class CurvePoint:
    """Affine P-256 point, checked to be on the curve when built from a JWK."""
    x: int
    y: int

    def to_jwk(self):
        return point_to_jwk(self)

    @classmethod
    def from_jwk(cls, jwk):
        return jwk_to_point(jwk)

    def to_bytes(self):
        return self.x.to_bytes(COORDINATE_BYTE_LEN, 'big') + self.y.to_bytes(COORDINATE_BYTE_LEN, 'big')


# The device key is the point bound into the credential's cnf claim
DeviceKey = CurvePoint


def check_point(x, y):
    if x == 0 and y == 0:
        raise InvalidKey("Point at infinity is not a valid public key")
    if not (0 <= x < P256_PRIME and 0 <= y < P256_PRIME):
        raise InvalidKey("Point coordinates are not canonical field elements")
    if not CURVE.curve.contains_point(x, y):
        raise InvalidKey("Point is not on curve {}".format(JWK_CRV))
    return CurvePoint(x, y)


def check_jwk_header(jwk):
    if not isinstance(jwk, dict):
        raise InvalidKey("JWK must be a JSON object")
    if jwk.get('kty') != JWK_KTY or jwk.get('crv') != JWK_CRV:
        raise InvalidKey("Key must be kty={} crv={}, found kty={} crv={}".format(JWK_KTY, JWK_CRV, jwk.get('kty'), jwk.get('crv')))
    if 'x' not in jwk or 'y' not in jwk:
        raise InvalidKey("JWK is missing the 'x' or 'y' coordinate")

def jwk_to_point(jwk):
    check_jwk_header(jwk)
    try:
        x = b64_to_int(jwk['x'])
        y = b64_to_int(jwk['y'])
    except InputEncodingError as e:
        raise InvalidKey("JWK coordinates are not base64url: {}".format(e.message))
    return check_point(x, y)

def point_to_jwk(point):
    return {
        'kty': JWK_KTY,
        'crv': JWK_CRV,
        'x': int_to_b64(point.x),
        'y': int_to_b64(point.y),
    }
