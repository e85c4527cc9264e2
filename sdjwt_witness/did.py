# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# did.py - did:key rendering of P-256 public keys
################################################

# did:key:z<base58btc(eb 01 00 || 04 || x || y)>

from .errors import InputEncodingError
from .witness_helper import COORDINATE_BYTE_LEN, check_point, jwk_to_point, point_to_jwk

_B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_P256_MULTICODEC_PREFIX = b"\xeb\x01\x00"
_UNCOMPRESSED_FLAG = b"\x04"
DID_KEY_PREFIX = "did:key:z"


def base58_encode(data):
    """Encode bytes to base58 (Bitcoin alphabet)."""
    n_leading = 0
    for byte in data:
        if byte == 0:
            n_leading += 1
        else:
            break

    num = int.from_bytes(data, "big")
    result = bytearray()
    while num > 0:
        num, remainder = divmod(num, 58)
        result.append(_B58_ALPHABET[remainder])
    result.reverse()

    return ("1" * n_leading) + result.decode("ascii")


def base58_decode(s):
    """Decode base58 (Bitcoin alphabet) text to bytes."""
    n_leading = 0
    for ch in s:
        if ch == "1":
            n_leading += 1
        else:
            break

    num = 0
    for ch in s:
        idx = _B58_ALPHABET.find(ch.encode("ascii", errors="replace"))
        if idx < 0:
            raise InputEncodingError("Invalid base58 character '{}'".format(ch))
        num = num * 58 + idx

    if num == 0:
        result = b""
    else:
        result = num.to_bytes((num.bit_length() + 7) // 8, "big")
    return b"\x00" * n_leading + result


def did_key_from_point(point):
    raw = _P256_MULTICODEC_PREFIX + _UNCOMPRESSED_FLAG + point.to_bytes()
    return DID_KEY_PREFIX + base58_encode(raw)


def did_key_from_jwk(jwk):
    return did_key_from_point(jwk_to_point(jwk))


def jwk_from_did_key(did):
    if not did.startswith(DID_KEY_PREFIX):
        raise InputEncodingError("Not a base58btc did:key identifier")
    raw = base58_decode(did[len(DID_KEY_PREFIX):])
    header = _P256_MULTICODEC_PREFIX + _UNCOMPRESSED_FLAG
    if not raw.startswith(header) or len(raw) != len(header) + 2*COORDINATE_BYTE_LEN:
        raise InputEncodingError("did:key does not hold an uncompressed P-256 point")
    xy = raw[len(header):]
    x = int.from_bytes(xy[:COORDINATE_BYTE_LEN], "big")
    y = int.from_bytes(xy[COORDINATE_BYTE_LEN:], "big")
    return point_to_jwk(check_point(x, y))
