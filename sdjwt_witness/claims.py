# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# claims.py - Selective disclosure claims and their fixed-size encoding
################################################

import json
import logging
import os
from dataclasses import dataclass
from enum import IntEnum
from hashlib import sha256
from typing import List, Tuple

from .errors import CapacityExceeded, InputEncodingError
from .witness_helper import b64url_decode, b64url_encode, sha256_padding, zero_extend

logger = logging.getLogger(__name__)

SALT_BYTE_LEN = 16


class DecodeMode(IntEnum):
    """How the circuit interprets a claim value.

    The circuit reads these flags by position, so the ordinals are fixed:
      0  PLAIN    value is an opaque string
      1  NUMERIC  value is decoded as ASCII digits, for threshold predicates
                  (e.g. comparing a birthday against an age cutoff)
    """
    PLAIN = 0
    NUMERIC = 1

    @classmethod
    def from_flag(cls, flag):
        if isinstance(flag, str):
            try:
                return cls[flag.upper()]
            except KeyError:
                raise InputEncodingError("Unknown decode mode '{}'".format(flag))
        try:
            return cls(flag)
        except ValueError:
            raise InputEncodingError("Unknown decode flag {}".format(flag))


@dataclass(frozen=True)
class Claim:
    name: str
    value: str


@dataclass(frozen=True)
class Disclosure:
    """An SD-JWT disclosure: base64url JSON array [salt, claim name, claim value]."""
    salt: str
    claim: Claim
    encoded: str

    @property
    def digest(self):
        return disclosure_digest(self.encoded)

    @classmethod
    def create(cls, claim, salt=None):
        if salt is None:
            salt = b64url_encode(os.urandom(SALT_BYTE_LEN))
        array = json.dumps([salt, claim.name, claim.value], separators=(',', ':'), ensure_ascii=False)
        return cls(salt=salt, claim=claim, encoded=b64url_encode(array.encode('utf-8')))

    @classmethod
    def parse(cls, encoded):
        try:
            array = json.loads(b64url_decode(encoded).decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise InputEncodingError("Disclosure is not base64url JSON: {}".format(e))
        if not isinstance(array, list) or len(array) != 3 or not isinstance(array[0], str) or not isinstance(array[1], str):
            raise InputEncodingError("Disclosure must be a JSON array [salt, name, value]")
        value = array[2]
        if not isinstance(value, str):
            value = json.dumps(value, separators=(',', ':'), ensure_ascii=False)
        return cls(salt=array[0], claim=Claim(array[1], value), encoded=encoded)


def disclosure_digest(encoded):
    """Digest as it appears in the credential's _sd array."""
    return b64url_encode(sha256(encoded.encode('utf-8')).digest())


@dataclass(frozen=True)
class PaddedClaimArray:
    rows: Tuple[Tuple[int, ...], ...]
    lengths: Tuple[int, ...]

    @property
    def max_claims(self):
        return len(self.rows)

    @property
    def max_claim_length(self):
        return len(self.rows[0]) if self.rows else 0


def encode_claims(claims, max_claims, max_claim_length):
    """Encode claim strings into max_claims rows of max_claim_length bytes.

    Each row holds the UTF-8 bytes with SHA-256 padding applied, zero
    extended; lengths holds the byte length before padding. Claims beyond
    max_claims are dropped, so callers check the count first. Rows must not
    be passed through here a second time.
    """
    rows: List[Tuple[int, ...]] = []
    lengths: List[int] = []
    for claim in claims[:max_claims]:
        claim_bytes = claim.encode('utf-8')
        padded = sha256_padding(claim_bytes)
        if len(padded) > max_claim_length:
            raise CapacityExceeded("Claim of {} bytes is {} bytes after SHA-256 padding, capacity is {}".format(len(claim_bytes), len(padded), max_claim_length))
        rows.append(tuple(zero_extend(padded, max_claim_length)))
        lengths.append(len(claim_bytes))

    if len(claims) > max_claims:
        logger.debug("Dropped {} claims beyond capacity {}".format(len(claims) - max_claims, max_claims))

    while len(rows) < max_claims:
        rows.append(tuple([0]*max_claim_length))
        lengths.append(0)

    return PaddedClaimArray(rows=tuple(rows), lengths=tuple(lengths))


def encode_decode_flags(flags, max_claims):
    modes = [DecodeMode.from_flag(f) for f in flags]
    if len(modes) > max_claims:
        raise CapacityExceeded("{} decode flags exceed claim capacity {}".format(len(modes), max_claims))
    return [int(m) for m in modes] + [int(DecodeMode.PLAIN)]*(max_claims - len(modes))
