"""Shared fixtures: keys, an issued SD-JWT and a reference constraint verifier."""

from __future__ import annotations

import json
from hashlib import sha256

import pytest
from ecdsa import NIST256p, VerifyingKey
from ecdsa.ellipticcurve import INFINITY
from jwcrypto.common import base64url_decode, base64url_encode

from sdjwt_witness.jwk_gen import generate_key, public_jwk
from sdjwt_witness.jwt_sign import combine, issue_sd_jwt
from sdjwt_witness.config import JwtCircuitParams, ShowCircuitParams
from sdjwt_witness.protocol import VerifierResult

N = NIST256p.order

CLAIMS = {"name": "Alice", "age": "30", "email": "alice@example.com", "iss": "did:example:issuer"}
DISCLOSABLE = ["name", "age", "email"]


def relation_holds(x, y, r, s_inverse, digest):
    """The ECDSA check as the circuit performs it, with multiplications only."""
    q = VerifyingKey.from_string(
        x.to_bytes(32, "big") + y.to_bytes(32, "big"), curve=NIST256p
    ).pubkey.point
    point = NIST256p.generator * (digest * s_inverse % N) + q * (r * s_inverse % N)
    return point != INFINITY and point.x() % N == r


class ReferenceVerifier:
    """Checks the circuit contracts off-circuit and records every call."""

    def __init__(self, accept=True):
        self.accept = accept
        self.calls = []

    def __call__(self, circuit, inputs):
        self.calls.append((circuit, inputs))
        if not self.accept:
            return VerifierResult(False)
        if circuit == "jwt":
            return self._check_jwt(inputs)
        return self._check_show(inputs)

    def _check_jwt(self, inputs):
        message = bytes(int(b) for b in inputs["message"][: inputs["messageLength"]])
        signing_input = message[: int.from_bytes(message[-8:], "big") // 8]
        if signing_input.index(b".") != inputs["periodIndex"]:
            return VerifierResult(False)
        digest = int(inputs["messageHash"])
        if digest != int.from_bytes(sha256(signing_input).digest(), "big") % N:
            return VerifierResult(False)
        if not relation_holds(
            int(inputs["pubKeyX"]),
            int(inputs["pubKeyY"]),
            int(inputs["sig_r"]),
            int(inputs["sig_s_inverse"]),
            digest,
        ):
            return VerifierResult(False)

        payload = base64url_decode(signing_input.split(b".")[1].decode())
        for i in range(inputs["matchesCount"]):
            length = inputs["matchLength"][i]
            substring = bytes(int(c) for c in inputs["matchSubstring"][i][:length])
            index = inputs["matchIndex"][i]
            if payload[index : index + length] != substring:
                return VerifierResult(False)
            claim = bytes(int(c) for c in inputs["claims"][i][: int(inputs["claimLengths"][i])])
            if base64url_encode(sha256(claim).digest()).encode() != substring:
                return VerifierResult(False)

        cnf = json.loads(payload)["cnf"]["jwk"]
        return VerifierResult(
            True,
            {
                "KeyBindingX": int.from_bytes(base64url_decode(cnf["x"]), "big"),
                "KeyBindingY": int.from_bytes(base64url_decode(cnf["y"]), "big"),
            },
        )

    def _check_show(self, inputs):
        nonce = bytes(int(b) for b in inputs["nonce"][: inputs["nonceLength"]])
        digest = int(inputs["messageHash"])
        if digest != int.from_bytes(sha256(nonce).digest(), "big") % N:
            return VerifierResult(False)
        ok = relation_holds(
            int(inputs["deviceKeyX"]),
            int(inputs["deviceKeyY"]),
            int(inputs["sig_r"]),
            int(inputs["sig_s_inverse"]),
            digest,
        )
        return VerifierResult(ok)


@pytest.fixture(scope="session")
def issuer_key():
    return generate_key()


@pytest.fixture(scope="session")
def issuer_public(issuer_key):
    return public_jwk(issuer_key)


@pytest.fixture
def device_key():
    return generate_key()


@pytest.fixture
def other_key():
    return generate_key()


@pytest.fixture
def sd_claims():
    """(claims, names of the selectively disclosable claims)."""
    return dict(CLAIMS), list(DISCLOSABLE)


@pytest.fixture
def credential(issuer_key, device_key):
    """(compact JWT, disclosures) bound to device_key."""
    return issue_sd_jwt(CLAIMS, DISCLOSABLE, issuer_key, device_key)


@pytest.fixture
def sd_jwt(credential):
    token, disclosures = credential
    return combine(token, disclosures)


@pytest.fixture
def jwt_params():
    return JwtCircuitParams.from_list([2048, 2000, 6, 50, 128])


@pytest.fixture
def show_params():
    return ShowCircuitParams.from_list([256])


@pytest.fixture
def verifier():
    return ReferenceVerifier()


@pytest.fixture
def rejecting_verifier():
    return ReferenceVerifier(accept=False)
