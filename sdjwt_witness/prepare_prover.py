# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# prepare_prover.py - Prepare the Register (credential) circuit inputs
# from an SD-JWT, its disclosures and the issuer key.
################################################

import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Tuple

from . import ecdsa_witness
from .claims import Disclosure, PaddedClaimArray, encode_claims, encode_decode_flags
from .config import JwtCircuitParams, decode_flags_for_claims, jwt_params_from_config, load_config
from .ecdsa_witness import SignatureWitness
from .errors import CapacityExceeded, InputEncodingError, InvalidKey, WitnessError
from .witness_helper import (CurvePoint, DeviceKey, SHA256_BLOCK_BYTES, b64url_decode, circuit_int,
                             jwk_to_point, setup_logging, sha256_pad, zero_extend)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialWitness:
    message: Tuple[int, ...]
    message_length: int
    period_index: int
    signature: SignatureWitness
    issuer_key: CurvePoint
    matches_count: int
    match_substring: Tuple[Tuple[int, ...], ...]
    match_length: Tuple[int, ...]
    match_index: Tuple[int, ...]
    claims: PaddedClaimArray
    decode_flags: Tuple[int, ...]
    device_key: DeviceKey

    def to_circuit_inputs(self, limb_form=False):
        inputs = {
            'message': [str(b) for b in self.message],
            'messageLength': self.message_length,
            'periodIndex': self.period_index,
        }
        inputs.update(self.signature.to_circuit_inputs(limb_form))
        inputs.update({
            'pubKeyX': circuit_int(self.issuer_key.x, limb_form),
            'pubKeyY': circuit_int(self.issuer_key.y, limb_form),
            'matchesCount': self.matches_count,
            'matchSubstring': [[str(c) for c in row] for row in self.match_substring],
            'matchLength': list(self.match_length),
            'matchIndex': list(self.match_index),
            'claims': [[str(c) for c in row] for row in self.claims.rows],
            'claimLengths': [str(n) for n in self.claims.lengths],
            'decodeFlags': list(self.decode_flags),
        })
        return inputs


##### Token parsing ######

def split_sd_jwt(token_with_disclosures):
    """Split 'jwt~disc1~disc2~' into the JWT and its non-empty disclosures."""
    parts = token_with_disclosures.strip().split('~')
    return parts[0], [d for d in parts[1:] if len(d) > 0]

def parse_jwt(token):
    parts = token.split('.')
    if len(parts) != 3 or not all(parts):
        raise InputEncodingError("JWT must have three non-empty '.'-separated parts, found {}".format(len(parts)))
    b64_header, b64_payload, b64_signature = parts
    try:
        header = json.loads(b64url_decode(b64_header))
        payload_bytes = b64url_decode(b64_payload)
        payload = json.loads(payload_bytes)
    except ValueError as e:
        raise InputEncodingError("JWT header or payload is not base64url JSON: {}".format(e))
    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise InputEncodingError("JWT header and payload must be JSON objects")
    return b64_header, b64_payload, b64_signature, header, payload_bytes, payload

def collect_sd_digests(obj):
    digests = set()
    if isinstance(obj, dict):
        for key, value in obj.items():
            if key == '_sd' and isinstance(value, list):
                digests.update(d for d in value if isinstance(d, str))
            else:
                digests.update(collect_sd_digests(value))
    elif isinstance(obj, list):
        for item in obj:
            digests.update(collect_sd_digests(item))
    return digests

def extract_device_key(payload):
    cnf = payload.get('cnf')
    if not isinstance(cnf, dict) or not isinstance(cnf.get('jwk'), dict):
        raise InvalidKey("Credential has no cnf.jwk confirmation key")
    return jwk_to_point(cnf['jwk'])


##### Witness assembly ######

def _check_capacity(params, b64_header, b64_payload, disclosures, decode_flags):
    if len(b64_payload) > params.max_b64_payload_length:
        raise CapacityExceeded("Base64url payload is {} bytes, maximum is {}".format(len(b64_payload), params.max_b64_payload_length))
    if params.max_b64_header_length is not None and len(b64_header) > params.max_b64_header_length:
        raise CapacityExceeded("Base64url header is {} bytes, maximum is {}".format(len(b64_header), params.max_b64_header_length))
    if len(disclosures) > params.max_matches:
        raise CapacityExceeded("{} disclosures exceed the claim capacity {}".format(len(disclosures), params.max_matches))
    if len(decode_flags) > params.max_matches:
        raise CapacityExceeded("{} decode flags exceed the claim capacity {}".format(len(decode_flags), params.max_matches))


def generate_jwt_inputs(params, token, issuer_jwk, disclosures, decode_flags=()):
    """Assemble the credential witness for a JWT and its disclosure strings.

    All failures are raised before anything is handed to the circuit.
    """
    b64_header, b64_payload, b64_signature, header, payload_bytes, payload = parse_jwt(token)
    _check_capacity(params, b64_header, b64_payload, disclosures, decode_flags)
    if header.get('alg') not in (None, 'ES256'):
        raise InvalidKey("Unsupported JWT algorithm {}".format(header.get('alg')))

    signing_input = "{}.{}".format(b64_header, b64_payload).encode('utf-8')
    message, message_length = sha256_pad(signing_input, params.max_message_length)
    logger.debug("Signing input is {} bytes, {} after SHA-256 padding ({} blocks)".format(len(signing_input), message_length, message_length // SHA256_BLOCK_BYTES))

    signature = ecdsa_witness.build_witness(signing_input, b64_signature, issuer_jwk, max_message_length=params.max_message_length)
    issuer_key = jwk_to_point(issuer_jwk)
    device_key = extract_device_key(payload)

    sd_digests = collect_sd_digests(payload)
    parsed = [Disclosure.parse(d) for d in disclosures]
    match_substring = []
    match_length = []
    match_index = []
    for disclosure in parsed:
        digest = disclosure.digest
        if digest not in sd_digests:
            raise InputEncodingError("Digest of disclosure for '{}' is not in the credential".format(disclosure.claim.name))
        digest_bytes = digest.encode('utf-8')
        if len(digest_bytes) > params.max_substring_length:
            raise CapacityExceeded("Digest of {} bytes exceeds substring capacity {}".format(len(digest_bytes), params.max_substring_length))
        match_substring.append(tuple(zero_extend(list(digest_bytes), params.max_substring_length)))
        match_length.append(len(digest_bytes))
        match_index.append(payload_bytes.find(digest_bytes))

    matches_count = len(match_index)
    while len(match_index) < params.max_matches:
        match_substring.append(tuple([0]*params.max_substring_length))
        match_length.append(0)
        match_index.append(0)

    claims = encode_claims([d.encoded for d in parsed], params.max_matches, params.max_claim_length)
    flags = encode_decode_flags(decode_flags, params.max_matches)

    return CredentialWitness(
        message=tuple(message),
        message_length=message_length,
        period_index=signing_input.index(b'.'),
        signature=signature,
        issuer_key=issuer_key,
        matches_count=matches_count,
        match_substring=tuple(match_substring),
        match_length=tuple(match_length),
        match_index=tuple(match_index),
        claims=claims,
        decode_flags=tuple(flags),
        device_key=device_key,
    )


def prepare_prover(params, token_with_disclosures, issuer_jwk, decode_flags=()):
    token, disclosures = split_sd_jwt(token_with_disclosures)
    return generate_jwt_inputs(params, token, issuer_jwk, disclosures, decode_flags)


##### Command line ######

def usage():
    print("Python3 script to prepare inputs for the Register (credential) circuit")
    print("Usage:")
    print("\t./" + os.path.basename(sys.argv[0]) + " <config file> <SD-JWT file> <issuer JWK file> <prover input file>")
    print("Example:")
    print("\tpython3 " + os.path.basename(sys.argv[0]) + " config.json token.txt issuer.pub.jwk prover_inputs.json")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 4:
        usage()
        return -1
    setup_logging()

    try:
        config = load_config(argv[0])
    except ValueError as e:
        logger.error("Invalid configuration file: {}".format(e))
        return -1

    with open(argv[1], "r") as f:
        token_with_disclosures = f.read()
    with open(argv[2], "r") as f:
        issuer_jwk = json.load(f)

    token, disclosures = split_sd_jwt(token_with_disclosures)
    try:
        names = [Disclosure.parse(d).claim.name for d in disclosures]
        flags = decode_flags_for_claims(config, names)
        witness = generate_jwt_inputs(jwt_params_from_config(config), token, issuer_jwk, disclosures, flags)
    except WitnessError as e:
        logger.error("{}: {}".format(e.error_type, e.message))
        return -1

    with open(argv[3], "w") as json_file:
        json.dump(witness.to_circuit_inputs(config['limb_form']), json_file, indent=4)
    logger.info("Prover inputs written to {}".format(argv[3]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
