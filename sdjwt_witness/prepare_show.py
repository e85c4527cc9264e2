# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# prepare_show.py - Prepare the Show (device binding) circuit inputs
################################################

import json
import logging
import os
import sys
from dataclasses import dataclass

from . import ecdsa_witness
from .config import ShowCircuitParams, load_config, show_params_from_config
from .ecdsa_witness import SignatureWitness
from .errors import CapacityExceeded, InputEncodingError, WitnessError
from .witness_helper import DeviceKey, circuit_int, jwk_to_point, setup_logging, zero_extend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresentationWitness:
    device_key: DeviceKey
    signature: SignatureWitness
    nonce: bytes
    max_nonce_length: int

    def to_circuit_inputs(self, limb_form=False):
        inputs = {
            'deviceKeyX': circuit_int(self.device_key.x, limb_form),
            'deviceKeyY': circuit_int(self.device_key.y, limb_form),
        }
        inputs.update(self.signature.to_circuit_inputs(limb_form))
        inputs.update({
            'nonce': [str(b) for b in zero_extend(list(self.nonce), self.max_nonce_length)],
            'nonceLength': len(self.nonce),
        })
        return inputs


def sign_device_nonce(nonce, private_scalar):
    """Sign a verifier nonce with the device key; returns a base64url compact signature."""
    return ecdsa_witness.sign(nonce, private_scalar)


def generate_show_inputs(params, nonce, device_signature, device_jwk):
    """Assemble the Show witness for a nonce signed by the device key.

    The device key must be the one established by the Register phase; the
    caller threads it through. The nonce bound is checked here, before any
    cryptographic work.
    """
    if isinstance(nonce, str):
        nonce_bytes = nonce.encode('utf-8')
    elif isinstance(nonce, (bytes, bytearray)):
        nonce_bytes = bytes(nonce)
    else:
        raise InputEncodingError("Nonce must be text or bytes, found {}".format(type(nonce).__name__))
    if len(nonce_bytes) > params.max_nonce_length:
        raise CapacityExceeded("Nonce of {} bytes exceeds maximum of {} bytes".format(len(nonce_bytes), params.max_nonce_length))

    signature = ecdsa_witness.build_witness(nonce_bytes, device_signature, device_jwk, max_message_length=params.max_nonce_length)
    device_key = jwk_to_point(device_jwk)

    logger.debug("Built Show witness for {}-byte nonce".format(len(nonce_bytes)))
    return PresentationWitness(device_key=device_key, signature=signature, nonce=nonce_bytes, max_nonce_length=params.max_nonce_length)


##### Command line ######

def usage():
    print("Python3 script to prepare inputs for the Show (device binding) circuit")
    print("Usage:")
    print("\t./" + os.path.basename(sys.argv[0]) + " <config file> <nonce> <device signature> <device JWK file> <show input file>")


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 5:
        usage()
        return -1
    setup_logging()

    try:
        config = load_config(argv[0])
    except ValueError as e:
        logger.error("Invalid configuration file: {}".format(e))
        return -1

    with open(argv[3], "r") as f:
        device_jwk = json.load(f)

    try:
        witness = generate_show_inputs(show_params_from_config(config), argv[1], argv[2], device_jwk)
    except WitnessError as e:
        logger.error("{}: {}".format(e.error_type, e.message))
        return -1

    with open(argv[4], "w") as json_file:
        json.dump(witness.to_circuit_inputs(config['limb_form']), json_file, indent=4)
    logger.info("Show inputs written to {}".format(argv[4]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
