# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

# Generates P-256 key pairs as JSON Web Keys, for issuers and devices.
# python JWT docs: https://jwcrypto.readthedocs.io
# JWK: https://www.rfc-editor.org/rfc/rfc7517

import json
import os
import sys

import jwcrypto.jwk as jwk

from .errors import InvalidKey
from .witness_helper import JWK_CRV, JWK_KTY, P256_ORDER, b64_to_int, jwk_to_point


def usage():
    print("Python3 script to generate a P-256 JWK (JSON web key) pair")
    print("Usage:")
    print("\t./" + os.path.basename(sys.argv[0]) + " <private key file> <public key file>")
    print("Example:")
    print("\tpython3 " + os.path.basename(sys.argv[0]) + " device.prv.jwk device.pub.jwk")
    print("creates an ECDSA key pair with curve NIST P256 (secp256r1) output to files device.prv.jwk and device.pub.jwk (overwriting these files if they already exist)")


def generate_key():
    key = jwk.JWK.generate(kty=JWK_KTY, crv=JWK_CRV)
    return key.export_private(as_dict=True)


def public_jwk(private_jwk):
    pub = {k: private_jwk[k] for k in ('kty', 'crv', 'x', 'y')}
    jwk_to_point(pub)
    return pub


def private_scalar(private_jwk):
    if 'd' not in private_jwk:
        raise InvalidKey("JWK has no private component 'd'")
    d = b64_to_int(private_jwk['d'])
    if not 1 <= d < P256_ORDER:
        raise InvalidKey("Private scalar is out of range")
    return d


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 2:
        usage()
        return -1

    key = generate_key()
    with open(argv[0], "w") as f:
        json.dump(key, f, indent=4)
    with open(argv[1], "w") as f:
        json.dump(public_jwk(key), f, indent=4)
    return 0


if __name__ == "__main__":
    sys.exit(main())
