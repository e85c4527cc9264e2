# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

# Issues an ES256 SD-JWT bound to a device key.

# The registry of supported algorithms in JWS is found here:
#    https://www.iana.org/assignments/jose/jose.xhtml
# JWT: https://www.rfc-editor.org/rfc/rfc7519
# JWS: https://www.rfc-editor.org/rfc/rfc7515
# python JWT docs: https://jwcrypto.readthedocs.io

import datetime
import json
import logging
import os
import sys

import jwcrypto.jwk as jwk
from jwcrypto.common import json_encode
from jwcrypto.jws import JWS, InvalidJWSSignature

from .claims import Claim, Disclosure
from .jwk_gen import public_jwk
from .witness_helper import setup_logging

logger = logging.getLogger(__name__)

SD_CLAIMS_KEY = '_sd_claims'
LIFETIME = datetime.timedelta(weeks=52)


def usage():
    print("Python3 script to create an SD-JWT")
    print("Usage:")
    print("\t./" + os.path.basename(sys.argv[0]) + " <claims.file.json> <issuer private JWK> <device public JWK> <output SD-JWT>")
    print("Example:")
    print("\tpython3 " + os.path.basename(sys.argv[0]) + " claims.json issuer.prv.jwk device.pub.jwk token.txt")
    print("will sign the claims in claims.json with the issuer key, binding the token to the device key.")
    print("Claims named in the '" + SD_CLAIMS_KEY + "' list of claims.json are selectively disclosable.")


def issue_sd_jwt(claims, disclosable, issuer_private_jwk, device_public_jwk, salts=None):
    """Sign claims as an SD-JWT; returns (compact JWT, [disclosure strings])."""
    disclosures = []
    for i, name in enumerate(disclosable):
        salt = salts[i] if salts is not None else None
        disclosures.append(Disclosure.create(Claim(name, claims[name]), salt=salt))

    now = datetime.datetime.now(datetime.timezone.utc)
    payload = {k: v for k, v in claims.items() if k not in disclosable and k != SD_CLAIMS_KEY}
    payload['nbf'] = int(now.timestamp())
    payload['exp'] = int((now + LIFETIME).timestamp())
    payload['cnf'] = {'jwk': public_jwk(device_public_jwk)}
    payload['vc'] = {
        '@context': ['https://www.w3.org/2018/credentials/v1'],
        'type': ['VerifiableCredential'],
        'credentialSubject': {
            '_sd': [d.digest for d in disclosures],
            '_sd_alg': 'sha-256',
        },
    }

    issuer_key = jwk.JWK(**issuer_private_jwk)
    header = {'alg': 'ES256', 'typ': 'vc+sd-jwt'}
    if issuer_private_jwk.get('kid') is not None:
        header['kid'] = issuer_private_jwk['kid']

    token = JWS(json_encode(payload))
    token.add_signature(issuer_key, alg='ES256', protected=json_encode(header))
    return token.serialize(compact=True), [d.encoded for d in disclosures]


def combine(token, disclosures):
    return '~'.join([token] + list(disclosures)) + '~'


def verify_jwt(token, issuer_public_jwk):
    check = JWS()
    check.deserialize(token)
    try:
        check.verify(jwk.JWK(**issuer_public_jwk), alg='ES256')
    except InvalidJWSSignature:
        return False
    return True


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 4:
        usage()
        return -1
    setup_logging()

    with open(argv[0], 'r') as f:
        claims = json.load(f)
    with open(argv[1], 'r') as f:
        issuer_private_jwk = json.load(f)
    with open(argv[2], 'r') as f:
        device_public_jwk = json.load(f)

    disclosable = claims.get(SD_CLAIMS_KEY, [])
    token, disclosures = issue_sd_jwt(claims, disclosable, issuer_private_jwk, device_public_jwk)

    if verify_jwt(token, public_jwk(issuer_private_jwk)):
        logger.info("New token verifies under the issuer key")
    else:
        logger.error("New token does not verify under the issuer key")
        return -1

    with open(argv[3], 'w') as f:
        f.write(combine(token, disclosures))
    logger.info("New token written to {}".format(argv[3]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
