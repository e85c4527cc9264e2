# Copyright (c) Microsoft Corporation.
# Licensed under the MIT license.

################################################
# config.py - Circuit configuration file checks and defaults
################################################

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .claims import DecodeMode
from .witness_helper import SHA256_BLOCK_BYTES, SUPPORTED_ALGS

logger = logging.getLogger(__name__)

CONFIG_DEFAULTS = {
    'alg': 'ES256',
    'max_cred_len': 2048,          # Maximum length of the SHA-256 padded signing input (header.payload)
    'max_b64_payload_len': 2000,
    'max_matches': 4,              # Also the number of claims the circuit can disclose
    'max_substring_len': 50,
    'max_claim_byte_len': 128,
    'max_nonce_len': 256,
    'limb_form': False,            # Emit P-256 scalars and coordinates as 6 limbs of 43 bits
}
INT_KEYS = ['max_cred_len', 'max_b64_payload_len', 'max_matches', 'max_substring_len', 'max_claim_byte_len', 'max_nonce_len']
BLOCK_MULTIPLE_KEYS = ['max_cred_len', 'max_claim_byte_len']


@dataclass(frozen=True)
class JwtCircuitParams:
    max_message_length: int
    max_b64_payload_length: int
    max_matches: int
    max_substring_length: int
    max_claim_length: int
    max_b64_header_length: Optional[int] = None

    @classmethod
    def from_list(cls, params):
        # [maxMessageLength, maxB64PayloadLength, maxMatches, maxSubstringLength, maxClaimsLength]
        # or, with the header bound, [maxMessageLength, maxB64HeaderLength, maxB64PayloadLength, ...]
        if len(params) == 5:
            return cls(params[0], params[1], params[2], params[3], params[4])
        if len(params) == 6:
            return cls(params[0], params[2], params[3], params[4], params[5], max_b64_header_length=params[1])
        raise ValueError("Expected 5 or 6 JWT circuit parameters, found {}".format(len(params)))


@dataclass(frozen=True)
class ShowCircuitParams:
    max_nonce_length: int

    @classmethod
    def from_list(cls, params):
        if len(params) != 1:
            raise ValueError("Expected 1 Show circuit parameter, found {}".format(len(params)))
        return cls(max_nonce_length=params[0])


def check_config(config):
    # Check that the config has valid fields, filling in defaults
    for key, value in CONFIG_DEFAULTS.items():
        if key not in config:
            config[key] = value

    if config['alg'] not in SUPPORTED_ALGS:
        logger.error("Algorithm {} is not supported".format(config['alg']))
        return False

    for key in INT_KEYS:
        if type(config[key]) != int or config[key] <= 0:
            logger.error("Config field '{}' must be a positive integer".format(key))
            return False

    for key in BLOCK_MULTIPLE_KEYS:
        value = config[key]
        if value % SHA256_BLOCK_BYTES != 0:
            logger.error("'{}' must be a multiple of {}. Found {}, try {}".format(key, SHA256_BLOCK_BYTES, value, (SHA256_BLOCK_BYTES - (value % SHA256_BLOCK_BYTES)) + value))
            return False

    flags = config.get('decode_flags', {})
    if type(flags) != dict:
        logger.error("Config field 'decode_flags' must map claim names to 'plain' or 'numeric'")
        return False
    for name, mode in flags.items():
        if type(mode) != str or mode.upper() not in DecodeMode.__members__:
            logger.error("Claim '{}' has unknown decode mode '{}'".format(name, mode))
            return False
    config['decode_flags'] = flags

    if type(config['limb_form']) != bool:
        logger.error("Config field 'limb_form' must be true or false")
        return False

    return True


def load_config(path):
    with open(path, "r") as f:
        config = json.load(f)
    if type(config) != dict or not check_config(config):
        raise ValueError("Invalid configuration file {}".format(path))
    return config


def jwt_params_from_config(config):
    return JwtCircuitParams(
        max_message_length=config['max_cred_len'],
        max_b64_payload_length=config['max_b64_payload_len'],
        max_matches=config['max_matches'],
        max_substring_length=config['max_substring_len'],
        max_claim_length=config['max_claim_byte_len'],
    )


def show_params_from_config(config):
    return ShowCircuitParams(max_nonce_length=config['max_nonce_len'])


def decode_flags_for_claims(config, claim_names):
    flags = config.get('decode_flags', {})
    return [DecodeMode.from_flag(flags.get(name, 'plain')) for name in claim_names]
