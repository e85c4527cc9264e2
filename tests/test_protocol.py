"""Tests for the Register then Show session lifecycle."""

import threading

import pytest

from sdjwt_witness.errors import CircuitRejected, InputEncodingError, InvalidKey, SessionError, SignatureInvalid
from sdjwt_witness.jwk_gen import generate_key, private_scalar, public_jwk
from sdjwt_witness.jwt_sign import combine, issue_sd_jwt
from sdjwt_witness.prepare_show import sign_device_nonce
from sdjwt_witness.protocol import PresentationSession, PresentationState, SessionState, VerifierResult
from sdjwt_witness.witness_helper import jwk_to_point

NONCE = "challenge-nonce-12345"


@pytest.fixture
def session(verifier, jwt_params, show_params):
    return PresentationSession(verifier, jwt_params, show_params)


class TestRegisterThenShow:
    def test_present_after_register(self, session, verifier, sd_jwt, issuer_public, device_key):
        device = session.register(sd_jwt, issuer_public)
        assert device == jwk_to_point(public_jwk(device_key))
        assert session.state is SessionState.REGISTERED

        presentation = session.present(NONCE, sign_device_nonce(NONCE, private_scalar(device_key)))
        assert presentation.accepted
        assert presentation.state is PresentationState.PRESENTED
        assert presentation.nonce == NONCE
        assert session.state is SessionState.REGISTERED
        assert [circuit for circuit, _ in verifier.calls] == ["jwt", "show"]

        show_inputs = verifier.calls[1][1]
        assert (int(show_inputs["deviceKeyX"]), int(show_inputs["deviceKeyY"])) == (device.x, device.y)

    def test_unrelated_device_signature(self, session, sd_jwt, issuer_public, other_key):
        session.register(sd_jwt, issuer_public)
        with pytest.raises(SignatureInvalid):
            session.present(NONCE, sign_device_nonce(NONCE, private_scalar(other_key)))
        assert session.state is SessionState.FAILED
        assert isinstance(session.error, SignatureInvalid)

    def test_many_presentations(self, session, sd_jwt, issuer_public, device_key):
        session.register(sd_jwt, issuer_public)
        d = private_scalar(device_key)
        for i in range(3):
            nonce = "nonce-{}".format(i)
            assert session.present(nonce, sign_device_nonce(nonce, d)).accepted
        assert session.presentations == 3
        assert session.state is SessionState.REGISTERED

    @pytest.mark.parametrize("nonce", [None, 12345])
    def test_malformed_nonce_fails_session(self, nonce, session, sd_jwt, issuer_public, device_key):
        session.register(sd_jwt, issuer_public)
        with pytest.raises(InputEncodingError):
            session.present(nonce, sign_device_nonce(NONCE, private_scalar(device_key)))
        assert session.state is SessionState.FAILED
        assert isinstance(session.error, InputEncodingError)

    def test_overlapping_presentations(self, verifier, jwt_params, show_params, sd_jwt, issuer_public, device_key):
        first_waiting = threading.Event()
        release = threading.Event()

        def blocking(circuit, inputs):
            if circuit == "show" and not first_waiting.is_set():
                first_waiting.set()
                release.wait(timeout=10)
            return verifier(circuit, inputs)

        session = PresentationSession(blocking, jwt_params, show_params)
        session.register(sd_jwt, issuer_public)
        d = private_scalar(device_key)
        results = {}

        def first_show():
            results["first"] = session.present("nonce-1", sign_device_nonce("nonce-1", d))

        thread = threading.Thread(target=first_show)
        thread.start()
        assert first_waiting.wait(timeout=10)
        try:
            second = session.present("nonce-2", sign_device_nonce("nonce-2", d))
        finally:
            release.set()
            thread.join(timeout=10)

        assert second.state is PresentationState.PRESENTED
        assert results["first"].state is PresentationState.PRESENTED
        assert session.presentations == 2
        assert session.state is SessionState.REGISTERED

    def test_decode_flags_reach_circuit(self, session, verifier, sd_jwt, issuer_public):
        session.register(sd_jwt, issuer_public, decode_flags=[0, 1])
        assert verifier.calls[0][1]["decodeFlags"] == [0, 1, 0, 0, 0, 0]


class TestStateMachine:
    def test_present_before_register(self, session, device_key):
        with pytest.raises(SessionError):
            session.present(NONCE, sign_device_nonce(NONCE, private_scalar(device_key)))
        assert session.state is SessionState.UNREGISTERED

    def test_register_twice(self, session, sd_jwt, issuer_public):
        session.register(sd_jwt, issuer_public)
        with pytest.raises(SessionError):
            session.register(sd_jwt, issuer_public)

    def test_failed_is_terminal(self, session, sd_jwt, issuer_public, device_key, other_key):
        session.register(sd_jwt, issuer_public)
        with pytest.raises(SignatureInvalid):
            session.present(NONCE, sign_device_nonce(NONCE, private_scalar(other_key)))
        with pytest.raises(SessionError):
            session.present(NONCE, sign_device_nonce(NONCE, private_scalar(device_key)))
        assert session.state is SessionState.FAILED

    def test_wrong_issuer_fails_registration(self, session, sd_jwt, other_key):
        with pytest.raises(SignatureInvalid):
            session.register(sd_jwt, public_jwk(other_key))
        assert session.state is SessionState.FAILED
        assert session.device_key is None

    def test_circuit_rejects_register(self, rejecting_verifier, jwt_params, show_params, sd_jwt, issuer_public):
        session = PresentationSession(rejecting_verifier, jwt_params, show_params)
        with pytest.raises(CircuitRejected):
            session.register(sd_jwt, issuer_public)
        assert session.state is SessionState.FAILED

    def test_circuit_rejects_show(self, verifier, jwt_params, show_params, sd_jwt, issuer_public, device_key):
        session = PresentationSession(verifier, jwt_params, show_params)
        session.register(sd_jwt, issuer_public)
        verifier.accept = False
        with pytest.raises(CircuitRejected):
            session.present(NONCE, sign_device_nonce(NONCE, private_scalar(device_key)))
        assert session.state is SessionState.FAILED

    def test_attested_key_must_match_credential(self, jwt_params, show_params, sd_jwt, issuer_public):
        def verifier(circuit, inputs):
            return VerifierResult(True, {"KeyBindingX": 1, "KeyBindingY": 2})

        session = PresentationSession(verifier, jwt_params, show_params)
        with pytest.raises(InvalidKey):
            session.register(sd_jwt, issuer_public)
        assert session.state is SessionState.FAILED

    def test_verifier_interrupted(self, verifier, jwt_params, show_params, sd_jwt, issuer_public, device_key):
        def interrupted(circuit, inputs):
            if circuit == "show":
                raise TimeoutError("prover timed out")
            return verifier(circuit, inputs)

        session = PresentationSession(interrupted, jwt_params, show_params)
        session.register(sd_jwt, issuer_public)
        with pytest.raises(TimeoutError):
            session.present(NONCE, sign_device_nonce(NONCE, private_scalar(device_key)))
        assert session.state is SessionState.REGISTERED
        assert session.error is None


class TestIndependentSessions:
    def test_sessions_keep_their_own_device_keys(self, verifier, jwt_params, show_params, issuer_key, issuer_public, sd_claims):
        claims, disclosable = sd_claims
        first_device, second_device = generate_key(), generate_key()
        first = PresentationSession(verifier, jwt_params, show_params)
        second = PresentationSession(verifier, jwt_params, show_params)

        first.register(combine(*issue_sd_jwt(claims, disclosable, issuer_key, first_device)), issuer_public)
        second.register(combine(*issue_sd_jwt(claims, disclosable, issuer_key, second_device)), issuer_public)
        assert first.device_key != second.device_key

        assert first.present(NONCE, sign_device_nonce(NONCE, private_scalar(first_device))).accepted
        with pytest.raises(SignatureInvalid):
            second.present(NONCE, sign_device_nonce(NONCE, private_scalar(first_device)))
        assert first.state is SessionState.REGISTERED
        assert second.state is SessionState.FAILED
