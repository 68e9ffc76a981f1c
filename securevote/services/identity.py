from flask import current_app

from securevote.extensions import db
from securevote.models import Voter


class IdentityVerifier:
    """Decides whether a voter may cast a ballot right now."""

    def verify(self, voter_id):
        raise NotImplementedError


class TrustingVerifier(IdentityVerifier):
    def verify(self, voter_id):
        return True


class EnrolledFaceVerifier(IdentityVerifier):
    """Accepts voters who enrolled a face capture at registration."""

    def verify(self, voter_id):
        voter = db.session.get(Voter, voter_id)
        return bool(voter is not None and voter.face_data)


VERIFIERS = {
    "trusting": TrustingVerifier,
    "enrolled-face": EnrolledFaceVerifier,
}


def init_identity_verifier(app):
    name = app.config["IDENTITY_VERIFIER"]
    try:
        verifier_class = VERIFIERS[name]
    except KeyError:
        raise RuntimeError(f"Unknown IDENTITY_VERIFIER '{name}'.") from None
    app.extensions["identity_verifier"] = verifier_class()


def get_identity_verifier():
    return current_app.extensions["identity_verifier"]
