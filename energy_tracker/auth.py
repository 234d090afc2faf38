# auth.py
import logging

from fastapi import Header, HTTPException
from firebase_admin import auth

_LOGGER = logging.getLogger(__name__)


def verify_user(authorization: str = Header(...)):
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid token")

    token = authorization.split(" ", 1)[1]

    try:
        decoded = auth.verify_id_token(token)
        return decoded["uid"]
    except (ValueError, KeyError, auth.InvalidIdTokenError, auth.CertificateFetchError) as ex:
        _LOGGER.debug(f"Rejected Firebase token: {ex}")
        raise HTTPException(status_code=401, detail="Invalid Firebase token")
