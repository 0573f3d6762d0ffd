import json
import os

import base58
from dotenv import load_dotenv
from solders.keypair import Keypair

from altpy.constants.config import PRIVATE_KEY_ENV
from altpy.errors import ConfigurationError


def load_keypair(private_key: str) -> Keypair:
    if not private_key or not private_key.strip():
        raise ConfigurationError("no private key supplied")

    # try to load privateKey as a filepath
    if os.path.exists(private_key):
        with open(private_key, "r") as file:
            private_key = file.read().strip()

    try:
        if "[" in private_key and "]" in private_key:
            key_bytes = bytes(json.loads(private_key))
        elif "," in private_key:
            key_bytes = bytes(map(int, private_key.split(",")))
        else:
            private_key = private_key.replace(" ", "")
            key_bytes = base58.b58decode(private_key)

        return Keypair.from_bytes(key_bytes)
    except (ValueError, TypeError) as e:
        # the key itself is never part of the message
        raise ConfigurationError(
            f"could not decode private key: {type(e).__name__}"
        ) from None


def load_signer_from_env(var: str = PRIVATE_KEY_ENV) -> Keypair:
    load_dotenv()
    secret = os.environ.get(var)
    if not secret:
        raise ConfigurationError(f"{var} is not set")
    return load_keypair(secret)
