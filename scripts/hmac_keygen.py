# SPDX-License-Identifier: GPL-3.0-only
"""HMAC Key Generation."""

import os
import secrets

from base_logger import get_logger
from marketplace_otp.utils import get_configs, load_key

logger = get_logger("hmac.keygen")

KEY_LENGTH = 32


def main() -> None:
    """Generate the OTP hashing key if it doesn't exist."""
    key_file = get_configs("HMAC_KEY_FILE", strict=True)

    if os.path.exists(key_file):
        load_key(key_file, KEY_LENGTH)
        logger.info("HMAC key already exists. Skipping generation.")
        return

    key_dir = os.path.dirname(key_file)
    if key_dir:
        os.makedirs(key_dir, exist_ok=True)

    logger.info("Generating HMAC key...")
    with open(key_file, "w", encoding="utf-8") as f:
        f.write(secrets.token_hex(KEY_LENGTH // 2))
    os.chmod(key_file, 0o600)

    logger.info("HMAC key stored at %s", key_file)


if __name__ == "__main__":
    main()
