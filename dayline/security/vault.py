"""
Tool: Secret Store
Purpose: Encrypted storage for OAuth tokens and API keys

Features:
- AES-256-GCM encryption at rest (12-byte nonce, 16-byte tag)
- Fresh random nonce on every write
- Fails closed: a tag that does not verify is a DECRYPTION_FAILED error,
  never "not found" and never corrupted plaintext
- Key rotation re-encrypts every secret in one transaction

Usage:
    python -m dayline.security.vault --action generate-key
    python -m dayline.security.vault --action set --key GOOGLE_API_KEY --value "..."
    python -m dayline.security.vault --action get --key GOOGLE_API_KEY
    python -m dayline.security.vault --action delete --key OLD_TOKEN

Security Notes:
    - The key is base64 of exactly 32 bytes, read from DAYLINE_ENCRYPTION_KEY
      once at startup and passed to SecretStore explicitly
    - Never logs decrypted values
"""

import argparse
import base64
import binascii
import json
import logging
import os
import secrets
import sqlite3
import sys
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from dayline import get_connection
from dayline.errors import AppError, CryptoErrorCode, Result, db_query_error, db_write_error

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16

KEY_HINT = "Generate one with: openssl rand -base64 32"


def load_encryption_key(encoded: str | None) -> Result[bytes]:
    """Decode and validate a base64 encryption key."""
    if not encoded:
        return Result.fail(
            AppError(CryptoErrorCode.KEY_MISSING, f"Encryption key is not set. {KEY_HINT}")
        )

    try:
        key = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        return Result.fail(
            AppError(CryptoErrorCode.KEY_INVALID, f"Encryption key is not valid base64. {KEY_HINT}", cause=e)
        )

    if len(key) != KEY_LENGTH:
        return Result.fail(
            AppError(
                CryptoErrorCode.KEY_INVALID,
                f"Encryption key is {len(key)} bytes ({KEY_LENGTH} required). {KEY_HINT}",
            )
        )

    return Result.ok(key)


def generate_key() -> str:
    """New random key, base64-encoded for DAYLINE_ENCRYPTION_KEY."""
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


def encrypt_value(plaintext: str, key: bytes) -> str:
    """Encrypt with AES-256-GCM; returns base64(nonce | tag | ciphertext)."""
    nonce = secrets.token_bytes(NONCE_LENGTH)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(nonce + tag + ciphertext).decode("ascii")


def decrypt_value(blob: str, key: bytes) -> str:
    """
    Decrypt a blob produced by encrypt_value.

    Raises:
        InvalidTag: tampered data or wrong key
        ValueError: blob is not a well-formed envelope
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except binascii.Error as e:
        raise ValueError("Encrypted value is not valid base64") from e

    if len(raw) < NONCE_LENGTH + TAG_LENGTH:
        raise ValueError("Encrypted value is truncated")

    nonce = raw[:NONCE_LENGTH]
    tag = raw[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
    ciphertext = raw[NONCE_LENGTH + TAG_LENGTH:]
    plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    return plaintext.decode("utf-8")


class SecretStore:
    """
    Key-value store of encrypted secrets backed by the credentials table.

    Args:
        key: 32-byte AES key (see load_encryption_key)
        db_path: SQLite database file (defaults to data/dayline.db)
    """

    def __init__(self, key: bytes, db_path: Path | str | None = None):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"SecretStore key must be {KEY_LENGTH} bytes")
        self._key = key
        self.db_path = db_path

    def get(self, key: str) -> Result[str | None]:
        """Decrypted value, ``None`` if absent, or DECRYPTION_FAILED."""
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT encrypted_value FROM credentials WHERE key = ?", (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_query_error(f"Failed to read secret '{key}': {e}", cause=e))

        if not row:
            return Result.ok(None)

        try:
            return Result.ok(decrypt_value(row["encrypted_value"], self._key))
        except (InvalidTag, ValueError, UnicodeDecodeError) as e:
            logger.error(f"Decryption failed for secret '{key}' (tampered data or rotated key)")
            return Result.fail(
                AppError(
                    CryptoErrorCode.DECRYPTION_FAILED,
                    f"Secret '{key}' could not be decrypted; the data is corrupted or the key does not match",
                    cause=e,
                )
            )

    def set(self, key: str, value: str) -> Result[None]:
        """Encrypt and upsert a secret."""
        try:
            encrypted = encrypt_value(value, self._key)
        except Exception as e:
            return Result.fail(
                AppError(CryptoErrorCode.ENCRYPTION_FAILED, f"Encryption failed for '{key}': {e}", cause=e)
            )

        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO credentials (key, encrypted_value, created_at, updated_at)
                        VALUES (?, ?, datetime('now'), datetime('now'))
                        ON CONFLICT(key) DO UPDATE SET
                            encrypted_value = excluded.encrypted_value,
                            updated_at = datetime('now')
                    """,
                        (key, encrypted),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to store secret '{key}': {e}", cause=e))

        return Result.ok()

    def delete(self, key: str) -> Result[None]:
        """Remove a secret; deleting a missing key succeeds."""
        try:
            conn = get_connection(self.db_path)
            try:
                with conn:
                    conn.execute("DELETE FROM credentials WHERE key = ?", (key,))
            finally:
                conn.close()
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Failed to delete secret '{key}': {e}", cause=e))

        return Result.ok()

    def exists(self, key: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute("SELECT 1 FROM credentials WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        return row is not None

    def get_json(self, key: str) -> Result[dict | None]:
        """Secret stored as a JSON object."""
        result = self.get(key)
        if not result.success or result.value is None:
            return result

        try:
            return Result.ok(json.loads(result.value))
        except json.JSONDecodeError as e:
            return Result.fail(
                AppError(CryptoErrorCode.DECRYPTION_FAILED, f"Secret '{key}' is not valid JSON", cause=e)
            )

    def set_json(self, key: str, value: dict) -> Result[None]:
        return self.set(key, json.dumps(value))

    def rotate_key(self, new_key: bytes) -> Result[int]:
        """
        Re-encrypt every secret under ``new_key``.

        All secrets are decrypted first; if any fails, nothing is written.
        """
        if len(new_key) != KEY_LENGTH:
            return Result.fail(AppError(CryptoErrorCode.KEY_INVALID, "New key must be 32 bytes"))

        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("SELECT key, encrypted_value FROM credentials").fetchall()

            decrypted = []
            for row in rows:
                try:
                    decrypted.append((row["key"], decrypt_value(row["encrypted_value"], self._key)))
                except (InvalidTag, ValueError) as e:
                    return Result.fail(
                        AppError(
                            CryptoErrorCode.DECRYPTION_FAILED,
                            f"Cannot rotate: secret '{row['key']}' does not decrypt with the current key",
                            cause=e,
                        )
                    )

            with conn:
                for key, plaintext in decrypted:
                    conn.execute(
                        "UPDATE credentials SET encrypted_value = ?, updated_at = datetime('now') WHERE key = ?",
                        (encrypt_value(plaintext, new_key), key),
                    )
        except sqlite3.Error as e:
            return Result.fail(db_write_error(f"Key rotation failed, rolled back: {e}", cause=e))
        finally:
            conn.close()

        self._key = new_key
        logger.info("Re-encrypted %d secrets under the new key", len(decrypted))
        return Result.ok(len(decrypted))


def main():
    from dayline.config import ENCRYPTION_KEY_ENV, load_settings

    parser = argparse.ArgumentParser(description="Dayline secret store")
    parser.add_argument(
        "--action",
        required=True,
        choices=["set", "get", "delete", "exists", "generate-key"],
        help="Action to perform",
    )
    parser.add_argument("--key", help="Secret key")
    parser.add_argument("--value", help="Secret value (for set)")

    args = parser.parse_args()

    if args.action == "generate-key":
        print(generate_key())
        return

    if not args.key:
        print(f"Error: --key required for {args.action}")
        sys.exit(1)

    settings = load_settings()
    key_result = load_encryption_key(settings.encryption_key or os.environ.get(ENCRYPTION_KEY_ENV))
    if not key_result.success:
        print(f"Error: {key_result.error.message}")
        sys.exit(1)

    store = SecretStore(key_result.value, settings.db_path)

    if args.action == "set":
        if args.value is None:
            print("Error: --value required for set")
            sys.exit(1)
        result = store.set(args.key, args.value)
        output = {"success": result.success}
    elif args.action == "get":
        result = store.get(args.key)
        output = {"success": result.success, "found": result.value is not None}
        if result.success and result.value is not None:
            output["value"] = result.value
    elif args.action == "delete":
        result = store.delete(args.key)
        output = {"success": result.success}
    else:
        output = {"success": True, "exists": store.exists(args.key)}
        result = Result.ok()

    if not result.success:
        output["error"] = result.error.to_dict()

    print(json.dumps(output, indent=2))
    if not output["success"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
