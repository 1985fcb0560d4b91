"""Encrypt secrets with the device's master key.

Encryption runs remotely: the value is stored as the secret of a throw-away
radius-server object, the device encrypts it, and we read the ciphertext back.
Decryption only works on the device itself, so we hand back a bash command
that performs it there.
"""
import logging
import secrets
from typing import Optional

from .devices.base import DeviceGateway

logger = logging.getLogger(__name__)

ENCRYPT_PATH = "/tm/auth/radius-server"
CHUNK_SIZE = 500
TEMP_ID_PREFIX = "declarative_onboarding_delete_me"


def chunk(value: str, size: int = CHUNK_SIZE) -> list[str]:
    """Split a value into pieces the device will accept as a single secret."""
    return [value[i:i + size] for i in range(0, len(value), size)] or [""]


def decrypt_command(tokens: list[str], target: str) -> str:
    """Bash that decrypts each token on the device and writes the plaintext to target."""
    commands = []
    for index, token in enumerate(tokens):
        # survives the outer bash -c quoting and stays literal inside the PHP string
        secret = token.replace("$", "\\\\\\$")
        php = "".join([
            'coapi_login(\\"admin\\");',
            '\\$query_result = coapi_query(\\"master_key\\");',
            '\\$row = coapi_fetch(\\$query_result);',
            '\\$master_key = \\$row[\\"master_key\\"];',
            f'\\$plain = f5_decrypt_string(\\"{secret}\\", \\$master_key);',
            'echo \\$plain;',
        ])
        redirect = ">" if index == 0 else ">>"
        commands.append(f"/usr/bin/php -r '{php}' {redirect} {target}")
    return "; ".join(commands)


class DeviceSecretCodec:
    """Encrypts plaintext through the device's radius-server secret storage."""

    async def _encrypt_chunk(self, value: str, index: int, gateway: DeviceGateway) -> str:
        temp_id = f"{TEMP_ID_PREFIX}_{index}_{secrets.token_hex(6)}"
        response = await gateway.create(
            ENCRYPT_PATH,
            {"name": temp_id, "server": temp_id, "secret": value},
        )
        try:
            return response["secret"]
        finally:
            await gateway.delete(f"{ENCRYPT_PATH}/~Common~{temp_id}")

    async def encrypt(
        self,
        value: str,
        gateway: DeviceGateway,
        task_id: Optional[str] = None,
    ) -> list[str]:
        """Encrypt a value, one token per 500 character chunk.

        Chunks are encrypted one after another; the device allows only one
        radius-server write at a time.
        """
        tokens = []
        for index, piece in enumerate(chunk(value)):
            try:
                tokens.append(await self._encrypt_chunk(piece, index, gateway))
            except Exception as e:
                logger.warning(f"[{task_id}] Failed to encrypt data: {e}")
                raise
        return tokens
