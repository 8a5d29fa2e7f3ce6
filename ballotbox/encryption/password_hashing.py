# ballotbox/encryption/password_hashing.py

import hmac
import secrets
from argon2.low_level import Type, hash_secret_raw
from argon2.exceptions import HashingError

from ballotbox import config
from ballotbox.database.models import Credential

# Credential derivation and verification using Argon2id raw hashes.
# Salt and hash have fixed widths so they can be stored as fixed-width hex.

class PasswordHashingService:
    def __init__(self, time_cost=None, memory_cost=None, parallelism=None,
                 hash_len=config.HASH_LEN, salt_len=config.SALT_LEN):
        self.time_cost = time_cost or config.ARGON2_TIME_COST
        self.memory_cost = memory_cost or config.ARGON2_MEMORY_COST
        self.parallelism = parallelism or config.ARGON2_PARALLELISM
        self.hash_len = hash_len
        self.salt_len = salt_len

    def _hash(self, password: str, salt: bytes) -> bytes:
        try:
            return hash_secret_raw(
                secret=password.encode('utf-8'),
                salt=salt,
                time_cost=self.time_cost,
                memory_cost=self.memory_cost,
                parallelism=self.parallelism,
                hash_len=self.hash_len,
                type=Type.ID,
            )
        except HashingError as e:
            raise ValueError(f"Password hashing failed: {str(e)}")

    def derive(self, password: str) -> Credential:
        salt = secrets.token_bytes(self.salt_len)
        return Credential(salt=salt, hash=self._hash(password, salt))

    def verify(self, credential: Credential, password: str) -> bool:
        if len(credential.hash) != self.hash_len:
            return False
        try:
            candidate = self._hash(password, credential.salt)
        except ValueError:
            return False
        return hmac.compare_digest(candidate, credential.hash)
