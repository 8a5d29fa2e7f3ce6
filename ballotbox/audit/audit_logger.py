# ballotbox/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
from collections import deque
from datetime import datetime, timezone
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ballotbox import config

# Audit sink: events are queued in FIFO order and flushed to an append-only
# JSON-lines log with hash chaining and Ed25519 signatures.

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(self, log_dir=None, signing_key=None):
        self.log_dir = log_dir or config.AUDIT_LOG_DIR
        self.log_file = os.path.join(self.log_dir, 'audit.log')
        self.previous_hash = None
        self.pending = deque()

        os.makedirs(self.log_dir, exist_ok=True)

        self.signing_key = signing_key or Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if os.path.exists(self.log_file):
            with open(self.log_file, 'r') as f:
                lines = f.readlines()
                if lines:
                    try:
                        last_entry = json.loads(lines[-1])
                        self.previous_hash = last_entry.get('hash')
                    except ValueError:
                        self.previous_hash = None

    def record(self, event_type, data, user_id=None):
        """Queue an event; nothing is written until flush()."""
        self.pending.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "data": data,
            "user_id": user_id,
        })

    def flush(self):
        """Write queued events in order. Returns the number written."""
        written = 0
        try:
            with open(self.log_file, 'a') as f:
                while self.pending:
                    log_entry = dict(self.pending[0])
                    log_entry['previous_hash'] = self.previous_hash
                    entry_json = json.dumps(log_entry, sort_keys=True)
                    entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
                    log_entry['hash'] = entry_hash

                    signature = self.signing_key.sign(entry_json.encode())
                    log_entry['signature'] = base64.b64encode(signature).decode()

                    f.write(json.dumps(log_entry) + "\n")
                    self.pending.popleft()
                    self.previous_hash = entry_hash
                    written += 1
        except OSError as e:
            logger.error(f"Audit log error: {str(e)}")
        return written

    def verify_log_integrity(self):
        try:
            if not os.path.exists(self.log_file):
                return True
            previous_hash = None
            public_key = self.signing_key.public_key()
            with open(self.log_file, 'r') as f:
                for line in f:
                    if not line.strip():
                        continue
                    log_entry = json.loads(line)
                    if log_entry.get('previous_hash') != previous_hash:
                        return False
                    signature = base64.b64decode(log_entry['signature'])
                    entry_copy = dict(log_entry)
                    entry_copy.pop('signature')
                    entry_hash = entry_copy.pop('hash')
                    entry_json = json.dumps(entry_copy, sort_keys=True).encode()
                    if hashlib.sha256(entry_json).hexdigest() != entry_hash:
                        return False
                    public_key.verify(signature, entry_json)
                    previous_hash = entry_hash
            return True
        except Exception:
            return False
