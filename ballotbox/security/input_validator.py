# ballotbox/security/input_validator.py

import re

from ballotbox import config
from ballotbox.errors import InvalidInputError

# Input validation for registration and election creation.
# Free text is stripped and truncated; identifiers that are persisted
# structurally (emails, candidate names) are rejected when malformed.

class InputValidator:
    def __init__(self, max_candidates=config.MAX_CANDIDATES,
                 delimiter=config.CANDIDATE_DELIMITER):
        self.max_candidates = max_candidates
        self.delimiter = delimiter

        self.patterns = {
            'email': re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'),
            'control': re.compile(r'[\x00-\x1f\x7f]'),
        }

    def sanitize_string(self, input_str, max_length=255):
        if not isinstance(input_str, str):
            raise InvalidInputError("Input must be a string")
        sanitized = self.patterns['control'].sub(' ', input_str).strip()
        return sanitized[:max_length]

    def validate_email(self, email):
        return (isinstance(email, str)
                and len(email) <= config.MAX_EMAIL_LEN
                and bool(self.patterns['email'].match(email)))

    def clean_name(self, name):
        return self.sanitize_string(name, config.MAX_NAME_LEN)

    def clean_title(self, title):
        return self.sanitize_string(title, config.MAX_TITLE_LEN)

    def clean_description(self, description):
        return self.sanitize_string(description, config.MAX_DESCRIPTION_LEN)

    def validate_candidates(self, candidates):
        """Return the cleaned candidate list, order and duplicates preserved."""
        if isinstance(candidates, str) or not isinstance(candidates, (list, tuple)):
            raise InvalidInputError("Candidates must be a list of names")
        if not candidates:
            raise InvalidInputError("At least one candidate required")
        if len(candidates) > self.max_candidates:
            raise InvalidInputError(f"At most {self.max_candidates} candidates allowed")

        cleaned = []
        for name in candidates:
            name = self.sanitize_string(name, config.MAX_CANDIDATE_NAME_LEN)
            if not name:
                raise InvalidInputError("Candidate names must not be empty")
            if self.delimiter in name:
                raise InvalidInputError(f"Candidate name may not contain {self.delimiter!r}: {name}")
            cleaned.append(name)
        return cleaned
