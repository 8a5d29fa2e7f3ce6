# ballotbox/election/lifecycle.py
"""Election lifecycle: registration, login, phase transitions, voting, tally.

ElectionService is the single entry point for client operations. It owns the
current session (at most one logged-in user) and applies every identity,
role and phase rule before touching the RecordStore.

Phase state machine:
    CREATED -> REGISTRATION_OPEN -> VOTING_OPEN -> VOTING_CLOSED
    CREATED -----------------------^
TALLY_COMPLETE is reserved; tallying never changes the phase.

The service is single-threaded. cast_vote claims its dedup entry with one
insert-if-absent call, so a concurrent caller would only need one lock
around cast_vote itself.

Usage:
    service = ElectionService(RecordStore(), PasswordHashingService())
    service.ensure_default_admin()
    service.login('admin@example.com', 'admin', admin_pin='1234')
    election_id = service.create_election('Board Seat', '', ['X', 'Y'])
    service.open_voting(election_id)
"""

import hmac
import logging
import time
from typing import List, Optional

from ballotbox import config
from ballotbox.audit.audit_logger import AuditLogger
from ballotbox.authentication.rbac import Permission, require_permission
from ballotbox.database.models import Election, Phase, Role, User, Vote
from ballotbox.database.store import RecordStore
from ballotbox.encryption.password_hashing import PasswordHashingService
from ballotbox.errors import (
    AdminLimitExceededError,
    AlreadyVotedError,
    DuplicateEmailError,
    InvalidChoiceError,
    InvalidCredentialError,
    InvalidInputError,
    NotFoundError,
    PhaseViolationError,
)
from ballotbox.security.input_validator import InputValidator
from ballotbox.storage import snapshot
from ballotbox.tally.tally import TallyResult, tally_election

logger = logging.getLogger(__name__)

# target phase -> phases it may be entered from
TRANSITIONS = {
    Phase.REGISTRATION_OPEN: (Phase.CREATED,),
    Phase.VOTING_OPEN: (Phase.CREATED, Phase.REGISTRATION_OPEN),
    Phase.VOTING_CLOSED: (Phase.VOTING_OPEN,),
}


class ElectionService:
    def __init__(self, store: RecordStore = None, credentials: PasswordHashingService = None,
                 audit: Optional[AuditLogger] = None, validator: InputValidator = None,
                 clock=time.time):
        self.store = store if store is not None else RecordStore()
        self.credentials = credentials or PasswordHashingService()
        self.audit = audit
        self.validator = validator or InputValidator()
        self.clock = clock
        self.current_user: Optional[User] = None

    def _audit(self, event_type, data, user_id=None):
        if self.audit is not None:
            self.audit.record(event_type, data, user_id=user_id)

    def _session_id(self):
        return self.current_user.id if self.current_user else None

    def _now(self) -> int:
        return int(self.clock())

    # --------------------------- identity ---------------------------- #

    def register_user(self, name: str, email: str, password: str, role: Role = Role.VOTER) -> int:
        if isinstance(role, str):
            try:
                role = Role(role)
            except ValueError:
                raise InvalidInputError(f"Unknown role: {role!r}")
        if not self.validator.validate_email(email):
            raise InvalidInputError(f"Invalid email address: {email!r}")
        name = self.validator.clean_name(name)

        # Uniqueness is checked before the (slow) credential derivation.
        if self.store.email_taken(email):
            self._audit('registration_refused', {'email': email, 'reason': 'duplicate_email'})
            logger.warning("Registration refused: %s already registered", email)
            raise DuplicateEmailError(f"Email already registered: {email}")
        if role is Role.ADMIN and self.store.admin_exists:
            self._audit('registration_refused', {'email': email, 'reason': 'admin_limit'})
            logger.warning("Registration refused: an admin already exists")
            raise AdminLimitExceededError("Only one admin is allowed")

        user = User(
            id=self.store.allocate_user_id(),
            name=name,
            email=email,
            role=role,
            credential=self.credentials.derive(password),
        )
        self.store.add_user(user)

        self._audit('user_registered', {'user_id': user.id, 'role': role.value})
        logger.info("Registered user %s (%s)", user.id, role.value)
        return user.id

    def login(self, email: str, password: str, admin_pin: str = None) -> User:
        user = self.store.find_user_by_email(email)
        if user is None:
            self._audit('failed_login', {'email': email, 'reason': 'unknown_email'})
            logger.warning("Login failed: unknown email %s", email)
            raise NotFoundError(f"No user with email {email}")
        if not self.credentials.verify(user.credential, password):
            self._audit('failed_login', {'email': email, 'reason': 'bad_password'}, user_id=user.id)
            logger.warning("Login failed: bad password for user %s", user.id)
            raise InvalidCredentialError("Invalid email or password")
        if not user.active:
            self._audit('failed_login', {'email': email, 'reason': 'inactive'}, user_id=user.id)
            logger.warning("Login failed: user %s is inactive", user.id)
            raise InvalidCredentialError("Account is inactive")
        if user.is_admin:
            if admin_pin is None or not hmac.compare_digest(
                    admin_pin.encode('utf-8'), self.store.admin_pin.encode('utf-8')):
                self._audit('failed_mfa', {'user_id': user.id}, user_id=user.id)
                logger.warning("Login failed: bad admin PIN for user %s", user.id)
                raise InvalidCredentialError("Invalid admin PIN")

        self.current_user = user
        self._audit('successful_login', {'user_id': user.id, 'role': user.role.value}, user_id=user.id)
        logger.info("User %s logged in", user.id)
        return user

    def logout(self):
        if self.current_user is not None:
            self._audit('logout', {'user_id': self.current_user.id}, user_id=self.current_user.id)
            logger.info("User %s logged out", self.current_user.id)
        self.current_user = None

    def ensure_default_admin(self) -> Optional[int]:
        """Seed the configured admin account when none exists. Returns its id, or None."""
        if self.store.admin_exists:
            return None
        return self.register_user(config.DEFAULT_ADMIN_NAME, config.DEFAULT_ADMIN_EMAIL,
                                  config.DEFAULT_ADMIN_PASSWORD, Role.ADMIN)

    @require_permission(Permission.MANAGE_USERS)
    def set_user_active(self, user_id: int, active: bool):
        user = self.store.get_user(user_id)
        user.active = bool(active)
        self._audit('user_active_changed', {'user_id': user_id, 'active': user.active},
                    user_id=self._session_id())
        logger.info("User %s active=%s", user_id, user.active)
        if not user.active and self.current_user is user:
            self.logout()

    def list_users(self) -> List[User]:
        return list(self.store.users)

    # --------------------------- elections --------------------------- #

    @require_permission(Permission.MANAGE_ELECTIONS)
    def create_election(self, title: str, description: str, candidates: List[str]) -> int:
        candidates = self.validator.validate_candidates(candidates)
        election = Election(
            id=self.store.allocate_election_id(),
            title=self.validator.clean_title(title),
            description=self.validator.clean_description(description),
            candidates=candidates,
        )
        self.store.add_election(election)
        self._audit('election_created', {'election_id': election.id,
                                         'candidate_count': election.candidate_count},
                    user_id=self._session_id())
        logger.info("Created election %s with %d candidates", election.id, election.candidate_count)
        return election.id

    def get_election(self, election_id: int) -> Election:
        return self.store.get_election(election_id)

    def list_elections(self) -> List[Election]:
        return list(self.store.elections)

    def _transition(self, election_id: int, target: Phase) -> Election:
        election = self.store.get_election(election_id)
        if election.phase not in TRANSITIONS[target]:
            self._audit('phase_violation', {'election_id': election_id, 'phase': election.phase.name,
                                            'target': target.name}, user_id=self._session_id())
            logger.warning("Election %s cannot move from %s to %s",
                           election_id, election.phase.name, target.name)
            raise PhaseViolationError(
                f"Election {election_id} is {election.phase.name}, cannot move to {target.name}")
        election.phase = target
        self._audit('phase_changed', {'election_id': election_id, 'phase': target.name},
                    user_id=self._session_id())
        logger.info("Election %s is now %s", election_id, target.name)
        return election

    @require_permission(Permission.MANAGE_ELECTIONS)
    def open_registration(self, election_id: int):
        self._transition(election_id, Phase.REGISTRATION_OPEN)

    @require_permission(Permission.MANAGE_ELECTIONS)
    def open_voting(self, election_id: int):
        election = self._transition(election_id, Phase.VOTING_OPEN)
        if election.start_time is None:
            election.start_time = self._now()

    @require_permission(Permission.MANAGE_ELECTIONS)
    def close_voting(self, election_id: int):
        election = self._transition(election_id, Phase.VOTING_CLOSED)
        if election.end_time is None:
            election.end_time = self._now()

    # ---------------------------- voting ----------------------------- #

    @require_permission(Permission.VOTE)
    def cast_vote(self, election_id: int, choice: int) -> int:
        voter = self.current_user
        election = self.store.get_election(election_id)
        if election.phase is not Phase.VOTING_OPEN:
            self._audit('vote_refused', {'election_id': election_id, 'reason': 'phase'}, user_id=voter.id)
            logger.warning("Vote refused: election %s is %s", election_id, election.phase.name)
            raise PhaseViolationError(f"Election {election_id} is not open for voting")
        if not 0 <= choice < election.candidate_count:
            self._audit('vote_refused', {'election_id': election_id, 'reason': 'choice'}, user_id=voter.id)
            logger.warning("Vote refused: choice %s out of range for election %s", choice, election_id)
            raise InvalidChoiceError(
                f"Choice {choice} out of range 0..{election.candidate_count - 1}")
        if not self.store.mark_voted(election_id, voter.id):
            self._audit('duplicate_vote_attempt', {'election_id': election_id}, user_id=voter.id)
            logger.warning("Vote refused: user %s already voted in election %s", voter.id, election_id)
            raise AlreadyVotedError(f"User {voter.id} already voted in election {election_id}")

        vote = Vote(
            id=self.store.allocate_vote_id(),
            election_id=election_id,
            voter_id=voter.id,
            choice=choice,
            timestamp=self._now(),
        )
        self.store.add_vote(vote)
        self._audit('vote_cast', {'vote_id': vote.id, 'election_id': election_id}, user_id=voter.id)
        logger.info("Vote %s cast in election %s", vote.id, election_id)
        return vote.id

    def tally(self, election_id: int) -> TallyResult:
        """Count the election's votes and pick the winner; allowed in any phase."""
        election = self.store.get_election(election_id)
        result = tally_election(election, self.store.count_votes(election))
        self._audit('results_accessed', {'election_id': election_id, 'votes_count': result.total_votes},
                    user_id=self._session_id())
        logger.info("Tallied election %s: winner %s with %s votes",
                    election_id, result.winner_index, result.winner_votes)
        return result

    # -------------------------- persistence -------------------------- #

    def save(self, directory: str = None):
        snapshot.save_snapshot(self.store, directory or config.DATA_DIR)
        if self.audit is not None:
            self.audit.flush()

    def load(self, directory: str = None) -> int:
        """Replace the store's contents from a snapshot; logs out. Returns skipped row count."""
        self.current_user = None
        return snapshot.load_snapshot(self.store, directory or config.DATA_DIR)

    def export_votes(self, path: str) -> int:
        count = snapshot.export_votes_csv(self.store, path)
        self._audit('votes_exported', {'path': path, 'votes_count': count}, user_id=self._session_id())
        return count
