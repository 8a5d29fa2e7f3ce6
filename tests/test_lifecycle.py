import json
import pytest
from ballotbox import config
from ballotbox.database.models import Phase, Role
from ballotbox.database.store import RecordStore
from ballotbox.election.lifecycle import ElectionService
from ballotbox.errors import (
    AdminLimitExceededError,
    AlreadyVotedError,
    DuplicateEmailError,
    InvalidChoiceError,
    InvalidCredentialError,
    InvalidInputError,
    NotFoundError,
    PhaseViolationError,
    UnauthorizedError,
)

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_PIN


def _login_voter(service, email="a@x.com", password="pw"):
    service.logout()
    service.login(email, password)


def _login_admin(service):
    service.logout()
    service.login(ADMIN_EMAIL, ADMIN_PASSWORD, admin_pin=ADMIN_PIN)


@pytest.fixture
def open_election(admin_service):
    """Admin logged in, voter a@x.com registered, election 'Board Seat' open."""
    admin_service.register_user("Alice", "a@x.com", "pw")
    election_id = admin_service.create_election("Board Seat", "Seat on the board", ["X", "Y"])
    admin_service.open_voting(election_id)
    return election_id


# ------------------------------ registration ------------------------------ #

def test_register_returns_monotonic_ids(service):
    assert service.register_user("A", "a@x.com", "pw") == 1
    assert service.register_user("B", "b@x.com", "pw") == 2
    assert [u.email for u in service.list_users()] == ["a@x.com", "b@x.com"]


def test_register_duplicate_email(service):
    service.register_user("A", "a@x.com", "pw")
    with pytest.raises(DuplicateEmailError):
        service.register_user("A again", "a@x.com", "other")
    # emails are case-sensitive as stored
    assert service.register_user("A upper", "A@x.com", "pw") == 2


def test_only_one_admin(service):
    service.register_user("Root", "root@x.com", "pw", Role.ADMIN)
    with pytest.raises(AdminLimitExceededError):
        service.register_user("Root2", "root2@x.com", "pw", "admin")
    assert sum(1 for u in service.list_users() if u.is_admin) == 1


def test_duplicate_email_checked_before_admin_limit(service):
    service.register_user("Root", "root@x.com", "pw", Role.ADMIN)
    with pytest.raises(DuplicateEmailError):
        service.register_user("Root", "root@x.com", "pw", Role.ADMIN)


@pytest.mark.parametrize("email", ["not-an-email", "", "a@b"])
def test_register_rejects_malformed_email(service, email):
    with pytest.raises(InvalidInputError):
        service.register_user("A", email, "pw")
    assert service.list_users() == []


def test_register_rejects_unknown_role(service):
    with pytest.raises(InvalidInputError):
        service.register_user("A", "a@x.com", "pw", "superuser")


def test_register_does_not_store_password(service):
    service.register_user("A", "a@x.com", "pw")
    user = service.list_users()[0]
    assert b"pw" not in user.credential.hash
    assert service.credentials.verify(user.credential, "pw")


def test_ensure_default_admin(service):
    admin_id = service.ensure_default_admin()
    admin = service.store.get_user(admin_id)
    assert admin.email == config.DEFAULT_ADMIN_EMAIL
    assert admin.is_admin
    assert service.ensure_default_admin() is None


# --------------------------------- login ---------------------------------- #

def test_login_unknown_email(service):
    with pytest.raises(NotFoundError):
        service.login("nobody@x.com", "pw")
    assert service.current_user is None


def test_login_bad_password(service):
    service.register_user("A", "a@x.com", "pw")
    with pytest.raises(InvalidCredentialError):
        service.login("a@x.com", "wrong")
    assert service.current_user is None


def test_login_sets_session_and_logout_clears(service):
    user_id = service.register_user("A", "a@x.com", "pw")
    user = service.login("a@x.com", "pw")
    assert user.id == user_id
    assert service.current_user is user
    service.logout()
    assert service.current_user is None
    # idempotent
    service.logout()
    assert service.current_user is None


@pytest.mark.parametrize("pin", [None, "", "0000"])
def test_admin_login_requires_pin(service, pin):
    service.register_user("Root", ADMIN_EMAIL, ADMIN_PASSWORD, Role.ADMIN)
    with pytest.raises(InvalidCredentialError):
        service.login(ADMIN_EMAIL, ADMIN_PASSWORD, admin_pin=pin)
    assert service.current_user is None


def test_admin_login_with_pin(service):
    service.register_user("Root", ADMIN_EMAIL, ADMIN_PASSWORD, Role.ADMIN)
    assert service.login(ADMIN_EMAIL, ADMIN_PASSWORD, admin_pin=ADMIN_PIN).is_admin


def test_voter_login_ignores_pin(service):
    service.register_user("A", "a@x.com", "pw")
    assert service.login("a@x.com", "pw", admin_pin="anything").id == 1


def test_inactive_user_cannot_login(admin_service):
    user_id = admin_service.register_user("A", "a@x.com", "pw")
    admin_service.set_user_active(user_id, False)
    with pytest.raises(InvalidCredentialError):
        admin_service.login("a@x.com", "pw")
    _login_admin(admin_service)
    admin_service.set_user_active(user_id, True)
    assert admin_service.login("a@x.com", "pw").id == user_id


def test_set_user_active_requires_admin(service):
    user_id = service.register_user("A", "a@x.com", "pw")
    service.login("a@x.com", "pw")
    with pytest.raises(UnauthorizedError):
        service.set_user_active(user_id, False)


def test_set_user_active_unknown_user(admin_service):
    with pytest.raises(NotFoundError):
        admin_service.set_user_active(99, False)


def test_deactivating_own_account_ends_session(admin_service):
    admin_id = admin_service.current_user.id
    admin_service.set_user_active(admin_id, False)
    assert admin_service.current_user is None
    with pytest.raises(UnauthorizedError):
        admin_service.create_election("T", "D", ["X"])
    with pytest.raises(InvalidCredentialError):
        admin_service.login(ADMIN_EMAIL, ADMIN_PASSWORD, admin_pin=ADMIN_PIN)


# ------------------------------- elections -------------------------------- #

def test_create_election_requires_session(service):
    with pytest.raises(UnauthorizedError):
        service.create_election("T", "D", ["X"])


def test_create_election_requires_admin(service):
    service.register_user("A", "a@x.com", "pw")
    service.login("a@x.com", "pw")
    with pytest.raises(UnauthorizedError):
        service.create_election("T", "D", ["X"])
    assert service.list_elections() == []


def test_create_election(admin_service):
    first = admin_service.create_election("T1", "D", ["X", "Y", "X"])
    second = admin_service.create_election("T2", "D", ["Z"])
    assert (first, second) == (1, 2)
    election = admin_service.get_election(first)
    assert election.phase is Phase.CREATED
    assert election.candidates == ["X", "Y", "X"]
    assert election.start_time is None and election.end_time is None


@pytest.mark.parametrize("candidates", [[], ["A|B"], [""]])
def test_create_election_rejects_bad_candidates(admin_service, candidates):
    with pytest.raises(InvalidInputError):
        admin_service.create_election("T", "D", candidates)


def test_get_unknown_election(service):
    with pytest.raises(NotFoundError):
        service.get_election(42)


# --------------------------------- phases --------------------------------- #

def test_full_phase_sequence(admin_service, clock):
    election_id = admin_service.create_election("T", "D", ["X"])
    admin_service.open_registration(election_id)
    assert admin_service.get_election(election_id).phase is Phase.REGISTRATION_OPEN
    admin_service.open_voting(election_id)
    election = admin_service.get_election(election_id)
    assert election.phase is Phase.VOTING_OPEN
    assert election.start_time == clock.now
    clock.now += 3600
    admin_service.close_voting(election_id)
    assert election.phase is Phase.VOTING_CLOSED
    assert election.end_time == clock.now


def test_open_voting_directly_from_created(admin_service):
    election_id = admin_service.create_election("T", "D", ["X"])
    admin_service.open_voting(election_id)
    assert admin_service.get_election(election_id).phase is Phase.VOTING_OPEN


def test_close_before_open_is_phase_violation(admin_service):
    election_id = admin_service.create_election("T", "D", ["X"])
    with pytest.raises(PhaseViolationError):
        admin_service.close_voting(election_id)
    assert admin_service.get_election(election_id).phase is Phase.CREATED


def test_phases_never_move_backwards(admin_service):
    election_id = admin_service.create_election("T", "D", ["X"])
    admin_service.open_voting(election_id)
    with pytest.raises(PhaseViolationError):
        admin_service.open_registration(election_id)
    with pytest.raises(PhaseViolationError):
        admin_service.open_voting(election_id)
    admin_service.close_voting(election_id)
    for transition in (admin_service.open_registration, admin_service.open_voting,
                       admin_service.close_voting):
        with pytest.raises(PhaseViolationError):
            transition(election_id)
    assert admin_service.get_election(election_id).phase is Phase.VOTING_CLOSED


def test_transitions_require_admin(admin_service):
    election_id = admin_service.create_election("T", "D", ["X"])
    admin_service.register_user("A", "a@x.com", "pw")
    _login_voter(admin_service)
    for transition in (admin_service.open_registration, admin_service.open_voting,
                       admin_service.close_voting):
        with pytest.raises(UnauthorizedError):
            transition(election_id)
    admin_service.logout()
    with pytest.raises(UnauthorizedError):
        admin_service.open_voting(election_id)


def test_transition_on_unknown_election(admin_service):
    with pytest.raises(NotFoundError):
        admin_service.open_voting(404)


# --------------------------------- voting --------------------------------- #

def test_cast_vote_requires_session(open_election, admin_service):
    admin_service.logout()
    with pytest.raises(UnauthorizedError):
        admin_service.cast_vote(open_election, 0)


def test_cast_vote_unknown_election(open_election, admin_service):
    _login_voter(admin_service)
    with pytest.raises(NotFoundError):
        admin_service.cast_vote(999, 0)


def test_cast_vote_outside_voting_phase(admin_service):
    admin_service.register_user("A", "a@x.com", "pw")
    election_id = admin_service.create_election("T", "D", ["X"])
    _login_voter(admin_service)
    with pytest.raises(PhaseViolationError):
        admin_service.cast_vote(election_id, 0)
    _login_admin(admin_service)
    admin_service.open_voting(election_id)
    admin_service.close_voting(election_id)
    _login_voter(admin_service)
    with pytest.raises(PhaseViolationError):
        admin_service.cast_vote(election_id, 0)


@pytest.mark.parametrize("choice", [2, 100, -1])
def test_cast_vote_invalid_choice(open_election, admin_service, choice):
    _login_voter(admin_service)
    with pytest.raises(InvalidChoiceError):
        admin_service.cast_vote(open_election, choice)
    assert admin_service.store.votes == []


def test_one_vote_per_voter_per_election(open_election, admin_service, clock):
    _login_voter(admin_service)
    vote_id = admin_service.cast_vote(open_election, 1)
    for choice in (0, 1):
        with pytest.raises(AlreadyVotedError):
            admin_service.cast_vote(open_election, choice)
    votes = admin_service.store.votes
    assert len(votes) == 1
    assert votes[0].id == vote_id
    assert votes[0].voter_id == 2
    assert votes[0].choice == 1
    assert votes[0].timestamp == clock.now


def test_same_voter_can_vote_in_different_elections(open_election, admin_service):
    second = admin_service.create_election("Other", "", ["P", "Q"])
    admin_service.open_voting(second)
    _login_voter(admin_service)
    assert admin_service.cast_vote(open_election, 0) == 1
    assert admin_service.cast_vote(second, 1) == 2


def test_admin_may_vote(open_election, admin_service):
    assert admin_service.cast_vote(open_election, 1) == 1


# --------------------------------- tally ---------------------------------- #

def test_board_seat_scenario(service):
    service.register_user("Admin", ADMIN_EMAIL, ADMIN_PASSWORD, Role.ADMIN)
    service.register_user("A", "a@x.com", "pw")

    _login_admin(service)
    election_id = service.create_election("Board Seat", "", ["X", "Y"])
    service.open_voting(election_id)

    _login_voter(service)
    service.cast_vote(election_id, 0)

    _login_admin(service)
    service.close_voting(election_id)

    result = service.tally(election_id)
    assert result.winner_index == 0
    assert result.winner_name == "X"
    assert result.counts == [1, 0]
    assert result.total_votes == 1
    assert result.percentages == [100.0, 0.0]


def test_tally_ties_go_to_lowest_index(admin_service):
    election_id = admin_service.create_election("T", "", ["A", "B", "C", "D"])
    admin_service.open_voting(election_id)
    for i, choice in enumerate([1, 3, 1, 3, 0]):
        email = f"v{i}@x.com"
        admin_service.register_user(f"v{i}", email, "pw")
        _login_voter(admin_service, email)
        admin_service.cast_vote(election_id, choice)
    result = admin_service.tally(election_id)
    assert result.counts == [1, 2, 0, 2]
    assert result.winner_index == 1


def test_tally_in_any_phase_does_not_change_phase(admin_service):
    election_id = admin_service.create_election("T", "", ["A", "B"])
    result = admin_service.tally(election_id)
    assert result.counts == [0, 0]
    assert result.winner_index == 0
    assert result.percentages == [0.0, 0.0]
    assert admin_service.get_election(election_id).phase is Phase.CREATED


def test_tally_needs_no_session(open_election, admin_service):
    admin_service.logout()
    assert admin_service.tally(open_election).total_votes == 0


def test_tally_unknown_election(service):
    with pytest.raises(NotFoundError):
        service.tally(7)


# ------------------------------ audit / misc ------------------------------ #

def test_operations_are_audited(open_election, admin_service):
    _login_voter(admin_service)
    admin_service.cast_vote(open_election, 0)
    with pytest.raises(AlreadyVotedError):
        admin_service.cast_vote(open_election, 0)
    audit = admin_service.audit
    assert audit.flush() > 0
    with open(audit.log_file) as f:
        events = [json.loads(line)['event_type'] for line in f]
    for expected in ('user_registered', 'successful_login', 'election_created',
                     'phase_changed', 'vote_cast', 'duplicate_vote_attempt'):
        assert expected in events
    assert audit.verify_log_integrity() is True


def test_service_without_audit(store, credentials):
    service = ElectionService(store, credentials)
    service.register_user("A", "a@x.com", "pw")
    service.login("a@x.com", "pw")
    assert service.current_user.email == "a@x.com"


def test_name_and_title_are_cleaned(admin_service):
    user_id = admin_service.register_user("  Bob\n ", "b@x.com", "pw")
    assert admin_service.store.get_user(user_id).name == "Bob"
    election_id = admin_service.create_election(" T " + "x" * 300, "d", ["X"])
    assert len(admin_service.get_election(election_id).title) == config.MAX_TITLE_LEN


# ------------------------------ persistence ------------------------------- #

def test_save_and_load_through_service(open_election, admin_service, credentials, tmp_path):
    _login_voter(admin_service)
    admin_service.cast_vote(open_election, 1)
    directory = str(tmp_path / "data")
    admin_service.save(directory)
    assert len(admin_service.audit.pending) == 0

    restored = ElectionService(RecordStore(), credentials)
    assert restored.load(directory) == 0
    assert restored.current_user is None
    assert restored.store.admin_pin == ADMIN_PIN
    # credentials survive the round trip
    restored.login("a@x.com", "pw")
    with pytest.raises(AlreadyVotedError):
        restored.cast_vote(open_election, 0)
    assert restored.tally(open_election).counts == [0, 1]
    # ids continue after the highest stored id
    assert restored.store.allocate_vote_id() == 2


def test_load_logs_out(admin_service, tmp_path):
    admin_service.save(str(tmp_path))
    admin_service.load(str(tmp_path))
    assert admin_service.current_user is None


def test_export_votes(open_election, admin_service, tmp_path):
    admin_service.cast_vote(open_election, 0)
    assert admin_service.export_votes(str(tmp_path / "votes.csv")) == 1
