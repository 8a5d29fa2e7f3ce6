import pytest
from ballotbox.audit.audit_logger import AuditLogger
from ballotbox.database.models import Role
from ballotbox.database.store import RecordStore
from ballotbox.election.lifecycle import ElectionService
from ballotbox.encryption.password_hashing import PasswordHashingService

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPass123!"
ADMIN_PIN = "4321"


@pytest.fixture
def credentials():
    """Argon2id with the smallest legal cost so tests stay fast."""
    return PasswordHashingService(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def store():
    return RecordStore(admin_pin=ADMIN_PIN)


@pytest.fixture
def audit_logger(tmp_path):
    log_dir = tmp_path / "logs"
    return AuditLogger(log_dir=str(log_dir))


class FakeClock:
    def __init__(self, start=1700000000):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(store, credentials, audit_logger, clock):
    return ElectionService(store, credentials, audit=audit_logger, clock=clock)


@pytest.fixture
def admin_service(service):
    """Service with an admin registered and logged in."""
    service.register_user("Admin", ADMIN_EMAIL, ADMIN_PASSWORD, Role.ADMIN)
    service.login(ADMIN_EMAIL, ADMIN_PASSWORD, admin_pin=ADMIN_PIN)
    return service
