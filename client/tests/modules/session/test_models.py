import pytest

from modules.auth.exceptions import AuthErrorCode, InvalidCredentialsError
from modules.session.models import AuthResult, AuthSnapshot, AuthState

from tests.fakes import make_session


class TestAuthResult:
    def test_ok(self):
        """ok() builds a successful result."""
        result = AuthResult.ok(user_id="user-1")
        assert result.success is True
        assert result.user_id == "user-1"
        assert result.error_code is None

    def test_failure_from_error(self):
        """failure() copies the error's code and message."""
        result = AuthResult.failure(InvalidCredentialsError())
        assert result.success is False
        assert result.error_code == AuthErrorCode.INVALID_CREDENTIALS
        assert result.error_message == "Incorrect email or password."


class TestAuthSnapshot:
    def test_snapshot_is_immutable(self):
        """Snapshots cannot be mutated by consumers."""
        snapshot = AuthSnapshot(state=AuthState.UNAUTHENTICATED)
        with pytest.raises(Exception):  # Pydantic ValidationError
            snapshot.state = AuthState.AUTHENTICATED

    def test_is_authenticated(self):
        """is_authenticated needs both a user and a session."""
        session = make_session()
        assert AuthSnapshot(state=AuthState.AUTHENTICATED, user=session.user,
                            session=session).is_authenticated
        assert not AuthSnapshot(state=AuthState.ERROR, user=session.user).is_authenticated
