import pytest

from flask_twofactor.config import DEFAULT_MESSAGE, TwoFactorConfig
from flask_twofactor.exceptions import StorageError, TwoFactorValidationError
from flask_twofactor.gate import AttemptState, AuthenticationAttempt, TwoFactorGate


@pytest.fixture
def gate():
    return TwoFactorGate(TwoFactorConfig())


@pytest.fixture
def safe_gate():
    return TwoFactorGate(TwoFactorConfig(safe_devices_enabled=True))


class PlainAccount:
    pass


class BrokenAccount:
    def has_two_factor_enabled(self):
        raise StorageError()

    def validate_two_factor_code(self, code):
        return True

    def is_safe_device(self, token):
        return True

    def add_safe_device(self, ip=None):
        return 'token'


def test_account_without_two_factor_support_passes(gate):
    decision = gate.decide(PlainAccount(), AuthenticationAttempt())

    assert decision.granted
    assert decision.state is AttemptState.NOT_2FA_USER


def test_disabled_two_factor_passes(gate, user):
    decision = gate.decide(user, AuthenticationAttempt())

    assert decision
    assert decision.state is AttemptState.NOT_2FA_USER


def test_missing_code_is_denied_without_error(gate, enabled_user):
    decision = gate.decide(enabled_user, AuthenticationAttempt())

    assert not decision
    assert decision.state is AttemptState.DENIED
    assert not decision.error


@pytest.mark.parametrize('code', ['12 34', '123-456', 'ü12345'])
def test_malformed_code_is_denied(gate, enabled_user, code):
    decision = gate.decide(enabled_user, AuthenticationAttempt(code=code))

    assert not decision
    assert decision.error


def test_valid_code_is_granted(gate, service, enabled_user):
    decision = gate.decide(enabled_user, AuthenticationAttempt(code=service.make_code(enabled_user)))

    assert decision.granted
    assert decision.state is AttemptState.GRANTED
    assert decision.device_token is None


def test_recovery_code_is_granted(gate, service, enabled_user):
    code = service.get_recovery_codes(enabled_user)[0].code
    assert gate.validate(enabled_user, AuthenticationAttempt(code=code))


def test_replayed_code_is_denied(gate, service, enabled_user):
    attempt = AuthenticationAttempt(code=service.make_code(enabled_user))

    assert gate.validate(enabled_user, attempt)
    decision = gate.decide(enabled_user, attempt)
    assert not decision
    assert decision.error


def test_safe_device_is_ignored_when_disabled(gate, service, enabled_user):
    token = service.add_safe_device(enabled_user)
    assert not gate.validate(enabled_user, AuthenticationAttempt(device_token=token))


def test_safe_device_bypasses_code(safe_gate, service, enabled_user):
    token = service.add_safe_device(enabled_user)
    decision = safe_gate.decide(enabled_user, AuthenticationAttempt(device_token=token))

    assert decision.granted
    assert decision.state is AttemptState.BYPASSED_SAFE_DEVICE


def test_remember_device_after_valid_code(safe_gate, service, enabled_user):
    attempt = AuthenticationAttempt(code=service.make_code(enabled_user), remember_device=True, ip='10.0.0.1')
    decision = safe_gate.decide(enabled_user, attempt)

    assert decision.state is AttemptState.GRANTED
    assert len(decision.device_token) == 100
    assert decision.device_max_age_days == 14
    assert service.safe_devices(enabled_user)[0].ip == '10.0.0.1'
    assert service.is_safe_device(enabled_user, decision.device_token)


def test_device_is_not_remembered_without_opt_in(safe_gate, service, enabled_user):
    decision = safe_gate.decide(enabled_user, AuthenticationAttempt(code=service.make_code(enabled_user)))

    assert decision.device_token is None
    assert service.safe_devices(enabled_user) == []


def test_storage_failure_fails_closed(gate):
    decision = gate.decide(BrokenAccount(), AuthenticationAttempt(code='123456'))

    assert not decision.granted
    assert decision.state is AttemptState.DENIED


def test_store_failure_fails_closed(gate, service, enabled_user, monkeypatch):
    code = service.make_code(enabled_user)

    def unavailable(owner):
        raise StorageError()

    monkeypatch.setattr(service.store, 'load', unavailable)
    assert not gate.validate(enabled_user, AuthenticationAttempt(code=code))


def test_validate_or_fail(gate, service, enabled_user):
    with pytest.raises(TwoFactorValidationError) as error:
        gate.validate_or_fail(enabled_user, AuthenticationAttempt(code='123'))

    assert error.value.field == '2fa_code'
    assert error.value.to_dict()['errors'] == {'2fa_code': [DEFAULT_MESSAGE]}

    with pytest.raises(TwoFactorValidationError) as error:
        gate.validate_or_fail(enabled_user, AuthenticationAttempt(), 'Enter your code', 'otp')

    assert error.value.field == 'otp'
    assert error.value.message == 'Enter your code'

    decision = gate.validate_or_fail(enabled_user, AuthenticationAttempt(code=service.make_code(enabled_user)))
    assert decision.state is AttemptState.GRANTED
