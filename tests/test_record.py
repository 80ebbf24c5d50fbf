import pytest

from flask_twofactor.exceptions import ConfigurationError
from flask_twofactor.record import TwoFactorRecord
from flask_twofactor.recovery import RecoveryCode
from flask_twofactor.devices import SafeDevice
from flask_twofactor.totp import TotpParameters

from .conftest import SECRET


@pytest.fixture
def record():
    return TwoFactorRecord(
        owner_ref='users:1',
        shared_secret=SECRET,
        totp_params=TotpParameters(digits=8, algorithm='sha256'),
        label='test@foo.com',
    )


def test_new_record_is_disabled():
    record = TwoFactorRecord.new('users:1', TotpParameters())

    assert record.is_disabled()
    assert not record.is_enabled()
    assert len(record.shared_secret) == 32
    assert record.recovery_codes is None
    assert record.safe_devices is None


def test_new_record_rejects_short_secret():
    with pytest.raises(ConfigurationError):
        TwoFactorRecord.new('users:1', TotpParameters(), secret_length=10)


def test_flush_resets_state(record):
    record.recovery_codes = [RecoveryCode('AAAAAAAA')]
    record.safe_devices = [SafeDevice('token', None, 1577903400)]
    record.enabled_at = object()

    record.flush(TotpParameters())

    assert record.is_disabled()
    assert record.recovery_codes is None
    assert record.safe_devices is None
    assert record.shared_secret != SECRET
    assert record.totp_params == TotpParameters()
    assert record.label == 'test@foo.com'


def test_flush_without_cycling_keeps_secret(record):
    record.flush(TotpParameters(), cycle_secret=False)
    assert record.shared_secret == SECRET


def test_provisioning_uri(record):
    assert record.to_uri('quz') == (
        'otpauth://totp/quz%3Atest@foo.com'
        '?issuer=quz&label=test%40foo.com&secret=KS72XBTN5PEBGX2IWBMVW44LXHPAQ7L3'
        '&algorithm=SHA256&digits=8'
    )


def test_provisioning_uri_encodes_spaces_as_percent(record):
    uri = record.to_uri('My App')
    assert uri.startswith('otpauth://totp/My%20App%3A')
    assert 'issuer=My%20App' in uri
    assert '+' not in uri


def test_string_representations(record):
    assert str(record) == SECRET
    assert record.to_string() == SECRET
    assert record.to_grouped_string() == 'KS72 XBTN 5PEB GX2I WBMV W44L XHPA Q7L3'


def test_qr_png(record):
    image = record.to_qr('quz')
    assert image.startswith(b'\x89PNG')


def test_qr_svg(record):
    image = record.to_qr('quz', image_format='svg')
    assert b'svg' in image


def test_codes_follow_record_parameters(record):
    code = record.make_code(1581300000)
    assert len(code) == 8
    assert record.validate_code(code, 1581300000)


def test_recovery_helpers(record):
    record.recovery_codes = [RecoveryCode('AAAAAAAA')]

    assert record.contains_unused_recovery_codes()
    assert record.set_recovery_code_as_used('AAAAAAAA', object())
    assert not record.contains_unused_recovery_codes()


def test_safe_device_lookup(record):
    device = SafeDevice('token', '127.0.0.1', 1577903400)
    record.safe_devices = [device]

    assert record.safe_device('token') == device
    assert record.safe_device('other') is None
