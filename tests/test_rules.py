import pytest

from flask_twofactor.rules import is_well_formed_code, totp_code_rule, two_factor_auth_rule


@pytest.mark.parametrize('value, expected', [
    ('123456', True),
    ('ABCD1234', True),
    ('', False),
    (None, False),
    (123456, False),
    ('123 456', False),
    ('12345\n', False),
])
def test_is_well_formed_code(value, expected):
    assert is_well_formed_code(value) is expected


def test_totp_code_rule(service, enabled_user):
    assert totp_code_rule(enabled_user, service.make_code(enabled_user))
    assert not totp_code_rule(enabled_user, '123')
    assert not totp_code_rule(object(), '123456')


def test_two_factor_auth_rule(service, user):
    service.create(user)

    assert not two_factor_auth_rule(user, None)
    assert not two_factor_auth_rule(object(), '123456')
    assert two_factor_auth_rule(user, service.make_code(user))
    assert user.has_two_factor_enabled()
