import pytest
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Column, Integer, String

from flask_twofactor import TwoFactor, TwoFactorAccountMixin
from flask_twofactor.exceptions import ConfigurationError
from flask_twofactor.gate import AttemptState, AuthenticationAttempt
from flask_twofactor.models import db
from flask_twofactor.replay import MemoryCache
from flask_twofactor.store import SQLAlchemyCache

from .conftest import create_app, enable_two_factor

host_db = SQLAlchemy()


class Member(host_db.Model, TwoFactorAccountMixin):
    __tablename__ = 'members'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), nullable=False)


def create_host_app(clock):
    """App owning its SQLAlchemy() instance, registered before the extension"""
    app = Flask(__name__)
    app.config.update(SECRET_KEY='test-secret-key', SQLALCHEMY_DATABASE_URI='sqlite://', TESTING=True)
    host_db.init_app(app)
    TwoFactor(app, clock=clock)
    return app


def test_registered_on_app(app):
    extension = app.extensions['twofactor']

    assert isinstance(extension, TwoFactor)
    assert extension.config.issuer == 'quz'
    assert isinstance(extension.service.replay_guard.cache, SQLAlchemyCache)
    assert '/api/auth/2fa/status' in [rule.rule for rule in app.url_map.iter_rules()]


def test_memory_cache_and_prefix(clock):
    app = create_app(clock, TWO_FACTOR_CACHE_STORE='memory', TWO_FACTOR_URL_PREFIX='/2fa')
    extension = app.extensions['twofactor']

    assert isinstance(extension.service.replay_guard.cache, MemoryCache)
    assert '/2fa/status' in [rule.rule for rule in app.url_map.iter_rules()]


def test_requires_a_key():
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite://'
    db.init_app(app)

    with pytest.raises(ConfigurationError):
        TwoFactor(app)


def test_current_user_without_loader():
    assert TwoFactor().current_user() is None


# ==================== HOST DATABASE ====================

def test_host_owned_sqlalchemy(clock):
    app = create_host_app(clock)
    twofactor = app.extensions['twofactor']

    with app.app_context():
        host_db.create_all()
        twofactor.create_all()

        member = Member(email='host@foo.com')
        host_db.session.add(member)
        host_db.session.commit()

        enable_two_factor(twofactor.service, member)
        code = member.make_two_factor_code()

        decision = twofactor.gate.decide(member, AuthenticationAttempt(code=code))
        assert decision.state is AttemptState.GRANTED
        assert not twofactor.gate.validate(member, AuthenticationAttempt(code=code))
        assert twofactor.service.get(member).owner_ref == f'members:{member.id}'
        host_db.session.remove()


def test_gate_denies_when_storage_is_missing(clock):
    app = create_host_app(clock)
    twofactor = app.extensions['twofactor']

    with app.app_context():
        host_db.create_all()
        member = Member(email='host@foo.com')
        host_db.session.add(member)
        host_db.session.commit()

        decision = twofactor.gate.decide(member, AuthenticationAttempt(code='123456'))

        assert not decision
        assert decision.state is AttemptState.DENIED
        assert decision.error
        host_db.session.remove()
