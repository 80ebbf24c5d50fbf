"""
Test fixtures: Flask app on in-memory SQLite, a host User model and a frozen clock
"""

from datetime import datetime, timedelta, timezone

import pytest
from flask import Flask, jsonify, request, session
from sqlalchemy import Column, Integer, String

from flask_twofactor import TwoFactor, TwoFactorAccountMixin, challenge_response, db, remember_device
from flask_twofactor.decorators import two_factor_confirmed_required
from flask_twofactor.gate import attempt_from_request, has_code_or_fails

SECRET = 'KS72XBTN5PEBGX2IWBMVW44LXHPAQ7L3'


class FrozenClock:
    """Callable clock returning a settable aware UTC datetime"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def travel(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class User(db.Model, TwoFactorAccountMixin):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password = Column(String(255), nullable=False)


def create_app(clock, **config):
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY='test-secret-key',
        SQLALCHEMY_DATABASE_URI='sqlite://',
        TESTING=True,
        TWO_FACTOR_ISSUER='quz',
    )
    app.config.update(config)

    db.init_app(app)
    twofactor = TwoFactor(clock=clock)
    twofactor.init_app(app)

    @twofactor.user_loader
    def load_user():
        user_id = session.get('user_id')
        return db.session.get(User, user_id) if user_id else None

    @app.route('/login', methods=['POST'])
    def login():
        data = request.get_json()
        user = User.query.filter_by(email=data.get('email')).first()
        if user is None or user.password != data.get('password'):
            return jsonify({'error': 'Invalid email or password'}), 401

        attempt = attempt_from_request(
            credentials={'email': data['email'], 'password': data['password']},
            remember=bool(data.get('remember')),
        )
        decision = app.extensions['twofactor'].gate.decide(user, attempt)
        if not decision:
            return challenge_response(attempt, decision, '/login')

        session['user_id'] = user.id
        return remember_device(jsonify({'message': 'Login successful', 'state': decision.state.value}), decision)

    @app.route('/login/strict', methods=['POST'])
    def login_strict():
        data = request.get_json()
        user = User.query.filter_by(email=data.get('email')).first()
        has_code_or_fails(message='Wrong code')(user)
        session['user_id'] = user.id
        return jsonify({'message': 'Login successful'})

    @app.route('/sensitive', methods=['POST'])
    @two_factor_confirmed_required
    def sensitive():
        return jsonify({'message': 'ok'})

    @app.route('/sensitive/short', methods=['POST'])
    @two_factor_confirmed_required(timeout=60)
    def sensitive_short():
        return jsonify({'message': 'ok'})

    with app.app_context():
        db.create_all()

    return app


def enable_two_factor(service, user, secret=SECRET):
    """Enable 2FA for `user` with a known secret"""
    record = service.create(user, user.email)
    record.shared_secret = secret
    service.store.save(record)
    service.enable(user)
    return service.get(user)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2020, 1, 1, 18, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def app(clock):
    app = create_app(clock)
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def service(app):
    return app.extensions['twofactor'].service


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(app):
    user = User(email='test@foo.com', password='secret')
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def enabled_user(service, user):
    enable_two_factor(service, user)
    return user

