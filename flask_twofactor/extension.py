"""
Flask Two-Factor Extension
Wires configuration, storage, replay protection, service and gate into a Flask app
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from flask import Flask, current_app, jsonify

from .cipher import SecretCipher
from .config import TwoFactorConfig
from .exceptions import TwoFactorValidationError
from .gate import TwoFactorGate
from .models import db
from .replay import CacheStore, MemoryCache, ReplayGuard
from .routes import twofactor_bp
from .service import TwoFactorService, utcnow
from .signals import Notifier
from .store import SQLAlchemyCache, SQLAlchemyRecordStore

logger = logging.getLogger(__name__)


class TwoFactor:
    """
    Two-factor authentication for a Flask app

    Usage:
        twofactor = TwoFactor()

        def create_app():
            app = Flask(__name__)
            twofactor.init_app(app)

        @twofactor.user_loader
        def load_user():
            return User.query.get(session.get('user_id'))

    Apps that own their `SQLAlchemy()` instance keep it: storage runs on
    whichever Flask-SQLAlchemy extension the app registered. Such apps
    initialize it before `init_app` and create the two-factor tables with
    `twofactor.create_all()`.
    """

    def __init__(self, app: Optional[Flask] = None, user_loader: Optional[Callable[[], Any]] = None,
                 clock: Callable[[], datetime] = utcnow, notifier: Optional[Notifier] = None,
                 cache: Optional[CacheStore] = None):
        self._user_loader = user_loader
        self.clock = clock
        self.notifier = notifier
        self.cache = cache

        self.config: Optional[TwoFactorConfig] = None
        self.service: Optional[TwoFactorService] = None
        self.gate: Optional[TwoFactorGate] = None

        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.config = TwoFactorConfig.from_mapping(app.config, app.name)

        cipher = SecretCipher(self.config.encryption_key, app.config.get('SECRET_KEY'))
        store = SQLAlchemyRecordStore(cipher)

        cache = self.cache
        if cache is None and self.config.cache_store == 'memory':
            cache = MemoryCache(clock=self.epoch)
        elif cache is None:
            cache = SQLAlchemyCache(clock=self.epoch)

        self.service = TwoFactorService(
            self.config,
            store,
            ReplayGuard(cache, self.config.cache_prefix),
            self.notifier,
            self.clock,
        )
        self.gate = TwoFactorGate(self.config)

        if 'sqlalchemy' not in app.extensions:
            db.init_app(app)

        app.register_blueprint(twofactor_bp, url_prefix=self.config.url_prefix)
        app.register_error_handler(TwoFactorValidationError, self._validation_error)

        app.extensions['twofactor'] = self
        logger.debug('Two-factor authentication initialized for %s', app.name)

    def create_all(self) -> None:
        """Create the two-factor tables on the engine of the current app"""
        db.metadata.create_all(bind=current_app.extensions['sqlalchemy'].engine)

    def epoch(self) -> float:
        return self.clock().timestamp()

    @staticmethod
    def _validation_error(error: TwoFactorValidationError):
        return jsonify(error.to_dict()), 422

    # ==================== USERS ====================

    def user_loader(self, callback: Callable[[], Any]) -> Callable[[], Any]:
        """Register the callable returning the authenticated user of the request, or None"""
        self._user_loader = callback
        return callback

    def current_user(self) -> Any:
        if self._user_loader is None:
            return None
        return self._user_loader()

