"""
Two-Factor Decorators
Route protection decorators built on the extension's user loader
"""

from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, session

from .account import AccountWithTwoFactor


def _extension():
    return current_app.extensions['twofactor']


def authentication_required(f):
    """
    Decorator: Require a user from the registered user loader

    Sets:
        g.two_factor_user
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        user = _extension().current_user()

        if user is None:
            return jsonify({
                'error': 'Authentication required',
                'code': 'AUTH_REQUIRED'
            }), 401

        g.two_factor_user = user
        return f(*args, **kwargs)
    return decorated


def two_factor_enabled_required(f):
    """
    Decorator: Require two-factor authentication to be enabled

    Accounts without two-factor support pass through untouched.

    Usage:
        @app.route('/api/billing')
        @two_factor_enabled_required
        def billing():
            ...
    """
    @wraps(f)
    @authentication_required
    def decorated(*args, **kwargs):
        user = g.two_factor_user

        if isinstance(user, AccountWithTwoFactor) and not user.has_two_factor_enabled():
            return jsonify({
                'error': 'Two-factor authentication must be enabled',
                'code': 'TWO_FACTOR_REQUIRED'
            }), 403

        return f(*args, **kwargs)
    return decorated


def two_factor_confirmed_required(f=None, timeout: Optional[int] = None):
    """
    Decorator: Require a recent code confirmation (POST /confirm) in the session

    Users without 2FA enabled are let through.

    Usage:
        @app.route('/api/account', methods=['DELETE'])
        @two_factor_confirmed_required(timeout=600)
        def delete_account():
            ...
    """
    def decorator(view):
        @wraps(view)
        @authentication_required
        def decorated(*args, **kwargs):
            extension = _extension()
            user = g.two_factor_user

            if not isinstance(user, AccountWithTwoFactor) or not user.has_two_factor_enabled():
                return view(*args, **kwargs)

            limit = extension.config.confirm_timeout if timeout is None else timeout
            confirmed_at = session.get(extension.config.confirm_key, 0)

            if extension.service.timestamp() - confirmed_at < limit:
                return view(*args, **kwargs)

            return jsonify({
                'error': 'Two-factor confirmation required',
                'code': 'TWO_FACTOR_CONFIRMATION_REQUIRED'
            }), 403
        return decorated

    if f is not None:
        return decorator(f)
    return decorator
