"""
Two-Factor API Endpoints
Flask Blueprint for enrollment, confirmation and management of the second factor
"""

import base64

from flask import Blueprint, current_app, g, jsonify, request, session

from . import qr
from .decorators import authentication_required, two_factor_enabled_required
from .devices import SECONDS_PER_DAY
from .exceptions import TwoFactorValidationError
from .gate import AuthenticationAttempt, Decision
from .rules import totp_code_rule, two_factor_auth_rule

twofactor_bp = Blueprint('twofactor', __name__)


def _extension():
    return current_app.extensions['twofactor']


def _code() -> str:
    data = request.get_json(silent=True) or {}
    return str(data.get('code') or data.get(_extension().config.input_name) or '').strip()


def _invalid_code():
    error = TwoFactorValidationError(_extension().config.input_name, _extension().config.message)
    return jsonify(error.to_dict()), 422


@twofactor_bp.route('/setup', methods=['POST'])
@authentication_required
def setup():
    """
    Step 1: Generate a new secret and its QR code

    Returns:
        - secret: Base32 secret for manual entry
        - secret_grouped: Same secret in groups of 4 characters
        - provisioning_uri: otpauth:// URI for authenticator apps
        - qr_code: Base64 encoded QR code image

    Two-factor is not enabled until /setup/verify is called
    """
    extension = _extension()
    user = g.two_factor_user

    if user.has_two_factor_enabled():
        return jsonify({'error': 'Two-factor authentication is already enabled'}), 400

    record = user.create_two_factor_auth()
    config = extension.config
    qr_code = record.to_qr(config.issuer, config.qr_size, config.qr_margin, config.qr_format)
    encoded = base64.b64encode(qr_code).decode('ascii')

    return jsonify({
        'message': 'Two-factor setup initiated. Scan the QR code with your authenticator app.',
        'secret': record.to_string(),
        'secret_grouped': record.to_grouped_string(),
        'provisioning_uri': record.to_uri(config.issuer),
        'qr_code': encoded,
        'qr_code_data_uri': qr.to_data_uri(qr_code, config.qr_format),
    })


@twofactor_bp.route('/setup/verify', methods=['POST'])
@authentication_required
def verify_setup():
    """
    Step 2: Enable two-factor with a code from the authenticator app

    Returns:
        - recovery_codes: One-time recovery codes, shown only once
    """
    user = g.two_factor_user

    if user.has_two_factor_enabled():
        return jsonify({'error': 'Two-factor authentication is already enabled'}), 400

    if user.two_factor_auth.id is None:
        return jsonify({'error': 'Two-factor setup not initiated. Call /setup first'}), 400

    code = _code()
    if not code:
        return jsonify({'error': 'Verification code is required'}), 400

    if not two_factor_auth_rule(user, code):
        return _invalid_code()

    codes = [recovery_code.code for recovery_code in user.get_recovery_codes()]

    return jsonify({
        'message': 'Two-factor authentication enabled successfully',
        'recovery_codes': codes,
        'recovery_codes_count': len(codes),
    })


@twofactor_bp.route('/confirm', methods=['POST'])
@authentication_required
def confirm():
    """Re-confirm the second factor, unlocking routes under two_factor_confirmed_required"""
    extension = _extension()

    if not totp_code_rule(g.two_factor_user, _code()):
        return _invalid_code()

    session[extension.config.confirm_key] = extension.service.timestamp()
    return '', 204


@twofactor_bp.route('/disable', methods=['POST'])
@two_factor_enabled_required
def disable():
    """
    Disable two-factor, a current code (or recovery code) is required

    Secret, recovery codes and safe devices are all discarded
    """
    user = g.two_factor_user

    code = _code()
    if not code:
        return jsonify({'error': 'Current two-factor code is required to disable it'}), 400

    if not totp_code_rule(user, code):
        return _invalid_code()

    user.disable_two_factor_auth()

    response = jsonify({'message': 'Two-factor authentication has been disabled'})
    response.delete_cookie(_extension().config.safe_devices_cookie)
    return response


@twofactor_bp.route('/status', methods=['GET'])
@authentication_required
def status():
    record = g.two_factor_user.two_factor_auth
    enabled = record.is_enabled()

    return jsonify({
        'enabled': enabled,
        'enabled_at': record.enabled_at.isoformat() if record.enabled_at else None,
        'recovery_codes_remaining': sum(
            1 for code in record.recovery_codes or [] if not code.is_used
        ) if enabled else 0,
        'safe_devices': len(record.safe_devices or []),
    })


@twofactor_bp.route('/recovery-codes/regenerate', methods=['POST'])
@two_factor_enabled_required
def regenerate_recovery_codes():
    """Replace the recovery codes, previous ones stop working"""
    user = g.two_factor_user

    code = _code()
    if not code:
        return jsonify({'error': 'Current two-factor code is required'}), 400

    if not totp_code_rule(user, code):
        return _invalid_code()

    codes = [recovery_code.code for recovery_code in user.generate_recovery_codes()]

    return jsonify({
        'message': 'Recovery codes regenerated',
        'recovery_codes': codes,
        'recovery_codes_count': len(codes),
    })


@twofactor_bp.route('/safe-devices', methods=['DELETE'])
@two_factor_enabled_required
def forget_safe_devices():
    g.two_factor_user.flush_safe_devices()

    response = jsonify({'message': 'Safe devices removed'})
    response.delete_cookie(_extension().config.safe_devices_cookie)
    return response


# ==================== LOGIN HELPERS ====================

def challenge_response(attempt: AuthenticationAttempt, decision: Decision, action: str = None):
    """
    Response asking for the second factor during login

    403 when no code was presented, 422 when the presented code was rejected.
    Credentials are echoed back so the client can resubmit them with the code.
    """
    config = _extension().config

    response = jsonify({
        'error': config.message if decision.error else 'Two-factor code required',
        'code': 'TWO_FACTOR_INVALID' if decision.error else 'TWO_FACTOR_REQUIRED',
        'action': action or request.url,
        'credentials': attempt.credentials,
        'remember': attempt.remember,
        'input': config.input_name,
    })
    response.status_code = 422 if decision.error else 403
    response.headers['Cache-Control'] = 'no-cache, must-revalidate'
    return response


def remember_device(response, decision: Decision, cookie_name: str = None):
    """Hand the new safe device token to the client as a cookie"""
    if decision.device_token:
        response.set_cookie(
            cookie_name or _extension().config.safe_devices_cookie,
            decision.device_token,
            max_age=decision.device_max_age_days * SECONDS_PER_DAY,
            httponly=True,
            secure=request.is_secure,
            samesite='Lax',
        )
    return response
