"""
Two-Factor Storage Adapters
SQLAlchemy-backed record store and used-code cache
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Protocol

from flask import current_app
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .cipher import SecretCipher
from .devices import SafeDevice
from .exceptions import ConcurrentUpdateError, StorageError
from .models import TwoFactorAuthentication, UsedCode
from .recovery import RecoveryCode
from .record import TwoFactorRecord
from .totp import Algorithm, TotpParameters

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """
    Persistence of two-factor records, one per owner

    Implementations report backend failures as StorageError so callers
    can fail closed.
    """

    def load(self, owner: str) -> Optional[TwoFactorRecord]:
        ...

    def save(self, record: TwoFactorRecord) -> None:
        ...

    def delete(self, record: TwoFactorRecord) -> None:
        ...


def bound_session() -> Session:
    """
    Open a session of its own on the engine of the app's Flask-SQLAlchemy extension

    Works whether the app registered this package's `db` or its own
    `SQLAlchemy()` instance. Two-factor writes commit and roll back
    independently of the host's `db.session`.
    """
    try:
        engine = current_app.extensions['sqlalchemy'].engine
    except (KeyError, RuntimeError) as e:
        raise StorageError('No SQLAlchemy engine available for two-factor storage') from e
    return Session(bind=engine, expire_on_commit=False)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the timezone of stored datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SQLAlchemyRecordStore:
    """
    Record store over the `two_factor_authentications` table

    The shared secret and recovery codes are encrypted on save and decrypted
    on load. Updates are conditional on the version read, so two requests
    mutating the same record cannot both win.
    """

    def __init__(self, cipher: SecretCipher, session_factory: Callable[[], Session] = bound_session):
        self.cipher = cipher
        self.session_factory = session_factory

    # ==================== MAPPING ====================

    def _to_record(self, row: TwoFactorAuthentication) -> TwoFactorRecord:
        recovery_codes = None
        if row.recovery_codes is not None:
            recovery_codes = [RecoveryCode.from_dict(item) for item in self.cipher.decrypt_json(row.recovery_codes)]

        safe_devices = None
        if row.safe_devices is not None:
            safe_devices = [SafeDevice.from_dict(item) for item in row.safe_devices]

        return TwoFactorRecord(
            id=row.id,
            owner_ref=row.owner_ref,
            shared_secret=self.cipher.decrypt(row.shared_secret),
            totp_params=TotpParameters(
                digits=row.digits,
                period_seconds=row.seconds,
                window=row.window,
                algorithm=Algorithm.parse(row.algorithm),
            ),
            label=row.label,
            recovery_codes=recovery_codes,
            recovery_codes_generated_at=_as_utc(row.recovery_codes_generated_at),
            safe_devices=safe_devices,
            enabled_at=_as_utc(row.enabled_at),
            created_at=_as_utc(row.created_at),
            updated_at=_as_utc(row.updated_at),
            version=row.version,
        )

    def _to_columns(self, record: TwoFactorRecord) -> dict:
        recovery_codes = None
        if record.recovery_codes is not None:
            recovery_codes = self.cipher.encrypt_json([code.to_dict() for code in record.recovery_codes])

        safe_devices = None
        if record.safe_devices is not None:
            safe_devices = [device.to_dict() for device in record.safe_devices]

        return {
            'owner_ref': record.owner_ref,
            'shared_secret': self.cipher.encrypt(record.shared_secret),
            'label': record.label,
            'digits': record.totp_params.digits,
            'seconds': record.totp_params.period_seconds,
            'window': record.totp_params.window,
            'algorithm': record.totp_params.algorithm.value.lower(),
            'recovery_codes': recovery_codes,
            'recovery_codes_generated_at': record.recovery_codes_generated_at,
            'safe_devices': safe_devices,
            'enabled_at': record.enabled_at,
            'created_at': record.created_at,
            'updated_at': record.updated_at,
        }

    # ==================== OPERATIONS ====================

    def load(self, owner: str) -> Optional[TwoFactorRecord]:
        try:
            with self.session_factory() as session:
                row = session.execute(
                    select(TwoFactorAuthentication).where(TwoFactorAuthentication.owner_ref == owner)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError('Unable to load two-factor record') from e

        return self._to_record(row) if row is not None else None

    def save(self, record: TwoFactorRecord) -> None:
        values = self._to_columns(record)

        try:
            with self.session_factory() as session, session.begin():
                if record.id is None:
                    result = session.execute(insert(TwoFactorAuthentication).values(**values, version=1))
                    record_id, version = result.inserted_primary_key[0], 1
                else:
                    result = session.execute(
                        update(TwoFactorAuthentication)
                        .where(TwoFactorAuthentication.id == record.id)
                        .where(TwoFactorAuthentication.version == record.version)
                        .values(**values, version=record.version + 1)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        logger.warning('Concurrent update of two-factor record %s', record.owner_ref)
                        raise ConcurrentUpdateError()
                    record_id, version = record.id, record.version + 1
        except SQLAlchemyError as e:
            raise StorageError('Unable to save two-factor record') from e

        record.id = record_id
        record.version = version

    def delete(self, record: TwoFactorRecord) -> None:
        if record.id is None:
            return

        try:
            with self.session_factory() as session, session.begin():
                session.execute(
                    delete(TwoFactorAuthentication)
                    .where(TwoFactorAuthentication.id == record.id)
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            raise StorageError('Unable to delete two-factor record') from e

        record.id = None
        record.version = 0


class SQLAlchemyCache:
    """
    Expiring cache over `two_factor_used_codes`

    The primary key makes `add` atomic. Every `add` also deletes the rows
    that have expired, so the table only holds codes still in their window.
    """

    def __init__(self, clock=time.time, session_factory: Callable[[], Session] = bound_session):
        self._clock = clock
        self.session_factory = session_factory

    def has(self, key: str) -> bool:
        try:
            with self.session_factory() as session:
                expire_at = session.execute(
                    select(UsedCode.expire_at).where(UsedCode.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError('Unable to read used codes') from e

        return expire_at is not None and expire_at > self._clock()

    def set(self, key: str, value: Any, expire_at: int) -> None:
        try:
            with self.session_factory() as session, session.begin():
                session.merge(UsedCode(key=key, value=str(value), expire_at=int(expire_at)))
        except SQLAlchemyError as e:
            raise StorageError('Unable to write used code') from e

    def add(self, key: str, value: Any, expire_at: int) -> bool:
        try:
            with self.session_factory() as session, session.begin():
                purged = session.execute(
                    delete(UsedCode)
                    .where(UsedCode.expire_at <= self._clock())
                    .execution_options(synchronize_session=False)
                ).rowcount
                session.execute(insert(UsedCode).values(key=key, value=str(value), expire_at=int(expire_at)))
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            raise StorageError('Unable to write used code') from e

        if purged:
            logger.debug('Purged %d expired used codes', purged)
        return True
