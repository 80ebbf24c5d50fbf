"""
Two-Factor Database Models
SQLAlchemy models for two-factor records and consumed codes
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, BigInteger
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class TwoFactorAuthentication(db.Model):
    """One row per owner, encrypted columns hold Fernet tokens"""
    __tablename__ = 'two_factor_authentications'

    id = Column(Integer, primary_key=True)
    owner_ref = Column(String(255), unique=True, nullable=False, index=True)

    shared_secret = Column(Text, nullable=False)  # encrypted Base32 secret
    label = Column(String(255), nullable=True)

    # TOTP parameters, copied from the defaults when the record is created
    digits = Column(Integer, nullable=False, default=6)
    seconds = Column(Integer, nullable=False, default=30)
    window = Column(Integer, nullable=False, default=1)
    algorithm = Column(String(16), nullable=False, default='sha1')

    recovery_codes = Column(Text, nullable=True)  # encrypted JSON list
    recovery_codes_generated_at = Column(DateTime(timezone=True), nullable=True)
    safe_devices = Column(JSON, nullable=True)
    enabled_at = Column(DateTime(timezone=True), nullable=True)

    # Compare-and-set counter, see SQLAlchemyRecordStore.save
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f'<TwoFactorAuthentication {self.owner_ref} enabled={self.enabled_at is not None}>'


class UsedCode(db.Model):
    """Consumed TOTP codes, kept until they can no longer validate"""
    __tablename__ = 'two_factor_used_codes'

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=True)
    expire_at = Column(BigInteger, nullable=False, index=True)

    def __repr__(self):
        return f'<UsedCode expires={self.expire_at}>'
