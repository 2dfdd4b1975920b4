import uuid

from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from sqlalchemy.sql import func
from database import Base


def new_document_id():
    return uuid.uuid4().hex


class QRCode(Base):
    __tablename__ = "qrcodes"
    id = Column(String(36), primary_key=True, default=new_document_id)
    short_id = Column(String(64), unique=True, index=True, nullable=True)
    user_id = Column(String, index=True, nullable=True)
    content_type = Column(String(32), nullable=True)
    content = Column(JSON, nullable=True)
    destination_url = Column(String(2048), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_guest = Column(Boolean, default=False, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    scan_count = Column(Integer, default=0, nullable=False)  # only ever incremented in place
    created_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=func.now(), nullable=False)
    last_scanned_at = Column(DateTime(timezone=True), nullable=True)


class ScanEvent(Base):
    __tablename__ = "scans"
    # qr_code_id is a plain reference: scans are removed by the cleanup job, not by cascade
    id = Column(String(36), primary_key=True, default=new_document_id)
    qr_code_id = Column(String(36), nullable=False, index=True)
    scanned_at = Column(DateTime(timezone=True), default=func.now(), nullable=True, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)
    referrer = Column(String(2048), nullable=True)
    device_info = Column(JSON, nullable=True)
    location = Column(JSON, nullable=True)
