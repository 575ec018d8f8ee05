"""
Common/Shared Fixtures

Base factories used across test layers.
"""
import uuid
from typing import Optional


def make_order_id() -> str:
    """Generate a unique order ID"""
    return f"ORD-{uuid.uuid4().hex[:10].upper()}"


def make_email(prefix: Optional[str] = None) -> str:
    """Generate a unique email"""
    prefix = prefix or f"test_{uuid.uuid4().hex[:8]}"
    return f"{prefix}_{uuid.uuid4().hex[:6]}@example.com"
