"""Settings service - key/value configuration stored in the database."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional

from retailpos.models import Setting

logger = logging.getLogger(__name__)

TAX_RATE_KEY = 'tax_rate'
FALLBACK_TAX_RATE = Decimal('10')

DEFAULT_SETTINGS = {
    'tax_rate': ('10', 'Tax rate percentage'),
    'currency': ('USD', 'Currency code'),
    'receipt_footer': ('Thank you for shopping with us!', 'Receipt footer message'),
}


def parse_tax_rate(raw, default=FALLBACK_TAX_RATE) -> Decimal:
    """Parse a percentage; missing, unparseable or negative values fall back to default."""
    if raw is None:
        return Decimal(str(default))
    try:
        rate = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        logger.warning(f"Unparseable tax_rate setting {raw!r}, using default {default}")
        return Decimal(str(default))
    if not rate.is_finite() or rate < 0:
        logger.warning(f"Invalid tax_rate setting {raw!r}, using default {default}")
        return Decimal(str(default))
    return rate


class SettingsAccessor:
    """
    Read-through accessor injected into checkout.

    Every call hits the settings table, so the rate applied is the one current
    at the moment of the transaction.
    """

    def __init__(self, session_getter: Callable, default_tax_rate=FALLBACK_TAX_RATE):
        self._session_getter = session_getter
        self._default_tax_rate = parse_tax_rate(default_tax_rate)

    def tax_rate(self) -> Decimal:
        raw = get_setting(self._session_getter(), TAX_RATE_KEY)
        return parse_tax_rate(raw, self._default_tax_rate)


class FixedSettings:
    """Pinned settings (tests, offline previews)."""

    def __init__(self, tax_rate):
        self._tax_rate = Decimal(str(tax_rate))

    def tax_rate(self) -> Decimal:
        return self._tax_rate


def get_setting(session, key: str, default: Optional[str] = None) -> Optional[str]:
    row = session.query(Setting.value).filter(Setting.key == key).first()
    return row[0] if row else default


def list_settings(session) -> List[Setting]:
    return session.query(Setting).order_by(Setting.key).all()


def set_setting(session, key: str, value: str, description: Optional[str] = None) -> Setting:
    """Create or update a setting. Caller commits."""
    setting = session.query(Setting).filter(Setting.key == key).first()
    if setting is None:
        setting = Setting(key=key, value=value, description=description)
        session.add(setting)
    else:
        setting.value = value
        if description is not None:
            setting.description = description
    session.flush()
    return setting


def seed_default_settings(session, overrides: Optional[Dict[str, str]] = None) -> int:
    """Insert missing default settings; existing values are left untouched."""
    created = 0
    overrides = overrides or {}
    for key, (value, description) in DEFAULT_SETTINGS.items():
        if get_setting(session, key) is None:
            session.add(Setting(key=key, value=overrides.get(key, value), description=description))
            created += 1
    session.flush()
    return created
