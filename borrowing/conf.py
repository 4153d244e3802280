"""App-level settings with defaults; override any of them in the project settings."""

from decimal import Decimal

from django.conf import settings

DEFAULT_RETURN_CREDIT_POLICY = {
    'good_condition': Decimal('1'),
    'minor_damage': Decimal('1'),
    'major_damage': Decimal('0'),
    'lost': Decimal('0'),
    'unusable': Decimal('0'),
}


def low_stock_threshold():
    return int(getattr(settings, 'BORROWING_LOW_STOCK_THRESHOLD', 30))


def archive_retention_days():
    return int(getattr(settings, 'BORROWING_ARCHIVE_RETENTION_DAYS', 30))


def verification_prefix():
    return getattr(settings, 'BORROWING_VERIFICATION_PREFIX', 'RV')


def return_credit_policy():
    """Fraction of the returned quantity put back on the shelf, per inspection outcome."""
    policy = dict(DEFAULT_RETURN_CREDIT_POLICY)
    policy.update(getattr(settings, 'BORROWING_RETURN_CREDIT_POLICY', {}) or {})
    return {status: Decimal(str(fraction)) for status, fraction in policy.items()}
