"""
Prometheus metrics for account_service.

Provides observability metrics for monitoring:
- HTTP requests and performance
- Login, second factor and token operations
- Registration, verification and password reset
- Outbound email
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ============================================================================
# Application Info
# ============================================================================

app_info = Info('account_service', 'Account service application info')

# ============================================================================
# HTTP Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0)
)

http_requests_in_progress = Gauge(
    'http_requests_in_progress',
    'Number of HTTP requests currently being processed',
    ['method', 'endpoint']
)

# ============================================================================
# Authentication Metrics
# ============================================================================

auth_login_attempts_total = Counter(
    'auth_login_attempts_total',
    'Total login attempts',
    ['status']  # success, invalid_credentials, second_factor_required, locked, ...
)

auth_second_factor_verifications_total = Counter(
    'auth_second_factor_verifications_total',
    'Total second factor verification attempts',
    ['method', 'status']  # method: totp, recovery_code, trusted_device
)

auth_lockouts_total = Counter(
    'auth_lockouts_total',
    'Total lockouts triggered',
    ['scope']  # account, second_factor
)

auth_token_operations_total = Counter(
    'auth_token_operations_total',
    'Total token operations',
    ['operation', 'status']  # operation: issue, refresh, revoke, revoke_all
)

auth_enrollment_operations_total = Counter(
    'auth_enrollment_operations_total',
    'Total second factor enrollment operations',
    ['operation', 'status']  # operation: start, confirm, disable, regenerate
)

# ============================================================================
# Account Metrics
# ============================================================================

account_registrations_total = Counter(
    'account_registrations_total',
    'Total account registrations',
    ['status']  # success, email_exists, weak_password, resent
)

account_email_verifications_total = Counter(
    'account_email_verifications_total',
    'Total email verification attempts',
    ['status']  # success, invalid_code, expired_code
)

account_password_resets_total = Counter(
    'account_password_resets_total',
    'Total password reset operations',
    ['operation', 'status']  # operation: request, complete
)

# ============================================================================
# Email Metrics
# ============================================================================

email_operations_total = Counter(
    'email_operations_total',
    'Total email operations',
    ['email_type', 'status']  # email_type: otp, welcome, password_reset, password_changed
)
