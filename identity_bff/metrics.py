from prometheus_client import Counter, Histogram

# Latency of calls to the identity provider and authorization server (seconds)
upstream_call_latency_seconds = Histogram(
    'upstream_call_latency_seconds',
    'Latency of identity provider and authorization server calls in seconds',
    ['provider', 'operation']
)

# Upstream failures, labeled by provider (hydra, kratos, token_endpoint) and error code
upstream_errors_total = Counter(
    'upstream_errors_total',
    'Total failed calls to upstream identity services',
    ['provider', 'error_code']
)

# Login/consent/logout decisions
# challenge: login, consent, logout
# decision: accepted, rejected, skipped, failed
oauth2_challenge_decisions_total = Counter(
    'oauth2_challenge_decisions_total',
    'Total OAuth2 challenge decisions',
    ['challenge', 'decision']
)

# Token endpoint calls by grant type
# status: success, error
oauth2_token_requests_total = Counter(
    'oauth2_token_requests_total',
    'Total OAuth2 token endpoint requests',
    ['grant_type', 'status']
)

# Consent accepted with fewer claims because the identity lookup failed
consent_claims_degraded_total = Counter(
    'consent_claims_degraded_total',
    'Consent requests accepted without identity claims'
)

__all__ = [
    'upstream_call_latency_seconds',
    'upstream_errors_total',
    'oauth2_challenge_decisions_total',
    'oauth2_token_requests_total',
    'consent_claims_degraded_total',
]
